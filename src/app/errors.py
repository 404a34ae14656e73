"""
Security Service Errors

Errors raised by the pipeline where the failure policy is to propagate.
Each carries a stable code rendered by the API layer.
"""


class SecurityServiceError(Exception):
    def __init__(self, message: str, code: str):
        self.message = message
        self.code = code
        super().__init__(message)


class DatabaseError(SecurityServiceError):
    """Store failure on a read path or on a write that must not fail silently"""


class AlertNotFoundError(SecurityServiceError):
    def __init__(self, alert_id: str):
        super().__init__(f"Security alert {alert_id} not found", "ALERT_NOT_FOUND")


class IncidentNotFoundError(SecurityServiceError):
    def __init__(self, incident_id: str):
        super().__init__(f"Security incident {incident_id} not found", "INCIDENT_NOT_FOUND")


class InvalidIncidentTransitionError(SecurityServiceError):
    def __init__(self, incident_id: str, current: str, target: str):
        super().__init__(
            f"Security incident {incident_id} cannot move from {current} to {target}",
            "INVALID_INCIDENT_TRANSITION",
        )
