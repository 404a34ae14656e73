from fastapi import status
from src.app.errors import (
    AlertNotFoundError,
    IncidentNotFoundError,
    InvalidIncidentTransitionError,
    SecurityServiceError,
)


class ClientError(Exception):
    def __init__(
        self, base_error: SecurityServiceError, status_code: int = status.HTTP_400_BAD_REQUEST
    ):
        self.base_error = base_error
        self.status_code = status_code
        super().__init__(base_error.message)


class ServerError(Exception):
    def __init__(self, base_error: SecurityServiceError):
        self.base_error = base_error
        super().__init__(base_error.message)


def to_http_error(error: SecurityServiceError) -> Exception:
    """Map a service error onto the client/server error the handlers render"""
    if isinstance(error, (AlertNotFoundError, IncidentNotFoundError)):
        return ClientError(error, status_code=status.HTTP_404_NOT_FOUND)
    if isinstance(error, InvalidIncidentTransitionError):
        return ClientError(error, status_code=status.HTTP_409_CONFLICT)
    return ServerError(error)
