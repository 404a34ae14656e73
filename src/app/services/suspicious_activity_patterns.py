"""
Suspicious activity pattern catalog evaluated by the monitoring service.

Loaded once at import and never mutated.
"""

from typing import Dict, List, Tuple

from src.app.services.dtos import SuspiciousActivityPattern
from src.domain.entities import PatternType, Severity

DEFAULT_PATTERNS: Tuple[SuspiciousActivityPattern, ...] = (
    SuspiciousActivityPattern(
        type=PatternType.multiple_failed_logins,
        severity=Severity.medium,
        description="Multiple failed login attempts detected",
        threshold=5,
        time_window=15,
        risk_score=30,
    ),
    SuspiciousActivityPattern(
        type=PatternType.brute_force,
        severity=Severity.high,
        description="Potential brute force attack detected",
        threshold=10,
        time_window=5,
        risk_score=60,
    ),
    SuspiciousActivityPattern(
        type=PatternType.unusual_access_pattern,
        severity=Severity.medium,
        description="Unusual data access pattern detected",
        threshold=100,
        time_window=60,
        risk_score=25,
    ),
    SuspiciousActivityPattern(
        type=PatternType.permission_escalation,
        severity=Severity.high,
        description="Multiple permission escalation attempts",
        threshold=10,
        time_window=30,
        risk_score=50,
    ),
    SuspiciousActivityPattern(
        type=PatternType.tenant_violation,
        severity=Severity.critical,
        description="Cross-tenant access violation detected",
        threshold=1,
        time_window=1,
        risk_score=80,
    ),
    SuspiciousActivityPattern(
        type=PatternType.account_takeover,
        severity=Severity.critical,
        description="Potential account takeover detected",
        threshold=3,
        time_window=10,
        risk_score=90,
    ),
)

# The monitoring fetch window must cover the widest pattern window
MAX_PATTERN_WINDOW_MINUTES = max(p.time_window for p in DEFAULT_PATTERNS)

_LOGIN_RECOMMENDATIONS = [
    "Enable multi-factor authentication",
    "Use a strong, unique password",
    "Consider changing your password if you suspect compromise",
]

PATTERN_RECOMMENDATIONS: Dict[PatternType, List[str]] = {
    PatternType.multiple_failed_logins: _LOGIN_RECOMMENDATIONS,
    PatternType.brute_force: _LOGIN_RECOMMENDATIONS,
    PatternType.unusual_access_pattern: [
        "Review recent account activity",
        "Check for unauthorized access",
        "Consider enabling access notifications",
    ],
    PatternType.permission_escalation: [
        "Review user permissions and roles",
        "Check for unauthorized privilege escalation attempts",
        "Consider implementing stricter access controls",
    ],
    PatternType.tenant_violation: [
        "Immediate security review required",
        "Check for potential account compromise",
        "Review organization access permissions",
    ],
    PatternType.account_takeover: [
        "Change password immediately",
        "Enable multi-factor authentication",
        "Review all active sessions",
        "Check for unauthorized account changes",
    ],
}


def recommendations_for(pattern: SuspiciousActivityPattern) -> List[str]:
    return PATTERN_RECOMMENDATIONS.get(pattern.type, ["Review account security settings"])
