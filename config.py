import os
import yaml

ROOT_PATH = os.path.dirname(__file__)
CONFIG_FILE_PATH = os.path.join(ROOT_PATH, "env.yaml")

if os.path.exists(CONFIG_FILE_PATH):
    with open(CONFIG_FILE_PATH, "r") as r_file:
        data = yaml.safe_load(r_file) or dict()
else:
    data = dict()


class ApplicationConfig:
    DB_URI = data.get("DB_URI", "sqlite+aiosqlite:///./security.db")
    API_PREFIX = data.get("API_PREFIX", "/api")
    API_PORT = data.get("API_PORT", 8000)
    API_HOST = data.get("API_HOST", "0.0.0.0")
    CORS_ORIGINS = data.get("CORS_ORIGINS", [])
    CORS_ALLOW_CREDENTIALS = data.get("CORS_ALLOW_CREDENTIALS", True)
    LOG_LEVEL = data.get("LOG_LEVEL", "INFO")
    ADMIN_API_KEY = data.get("ADMIN_API_KEY", "test-admin-key-12345")
    WEBHOOK_SECRET = data.get("WEBHOOK_SECRET", "")

    # Audit pipeline
    AUDIT_BATCH_SIZE = int(data.get("AUDIT_BATCH_SIZE", 50))
    AUDIT_FLUSH_INTERVAL_SECONDS = float(data.get("AUDIT_FLUSH_INTERVAL_SECONDS", 10))
    AUDIT_RISK_THRESHOLD = int(data.get("AUDIT_RISK_THRESHOLD", 7))
    AUDIT_BUSINESS_HOURS = tuple(data.get("AUDIT_BUSINESS_HOURS", (6, 22)))
    AUDIT_MAX_PENDING = int(data.get("AUDIT_MAX_PENDING", 5000))
    SECURITY_EVENTS_DEFAULT_LIMIT = int(data.get("SECURITY_EVENTS_DEFAULT_LIMIT", 100))
    SECURITY_METRICS_SCAN_LIMIT = int(data.get("SECURITY_METRICS_SCAN_LIMIT", 10000))
    SECURITY_SUMMARY_SCAN_LIMIT = int(data.get("SECURITY_SUMMARY_SCAN_LIMIT", 1000))

    # Notifications
    NOTIFICATION_BRAND_NAME = data.get("NOTIFICATION_BRAND_NAME", "C9d.ai")
    NOTIFICATION_HISTORY_SIZE = int(data.get("NOTIFICATION_HISTORY_SIZE", 500))
    SECURITY_TEAM_RECIPIENTS = data.get(
        "SECURITY_TEAM_RECIPIENTS",
        {
            "pagerduty": "security-team",
            "email": "security@company.com",
            "slack": "#security-alerts",
        },
    )

    # Threat intelligence
    THREAT_INTEL_DENYLIST = data.get("THREAT_INTEL_DENYLIST", [])
    THREAT_INTEL_TOR_EXIT_NODES = data.get("THREAT_INTEL_TOR_EXIT_NODES", [])
    THREAT_INTEL_VPN_RANGES = data.get("THREAT_INTEL_VPN_RANGES", [])
    DEVICE_FINGERPRINTING = bool(data.get("DEVICE_FINGERPRINTING", False))
