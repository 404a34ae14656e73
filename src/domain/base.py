import random
import string
import time
import uuid
from datetime import UTC, datetime

_BASE36 = string.digits + string.ascii_lowercase


def generate_uuid() -> str:
    return str(uuid.uuid4())


def generate_prefixed_id(prefix: str) -> str:
    """Build ids of the form ``<prefix>_<epoch ms>_<9 base36 chars>``."""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    # Naive UTC, matching the DateTime columns
    return datetime.now(UTC).replace(tzinfo=None)
