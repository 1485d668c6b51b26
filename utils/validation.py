import uuid
from datetime import datetime
from typing import Optional

from core.exceptions import InvalidArgumentError
from utils.dates import as_utc


def parse_id(raw: Optional[str], name: str = "id") -> uuid.UUID:
    """Parse an opaque identifier before it reaches storage."""
    if raw is None or raw == "":
        raise InvalidArgumentError(f"Missing {name}")
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except (ValueError, AttributeError, TypeError):
        raise InvalidArgumentError(f"Malformed {name}: {raw!r}")


def parse_timestamp(raw: Optional[str], name: str = "timestamp") -> datetime:
    """Parse an ISO 8601 client timestamp; a trailing Z is accepted."""
    if not raw:
        raise InvalidArgumentError(f"Missing {name}")
    value = raw.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        raise InvalidArgumentError(f"Malformed {name}: {raw!r}")
