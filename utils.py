import secrets
from datetime import datetime, timezone

from config import ID_BYTES


def timestamp() -> float:
    return datetime.now(timezone.utc).timestamp()


def new_id() -> str:
    """Opaque 24-character hex identifier for threads and replies."""
    return secrets.token_hex(ID_BYTES)


def as_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)
