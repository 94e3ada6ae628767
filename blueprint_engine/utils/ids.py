"""
Request ID helpers.

IDs look like ``bp-20240101120000-1a2b3c4d``: an operation tag, a UTC
timestamp and eight hex characters of a random UUID.
"""
import uuid
from datetime import datetime, timezone

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def generate_request_id(prefix: str = "bp") -> str:
    """Build a request ID tagged with the operation, e.g. "bp", "sample" or "reg"."""
    stamp = datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:8]}"

