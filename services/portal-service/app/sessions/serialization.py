from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from .errors import SessionDecodeError, SessionEncodeError
from .types import SessionData

_session_adapter: TypeAdapter[SessionData] = TypeAdapter(SessionData)


def encode_session(data: SessionData) -> str:
    try:
        validated = _session_adapter.validate_python(data)
        return _session_adapter.dump_json(validated).decode("utf-8")
    except (ValidationError, TypeError, ValueError) as e:
        raise SessionEncodeError(f"session payload is not JSON-compatible: {e}") from e


def decode_session(raw: Optional[str]) -> SessionData:
    """Empty or missing text decodes to an empty session."""
    if raw is None or not str(raw).strip():
        return {}
    try:
        return _session_adapter.validate_json(raw)
    except ValidationError as e:
        raise SessionDecodeError(f"stored session payload is invalid: {e.error_count()} error(s)") from e


def format_timestamp(epoch: float) -> str:
    dt = datetime.fromtimestamp(epoch, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(text: str) -> float:
    """
    Parse an ISO 8601 timestamp to epoch seconds.

    Date-only values (YYYY-MM-DD) are read as midnight UTC. Naive timestamps
    are taken to be UTC. Raises ValueError on anything else.
    """
    s = str(text).strip()
    if len(s) == 10:
        d = date.fromisoformat(s)
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc).timestamp()

    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
