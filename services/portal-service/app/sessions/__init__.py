from .errors import SessionDecodeError, SessionEncodeError, StoreError
from .types import SessionData, SessionStore
from .memory_store import InMemorySessionStore
from .airtable_store import AirtableSessionStore
from .reliable_store import BreakerMode, FailoverState, ReliableSessionStore
from .redis_store import RedisSessionStore
from .factory import build_session_store

__all__ = [
    "SessionData",
    "SessionStore",
    "StoreError",
    "SessionDecodeError",
    "SessionEncodeError",
    "InMemorySessionStore",
    "AirtableSessionStore",
    "ReliableSessionStore",
    "BreakerMode",
    "FailoverState",
    "RedisSessionStore",
    "build_session_store",
]
