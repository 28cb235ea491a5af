from __future__ import annotations


class StoreError(Exception):
    """A session store failure other than simple absence."""


class SessionDecodeError(StoreError):
    """A stored session payload could not be deserialized."""


class SessionEncodeError(StoreError):
    """A session payload is not JSON-compatible."""
