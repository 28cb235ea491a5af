from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from pydantic import JsonValue

# Session payloads are opaque to the stores: string keys, JSON-compatible values
SessionData = Dict[str, JsonValue]

# Returns epoch seconds; injected so expiry and cooldown can be driven in tests
Clock = Callable[[], float]


class SessionStore(ABC):
    """
    Async key-value contract the session middleware talks to.

    Absence (never set, destroyed or expired) is reported as None from get(),
    never as an error.
    """

    @abstractmethod
    async def get(self, sid: str) -> Optional[SessionData]: ...

    @abstractmethod
    async def set(self, sid: str, data: SessionData) -> None: ...

    @abstractmethod
    async def destroy(self, sid: str) -> None: ...

    @abstractmethod
    async def touch(self, sid: str, data: SessionData) -> None: ...

    @abstractmethod
    async def clear(self) -> None: ...

    @abstractmethod
    async def all(self) -> Dict[str, SessionData]: ...

    @abstractmethod
    async def length(self) -> int: ...

    async def close(self) -> None:
        return None
