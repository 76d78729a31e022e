"""
Key-value storage port.

Anything that persists small string values (cookies, saved state) goes
through this contract so callers do not depend on a concrete store.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class StoragePort(Protocol):
    """Async string key-value store."""

    async def get(self, key: str) -> str | None:
        """Value for ``key``, or None if missing."""
        ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def has(self, key: str) -> bool: ...

    async def keys(self, prefix: str | None = None) -> list[str]:
        """All keys, optionally only those starting with ``prefix``."""
        ...
