"""
Cooperative cancellation.

A token is passed through every call boundary. Components check it at window
start, at the top of each retry loop and inside navigation polling; work that
is already in flight runs to completion.
"""

import asyncio

from crawlkit.utils.errors import AcquisitionCancelledError


class CancellationToken:
    """One-way flag that callers set to stop pending work."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise AcquisitionCancelledError when the token is set."""
        if self._event.is_set():
            details = {"reason": self.reason} if self.reason else None
            raise AcquisitionCancelledError(details=details)

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


def is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled
