# btu_api/storage/lazy.py
"""
Write-once memo cell for process-wide backend state (credentials, container id).

The cell stores the first successful result and returns it on every later
call. A failed or empty attempt leaves the cell unset so the next caller tries
again. There is no lock: concurrent cold-start callers may both run the
initializer, which is safe because every initializer here is idempotent
(query-before-create).
"""

from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class LazyCell(Generic[T]):
    """Async, non-poisoning, write-once cell."""

    def __init__(self, initializer: Callable[[], Awaitable[T | None]]):
        self._initializer = initializer
        self._value: T | None = None

    @property
    def is_set(self) -> bool:
        return self._value is not None

    def peek(self) -> T | None:
        return self._value

    async def get(self) -> T | None:
        """
        Return the cached value, initializing on first use.

        Exceptions from the initializer propagate and the cell stays unset.
        """
        if self._value is not None:
            return self._value

        value = await self._initializer()
        if value is not None and self._value is None:
            self._value = value
        return self._value if self._value is not None else value

    def reset(self) -> None:
        self._value = None
