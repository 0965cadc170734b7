"""Lazy, single-flight initialization of process-wide values."""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Load a value once and share it with every caller.

    Concurrent first callers await the same in-flight task instead of starting
    duplicate loads. A load that raises is not cached: the error propagates to
    everyone waiting on it and the next call starts a fresh load.
    """

    def __init__(self, loader: Callable[[], Awaitable[T]], name: str = "value") -> None:
        """
        Initialize the once-cell.

        Args:
            loader: Async function producing the value.
            name: Label used in log messages.
        """
        self._loader = loader
        self._name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def loaded(self) -> bool:
        """Whether a value has been loaded successfully."""
        return (
            self._task is not None
            and self._task.done()
            and not self._task.cancelled()
            and self._task.exception() is None
        )

    async def _run(self) -> T:
        try:
            return await self._loader()
        except BaseException:
            if self._task is asyncio.current_task():
                self._task = None
            raise

    async def get(self) -> T:
        """
        Return the cached value, loading it on first use.

        Returns:
            Loaded value.
        """
        if self._task is None:
            logger.debug(f"Loading {self._name}")
            self._task = asyncio.ensure_future(self._run())
        return await asyncio.shield(self._task)

    def reset(self) -> None:
        """Forget the cached value so the next call reloads it."""
        self._task = None
