"""Cooperative cancellation shared by every stage of a recommendation request."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecommendationCancelled(Exception):
    """Raised when a recommendation request was abandoned by its caller."""

    def __init__(self, reason: str = "cancelled") -> None:
        super().__init__(f"Recommendation request {reason}")
        self.reason = reason


class CancellationToken:
    """Signal threaded through every upstream call of one request.

    Once fired, every awaitable running under :meth:`guard` is cancelled and
    the awaiting stage raises :class:`RecommendationCancelled`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = "cancelled"
        self._deadline: asyncio.TimerHandle | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token. Subsequent calls are ignored."""

        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        logger.debug("Cancellation token fired: %s", reason)

    def cancel_after(self, seconds: float) -> None:
        """Fire the token with a ``timed out`` reason after ``seconds``."""

        if self._deadline is not None:
            self._deadline.cancel()
        loop = asyncio.get_running_loop()
        self._deadline = loop.call_later(seconds, self.cancel, "timed out")

    def clear_deadline(self) -> None:
        """Disarm a pending :meth:`cancel_after` deadline."""

        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RecommendationCancelled(self._reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""

        if self._event.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise RecommendationCancelled(self._reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if self._event.is_set():
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise RecommendationCancelled(self._reason)
        return task.result()

    async def gather(self, *awaitables: Awaitable[Any]) -> list[Any]:
        """Run ``awaitables`` concurrently and join them under this token.

        Cancellation of the token, or any child raising
        :class:`RecommendationCancelled`, rejects the whole join. A child
        raising it also fires the token so its siblings stop early. Other child
        exceptions are re-raised; callers are expected to absorb recoverable
        upstream failures inside each child.
        """

        results = await asyncio.gather(
            *(self._propagating(awaitable) for awaitable in awaitables),
            return_exceptions=True,
        )
        if self._event.is_set():
            raise RecommendationCancelled(self._reason)
        for result in results:
            if isinstance(result, RecommendationCancelled):
                raise result
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    async def _propagating(self, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RecommendationCancelled as exc:
            self.cancel(exc.reason)
            raise
