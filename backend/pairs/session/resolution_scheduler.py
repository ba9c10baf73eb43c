"""Deferred pair resolution, one pending timer per room."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()

# Callback type: (room_id) -> Awaitable[None]
ResolveCallback = Callable[[str], Awaitable[None]]


class ResolutionScheduler:
    """Run the resolve callback for a room after a fixed delay.

    The delay only lets observers see both face-up cells; correctness comes from
    the session's processing flag, which blocks flips until the callback clears it.
    Pending timers are cancelled when their room is torn down.
    """

    def __init__(self, on_resolve: ResolveCallback, delay_seconds: float) -> None:
        self._on_resolve = on_resolve
        self._delay_seconds = delay_seconds
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def delay_seconds(self) -> float:
        return self._delay_seconds

    def schedule(self, room_id: str) -> None:
        """Start the resolution timer for a room, replacing any pending one."""
        self.cancel(room_id)
        self._tasks[room_id] = asyncio.create_task(self._run(room_id))

    def is_pending(self, room_id: str) -> bool:
        task = self._tasks.get(room_id)
        return task is not None and not task.done()

    def cancel(self, room_id: str) -> None:
        task = self._tasks.pop(room_id, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def cancel_all(self) -> None:
        for room_id in list(self._tasks):
            self.cancel(room_id)

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def _run(self, room_id: str) -> None:
        try:
            await asyncio.sleep(self._delay_seconds)
            await self._on_resolve(room_id)
        except asyncio.CancelledError:
            pass
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("resolution callback failed", room_id=room_id)
        finally:
            if self._tasks.get(room_id) is asyncio.current_task():
                self._tasks.pop(room_id, None)
