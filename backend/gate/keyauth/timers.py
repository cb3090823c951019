"""Keyed one-shot delayed tasks (kick timeouts, delayed titles).

Scheduling a key that is already pending cancels the earlier task.
Callbacks must re-check session state when they fire: a task that lost
a race with a disconnect or authentication is expected to do nothing.
"""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()

DelayedCallback = Callable[[], Awaitable[None]]


def _current_task() -> asyncio.Task[object] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class DelayedTasks:
    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __contains__(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def __len__(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def schedule(self, key: str, delay: float, callback: DelayedCallback) -> None:
        self.cancel(key)
        self._tasks[key] = asyncio.create_task(self._run(key, delay, callback))

    def cancel(self, key: str) -> None:
        task = self._tasks.pop(key, None)
        # a callback may tear down its own session; let it run to completion
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)

    async def _run(self, key: str, delay: float, callback: DelayedCallback) -> None:
        try:
            await asyncio.sleep(delay)
            await callback()
        except asyncio.CancelledError:
            pass
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("delayed task failed", task_key=key)
        finally:
            if self._tasks.get(key) is _current_task():
                del self._tasks[key]
