"""Background loops for key rotation and artifact republishing."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from gate.keyauth.gate import AuthGate

ROTATION_CHECK_INTERVAL_SECONDS = 60
REPUBLISH_INTERVAL_SECONDS = 300  # 5 minutes

logger = structlog.get_logger()


class RotationScheduler:
    """Poll the gate for due rotations and keep the artifact on disk.

    Republishing is idempotent; it only restores the files if something
    outside the server deleted them. Call start() on app startup and
    stop() on shutdown.
    """

    def __init__(
        self,
        gate: AuthGate,
        check_interval: float = ROTATION_CHECK_INTERVAL_SECONDS,
        republish_interval: float = REPUBLISH_INTERVAL_SECONDS,
    ) -> None:
        self._gate = gate
        self._check_interval = check_interval
        self._republish_interval = republish_interval
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._rotation_loop()),
            asyncio.create_task(self._republish_loop()),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _rotation_loop(self) -> None:
        while True:
            await asyncio.sleep(self._check_interval)
            try:
                await self._gate.tick()
            except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
                logger.exception("rotation check failed")

    async def _republish_loop(self) -> None:
        while True:
            await asyncio.sleep(self._republish_interval)
            try:
                await self._gate.publish()
            except (RuntimeError, OSError, ValueError):  # fmt: skip
                logger.exception("artifact republish failed")
