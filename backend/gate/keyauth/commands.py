"""Chat commands: /key, /keyreload, /keystats, /keyinfo, /quit, /exit."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from gate.keyauth.clock import HUMAN_TIME_FORMAT, time_remaining
from gate.keyauth.config import PERMISSION_RELOAD, PERMISSION_STATS, PERMISSION_STATS_CLEAR
from gate.keyauth.exceptions import ConfigReloadError, PermissionDeniedError
from gate.keyauth.gate import command_name

if TYPE_CHECKING:
    from gate.keyauth.gate import AuthGate
    from gate.keyauth.host import GateHost
    from gate.keyauth.registry import Session

logger = structlog.get_logger()

QUIT_REASON = "quit"


class KeyCommands:
    """Parse a raw command line and run it on behalf of a session.

    Callers run the command guard first; everything that reaches
    ``dispatch`` is allowed to execute.
    """

    def __init__(self, gate: AuthGate, host: GateHost) -> None:
        self._gate = gate
        self._host = host

    async def dispatch(self, session_id: str, raw_command: str) -> None:
        session = self._gate.registry.get(session_id)
        if session is None:
            return
        name = command_name(raw_command)
        args = raw_command.strip().split()[1:]
        try:
            if name == "key":
                await self.authenticate(session, args)
            elif name == "keyreload":
                await self.reload(session)
            elif name == "keystats":
                await self.stats(session, args)
            elif name == "keyinfo":
                await self.info(session)
            elif name in ("quit", "exit"):
                await self._host.disconnect(session_id, QUIT_REASON)
            else:
                await self._reply(session, f"Unknown command: /{name}")
        except PermissionDeniedError as e:
            logger.info("command rejected", command=name, permission=e.permission)
            await self._reply(session, "You do not have permission to use this command.")

    async def authenticate(self, session: Session, args: list[str]) -> None:
        if self._gate.is_authenticated(session.session_id):
            await self._reply(session, "You are already verified.")
            return
        if len(args) != 1:
            await self._reply(session, "Usage: /key <key>")
            return

        result = self._gate.submit(session.session_id, args[0])
        if not result.success:
            await self._host.send_chat(session.session_id, ["Wrong key!", "Please check the key and try again."])
            return

        await self._host.send_title(
            session.session_id,
            "Verified!",
            f"took {result.seconds_taken:.2f} s | faster than {result.percentile:.1f}% of players",
        )
        await self._host.send_chat(session.session_id, ["Verified! Welcome to the server.", "You can play now."])
        self._gate.schedule_welcome(session.session_id, session.name)

    async def reload(self, session: Session) -> None:
        _require(session, PERMISSION_RELOAD)
        try:
            config = await self._gate.reload()
        except ConfigReloadError as e:
            logger.warning("config reload failed", error=str(e))
            await self._reply(session, f"Reload failed, keeping the current config: {e}")
            return
        await self._host.send_chat(session.session_id, ["Key auth config reloaded.", f"Current key: {config.key}"])

    async def stats(self, session: Session, args: list[str]) -> None:
        _require(session, PERMISSION_STATS)
        summary = self._gate.tracker.summary()
        if summary is None:
            await self._reply(session, "No verification statistics yet.")
            return
        await self._host.send_chat(
            session.session_id,
            [
                f"Total verifications: {summary.count}",
                f"Fastest: {summary.fastest:.2f} s",
                f"Slowest: {summary.slowest:.2f} s",
                f"Average: {summary.average:.2f} s",
            ],
        )
        if args and args[0].lower() == "clear":
            _require(session, PERMISSION_STATS_CLEAR)
            self._gate.tracker.clear()
            logger.info("verification statistics cleared", session_id=session.session_id)
            await self._reply(session, "Verification statistics cleared.")

    async def info(self, session: Session) -> None:
        state = self._gate.secret
        hours, minutes = time_remaining(state.next_rotation, self._gate.now())
        auto_update = "on" if self._gate.config.auto_update.enabled else "off"
        await self._host.send_chat(
            session.session_id,
            [
                f"Next key update: {state.next_rotation.strftime(HUMAN_TIME_FORMAT)}",
                f"Time left: {hours}h {minutes}m",
                f"Auto update: {auto_update}",
                "See the key page for the current key.",
            ],
        )

    async def _reply(self, session: Session, line: str) -> None:
        await self._host.send_chat(session.session_id, [line])


def _require(session: Session, permission: str) -> None:
    if not session.has_permission(permission):
        raise PermissionDeniedError(permission)
