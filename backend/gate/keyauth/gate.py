"""Authentication gate: holds the shared secret and decides who may act.

Per-session lifecycle::

    connected (kick timer running) --/key <secret>--> authenticated
               \\--deadline passes--> kicked (forced disconnect)

Wrong secrets never kick; only the join timeout does. There is no lockout
or backoff on repeated guesses, so a client may retry until its timeout.

The secret and its next rotation instant are replaced together under the
gate lock. ``submit`` validates and marks the session under the same lock,
so a submit racing a rotation validates against exactly one secret and
cannot leave a session authenticated by a secret the rotation already
revoked.
"""

import hmac
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import anyio
import structlog

from gate.keyauth.clock import HUMAN_TIME_FORMAT, compute_next, epoch_millis, has_elapsed
from gate.keyauth.config import ConfigStore, KeyAuthConfig
from gate.keyauth.exceptions import ArtifactWriteError
from gate.keyauth.host import ArtifactRecord, ArtifactSink, GateHost
from gate.keyauth.percentile import PercentileTracker
from gate.keyauth.registry import Session, SessionRegistry
from gate.keyauth.secret import SecretGenerator
from gate.keyauth.timers import DelayedTasks

logger = structlog.get_logger()

DEFAULT_WELCOME_DELAY_SECONDS = 3.0

KICK_REASON = "auth_timeout"
KICK_MESSAGE = "Verification timed out. Get the current key and join again."

# Commands an unauthenticated session may still run.
ALLOWED_COMMANDS = frozenset({"key", "quit", "exit", "keystats", "keyinfo"})

ROTATION_NOTICE = [
    "The server key has been rotated.",
    "Check the key page for the new key.",
]
REAUTH_NOTICE = ["Your verification expired with the old key. Please verify again."]
VERIFY_REMINDER = ["Please verify first with /key <key>."]

Position = tuple[float, float, float]


@dataclass(frozen=True)
class SecretState:
    value: str
    next_rotation: datetime


@dataclass(frozen=True)
class AuthResult:
    success: bool
    seconds_taken: float | None = None
    percentile: float | None = None


def command_name(raw_command: str) -> str:
    """Lower-cased command name without the leading slash ("/Key abc" -> "key")."""
    parts = raw_command.strip().split(maxsplit=1)
    if not parts:
        return ""
    return parts[0].lstrip("/").lower()


def _block(position: Position) -> tuple[int, int, int]:
    return math.floor(position[0]), math.floor(position[1]), math.floor(position[2])


def _secrets_match(candidate: str, current: str) -> bool:
    return hmac.compare_digest(candidate.encode("utf-8"), current.encode("utf-8"))


class AuthGate:
    """Own the current secret, the session registry and the latency history.

    Everything is held per instance, so independent gates can run side by
    side. Host I/O (messages, disconnects) goes through ``host``; artifact
    writes go through ``publisher`` in a worker thread.
    """

    def __init__(
        self,
        config: KeyAuthConfig,
        host: GateHost,
        publisher: ArtifactSink,
        *,
        config_store: ConfigStore | None = None,
        registry: SessionRegistry | None = None,
        tracker: PercentileTracker | None = None,
        generator: SecretGenerator | None = None,
        timers: DelayedTasks | None = None,
        welcome_delay_seconds: float = DEFAULT_WELCOME_DELAY_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._host = host
        self._publisher = publisher
        self._config_store = config_store
        self._registry = registry or SessionRegistry()
        self._tracker = tracker or PercentileTracker()
        self._generator = generator or SecretGenerator()
        self._timers = timers or DelayedTasks()
        self._welcome_delay_seconds = welcome_delay_seconds
        self._clock = clock
        self._monotonic = monotonic
        self._lock = threading.RLock()
        self._config = config
        self._secret = SecretState(config.key, compute_next(config.auto_update.update_hour, clock()))

    @property
    def config(self) -> KeyAuthConfig:
        return self._config

    @property
    def secret(self) -> SecretState:
        """Current (value, next rotation) pair, always read as one unit."""
        with self._lock:
            return self._secret

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def tracker(self) -> PercentileTracker:
        return self._tracker

    @property
    def timers(self) -> DelayedTasks:
        return self._timers

    def now(self) -> datetime:
        return self._clock()

    # -- session lifecycle -------------------------------------------------

    async def on_connect(
        self,
        session_id: str,
        *,
        privileged: bool = False,
        name: str = "",
        permissions: frozenset[str] = frozenset(),
    ) -> Session:
        """Register the session, prompt for the key and start its kick timer."""
        session = self._registry.on_connect(
            session_id,
            privileged=privileged,
            name=name,
            permissions=permissions,
            join_time=self._monotonic(),
        )
        if privileged:
            logger.info("privileged session connected", session_id=session_id)
            return session

        await self.send_prompt(session_id)
        self._timers.schedule(
            _kick_key(session_id),
            self._config.kick_delay_seconds,
            lambda: self._kick_if_unauthenticated(session),
        )
        return session

    async def on_disconnect(self, session_id: str) -> None:
        self._timers.cancel(_kick_key(session_id))
        self._timers.cancel(_welcome_key(session_id))
        self._registry.on_disconnect(session_id)

    async def _kick_if_unauthenticated(self, session: Session) -> None:
        # a reconnect under the same id registers a new Session object
        if self._registry.get(session.session_id) is not session:
            return
        if self._registry.is_authenticated(session.session_id):
            return
        logger.info("verification timed out, disconnecting", session_id=session.session_id)
        await self._host.send_chat(session.session_id, [KICK_MESSAGE])
        self._registry.on_disconnect(session.session_id)
        await self._host.disconnect(session.session_id, KICK_REASON)

    async def send_prompt(self, session_id: str) -> None:
        await self._host.send_chat(
            session_id,
            [
                "Welcome!",
                "Use /key <key> to verify.",
                f"You have {self._config.kick_delay_seconds} seconds to enter the key.",
            ],
        )
        await self._host.send_title(session_id, "Verification required", "Use /key <key> to verify")

    # -- authentication ----------------------------------------------------

    def is_authenticated(self, session_id: str) -> bool:
        return self._registry.is_authenticated(session_id)

    def submit(self, session_id: str, candidate: str) -> AuthResult:
        """Check a candidate secret; on a match authenticate and rank the session."""
        with self._lock:
            if not _secrets_match(candidate, self._secret.value):
                return AuthResult(success=False)
            session = self._registry.get(session_id)
            if session is None:
                return AuthResult(success=False)
            latency = max(0.0, self._monotonic() - session.join_time)
            percentile = self._tracker.record_and_rank(latency)
            self._registry.mark_authenticated(session_id)

        logger.info(
            "session verified",
            session_id=session_id,
            seconds_taken=round(latency, 3),
            percentile=round(percentile, 1),
        )
        return AuthResult(success=True, seconds_taken=latency, percentile=percentile)

    def schedule_welcome(self, session_id: str, name: str) -> None:
        """Show a welcome title shortly after a successful verification."""

        async def _welcome() -> None:
            if self._registry.is_connected(session_id):
                await self._host.send_title(session_id, f"Welcome, {name}!" if name else "Welcome!", "Enjoy the game")

        self._timers.schedule(_welcome_key(session_id), self._welcome_delay_seconds, _welcome)

    # -- guards --------------------------------------------------------------

    def movement_guard(self, session_id: str, origin: Position, target: Position) -> bool:
        """Allow the move unless an unverified session changes block position."""
        if self._registry.is_authenticated(session_id):
            return True
        return _block(origin) == _block(target)

    def command_guard(self, session_id: str, raw_command: str) -> bool:
        if command_name(raw_command) in ALLOWED_COMMANDS:
            return True
        return self._registry.is_authenticated(session_id)

    # -- rotation --------------------------------------------------------------

    def rotate(self, now: datetime) -> list[str]:
        """Swap in a fresh secret and revoke every non-privileged authentication.

        Returns the ids of the sessions whose authentication was revoked.
        """
        value = self._generator.generate()
        with self._lock:
            self._secret = SecretState(value, compute_next(self._config.auto_update.update_hour, now))
            self._config = self._config.model_copy(update={"key": value})
            return self._registry.invalidate_all_non_privileged()

    async def tick(self, now: datetime | None = None) -> bool:
        """Rotate if the scheduled instant has passed. Returns True when a rotation happened."""
        if not self._config.auto_update.enabled:
            return False
        now = now or self._clock()
        if not has_elapsed(self.secret.next_rotation, now):
            return False

        revoked = self.rotate(now)
        state = self.secret
        logger.info(
            "key rotated",
            next_rotation=state.next_rotation.strftime(HUMAN_TIME_FORMAT),
            revoked_sessions=len(revoked),
        )
        await self._persist_key(state.value)
        await self.publish()
        await self._host.broadcast(ROTATION_NOTICE)
        for session_id in revoked:
            if self._registry.is_connected(session_id):
                await self._host.send_chat(session_id, REAUTH_NOTICE)
                await self.send_prompt(session_id)
        return True

    async def _persist_key(self, value: str) -> None:
        if self._config_store is None:
            return
        try:
            await anyio.to_thread.run_sync(self._config_store.save_key, value)
        except OSError:
            logger.warning("failed to persist rotated key", path=str(self._config_store.path), exc_info=True)

    # -- configuration -----------------------------------------------------

    async def reload(self) -> KeyAuthConfig:
        """Re-read the config file and adopt its key and schedule.

        Raises ConfigReloadError, leaving the current config and secret untouched.
        """
        if self._config_store is None:
            return self._config
        config = await anyio.to_thread.run_sync(self._config_store.load)
        with self._lock:
            self._config = config
            self._secret = SecretState(config.key, compute_next(config.auto_update.update_hour, self._clock()))
        logger.info("keyauth config reloaded", path=str(self._config_store.path))
        await self.publish()
        return config

    # -- artifact --------------------------------------------------------------

    def artifact_record(self) -> ArtifactRecord:
        state = self.secret
        return ArtifactRecord(
            key=state.value,
            next_update=epoch_millis(state.next_rotation),
            update_time=state.next_rotation.strftime(HUMAN_TIME_FORMAT),
        )

    async def publish(self) -> bool:
        """Write the artifact off the event loop. Failures are logged, never raised."""
        record = self.artifact_record()
        web_path = Path(self._config.auto_update.web_path)
        try:
            await anyio.to_thread.run_sync(self._publisher.publish, web_path, record)
        except ArtifactWriteError:
            logger.warning("failed to publish key artifact", web_path=str(web_path), exc_info=True)
            return False
        return True

    def cancel_all_timers(self) -> None:
        self._timers.cancel_all()


def _kick_key(session_id: str) -> str:
    return f"kick:{session_id}"


def _welcome_key(session_id: str) -> str:
    return f"welcome:{session_id}"
