import asyncio
import random

import pytest

from gate.keyauth.commands import KeyCommands
from gate.keyauth.config import KeyAuthConfig
from gate.keyauth.gate import AuthGate
from gate.keyauth.secret import SecretGenerator
from gate.messaging.router import MessageRouter
from gate.session.manager import SessionManager
from gate.tests.helpers import NOW, TEST_KEY
from gate.tests.mocks import FakeClock, FakeMonotonic, MemoryPublisher, RecordingHost


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def host():
    return RecordingHost()


@pytest.fixture
def publisher():
    return MemoryPublisher()


@pytest.fixture
def config():
    return KeyAuthConfig(key=TEST_KEY)


@pytest.fixture
async def make_gate(host, publisher, clock, monotonic):
    """Build gates wired to the fake clocks; pending timers are cancelled on teardown."""
    created: list[AuthGate] = []

    def _make(config: KeyAuthConfig | None = None, **kwargs) -> AuthGate:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("monotonic", monotonic)
        kwargs.setdefault("generator", SecretGenerator(rng=random.Random(7)))  # noqa: S311
        kwargs.setdefault("welcome_delay_seconds", 0.01)
        gate = AuthGate(
            config or KeyAuthConfig(key=TEST_KEY),
            kwargs.pop("host", host),
            kwargs.pop("publisher", publisher),
            **kwargs,
        )
        created.append(gate)
        return gate

    yield _make

    for gate in created:
        gate.cancel_all_timers()
    await asyncio.sleep(0)


@pytest.fixture
def gate(make_gate, config):
    return make_gate(config)


@pytest.fixture
async def session_manager():
    manager = SessionManager()
    yield manager
    await manager.close_all()


@pytest.fixture
def wired(make_gate, config, session_manager):
    """Gate, commands and router talking to real SessionManager connections."""
    gate = make_gate(config, host=session_manager)
    commands = KeyCommands(gate, session_manager)
    router = MessageRouter(gate, session_manager, commands)
    return gate, router
