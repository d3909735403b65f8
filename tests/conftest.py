"""
Fixtures compartidas para los tests del chat.

Todo corre contra el store en memoria: mismo contrato que Supabase, con un
reloj controlable para que los timestamps del "servidor" sean predecibles.
"""
from datetime import datetime, timedelta, timezone

import pytest

from socialchat_backend.services.chat_list import ChatListAggregator
from socialchat_backend.services.chat_rooms import ChatRoomRegistry
from socialchat_backend.services.messages import MessageStream
from socialchat_backend.stores.memory import InMemoryChatStore, InMemoryUserDirectory

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class TickingClock:
    """Cada lectura avanza `step`: dos escrituras nunca comparten hora."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(clock):
    return InMemoryChatStore(clock=clock)


@pytest.fixture
def directory():
    return InMemoryUserDirectory()


@pytest.fixture
def registry(store):
    return ChatRoomRegistry(store)


@pytest.fixture
def message_stream(store):
    return MessageStream(store)


@pytest.fixture
def chat_list(store, directory):
    return ChatListAggregator(store, directory)


class Recorder:
    """Callback que guarda cada snapshot recibido."""

    def __init__(self):
        self.calls = []
        self.errors = []

    def __call__(self, snapshot):
        self.calls.append(snapshot)

    def on_error(self, exc):
        self.errors.append(exc)

    @property
    def last(self):
        return self.calls[-1]


@pytest.fixture
def recorder():
    return Recorder()
