# src/socialchat_backend/services/live.py
"""
Suscripciones en vivo.

`Subscription` es lo que devuelven los subscribe_*: hay que llamar a
`unsubscribe()` una vez cuando ya no interesa el feed (llamarlo de nuevo no
hace nada). Si no se llama, el watch y su callback quedan vivos mientras
dure la conexión al store.

`LiveFeed` expone el mismo feed como iterador async de snapshots completos.
"""
import asyncio
from typing import Generic, Optional, TypeVar

from ..exceptions import SubscriptionError
from ..stores.base import Watch

T = TypeVar("T")


class Subscription:

    def __init__(self) -> None:
        self._watch: Optional[Watch] = None
        self.closed = False

    def attach(self, watch: Watch) -> None:
        self._watch = watch

    async def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._watch is not None:
            await self._watch.cancel()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.unsubscribe()


_END = object()


class LiveFeed(Generic[T]):

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.subscription = Subscription()

    # Productores (se llaman desde el handler de snapshots)
    def push(self, snapshot: T) -> None:
        if not self.subscription.closed:
            self._queue.put_nowait(snapshot)

    def fail(self, exc: Exception) -> None:
        if not isinstance(exc, SubscriptionError):
            exc = SubscriptionError(str(exc))
        self._queue.put_nowait(exc)

    # Consumidor
    def __aiter__(self) -> "LiveFeed[T]":
        return self

    async def __anext__(self) -> T:
        if self.subscription.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, SubscriptionError):
            raise item
        return item

    async def aclose(self) -> None:
        if self.subscription.closed:
            return
        await self.subscription.unsubscribe()
        self._queue.put_nowait(_END)

    async def __aenter__(self) -> "LiveFeed[T]":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
