# src/socialchat_backend/services/messages.py
import logging
from typing import Any, Callable, List, Mapping, Optional

from ..models.ChatModels import Message, MessageUser
from ..stores.base import ChatStore, Row
from .live import LiveFeed, Subscription
from .timestamps import newest_first, parse_dt, utcnow

logger = logging.getLogger(__name__)

MessagesCallback = Callable[[List[Message]], None]
ErrorCallback = Callable[[Exception], None]


def _row_to_message(r: Row) -> Message:
    # createdAt puede faltar mientras el servidor no lo estampa
    return Message(
        id=r["id"],
        text=r.get("text", ""),
        created_at=parse_dt(r.get("createdAt")) or utcnow(),
        user=MessageUser.model_validate(r.get("user") or {"id": "", "name": ""}),
        chat_room_id=r.get("chatRoomId", ""),
    )


class MessageStream:
    """Envío de mensajes a una sala y feed en vivo de sus mensajes."""

    def __init__(self, store: ChatStore):
        self.store = store

    async def send(self, room_id: str, text: str, user: Mapping[str, Any]) -> Message:
        """
        Agrega el mensaje y luego actualiza el preview de la sala.

        Las dos escrituras no son transaccionales: si la segunda falla el
        mensaje queda guardado y el preview queda atrasado. Cualquier error
        del store se propaga al llamador.
        """
        if not text:
            raise ValueError("El mensaje no puede estar vacío")
        sender = MessageUser.model_validate(user).model_dump(exclude_none=True)
        stored = await self.store.add_message({
            "text": text,
            "user": sender,
            "chatRoomId": room_id,
        })
        await self.store.update_room(room_id, {
            "lastMessage": text,
            "lastMessageTime": stored.get("createdAt"),
        })
        logger.debug("Mensaje %s enviado a la sala %s", stored.get("id"), room_id)
        return _row_to_message(stored)

    async def subscribe(
        self,
        room_id: str,
        callback: MessagesCallback,
        on_error: Optional[ErrorCallback] = None,
        subscription: Optional[Subscription] = None,
    ) -> Subscription:
        """
        Feed en vivo de la sala: en cada snapshot se entrega el arreglo
        completo ordenado por createdAt descendente (más nuevo primero).
        """
        subscription = subscription or Subscription()

        def handle_snapshot(rows: List[Row]) -> None:
            if subscription.closed:
                return
            messages = newest_first((_row_to_message(r) for r in rows), key=lambda m: m.created_at)
            callback(messages)

        def handle_error(exc: Exception) -> None:
            logger.error("Suscripción a mensajes de %s falló: %s", room_id, exc)
            if on_error is not None and not subscription.closed:
                on_error(exc)

        watch = await self.store.watch_messages(room_id, handle_snapshot, handle_error)
        subscription.attach(watch)
        return subscription

    async def stream(self, room_id: str) -> LiveFeed[List[Message]]:
        feed: LiveFeed[List[Message]] = LiveFeed()
        await self.subscribe(room_id, feed.push, on_error=feed.fail, subscription=feed.subscription)
        return feed
