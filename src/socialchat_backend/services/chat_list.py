# src/socialchat_backend/services/chat_list.py
"""
Lista en vivo de chats de un usuario.

Cada snapshot de salas se convierte en resúmenes por usuario usando los
datos desnormalizados de `participantDetails` (disponibles al instante,
quizá desactualizados) y se entrega ordenado por lastMessageTime.

Si algún contraparte quedó como "Unknown User" se lanza un enriquecimiento
en paralelo (perfil -> último post -> placeholder). Cuando terminan todas
las búsquedas, con éxito o no, se reordena y se entrega una segunda vez.
Una búsqueda que falla se registra en el log y no afecta a las demás.
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from ..exceptions import EnrichmentLookupError
from ..models.ChatModels import UserChatSummary, UserStub
from ..stores.base import ChatStore, Row, UserDirectoryClient
from .display_names import (
    UNKNOWN_USER,
    blank_to_none,
    name_from_post,
    name_from_profile,
    resolve_display_name,
)
from .live import LiveFeed, Subscription
from .timestamps import newest_first, parse_dt

logger = logging.getLogger(__name__)

ChatsCallback = Callable[[List[UserChatSummary]], None]
ErrorCallback = Callable[[Exception], None]


def _sort_chats(chats: List[UserChatSummary]) -> List[UserChatSummary]:
    return newest_first(chats, key=lambda c: c.last_message_time)


def _row_to_summary(r: Row, user_id: str) -> UserChatSummary:
    participants = r.get("participants") or []
    other_id = next((p for p in participants if p != user_id), "")
    details = (r.get("participantDetails") or {}).get(other_id) or {}
    return UserChatSummary(
        chat_room_id=r["id"],
        other_user_id=other_id,
        other_user_name=resolve_display_name(details),
        other_user_photo=blank_to_none(details.get("photoURL")),
        last_message=r.get("lastMessage") or "",
        last_message_time=parse_dt(r.get("lastMessageTime")),
    )


class ChatListAggregator:

    def __init__(self, store: ChatStore, directory: UserDirectoryClient):
        self.store = store
        self.directory = directory
        # Referencias a los enriquecimientos en curso (si no, el GC los puede cortar)
        self._pending: Set[asyncio.Task] = set()

    async def subscribe(
        self,
        user_id: str,
        callback: ChatsCallback,
        on_error: Optional[ErrorCallback] = None,
        subscription: Optional[Subscription] = None,
    ) -> Subscription:
        subscription = subscription or Subscription()
        generation = 0

        def handle_snapshot(rows: List[Row]) -> None:
            nonlocal generation
            if subscription.closed:
                return
            generation += 1
            chats = _sort_chats([_row_to_summary(r, user_id) for r in rows])
            callback(chats)

            if any(self._needs_enrichment(c) for c in chats):
                self._spawn(self._enrich_and_emit(chats, generation, lambda: generation, subscription, callback))

        def handle_error(exc: Exception) -> None:
            logger.error("Suscripción a chats de %s falló: %s", user_id, exc)
            if on_error is not None and not subscription.closed:
                on_error(exc)

        watch = await self.store.watch_rooms(user_id, handle_snapshot, handle_error)
        subscription.attach(watch)
        return subscription

    async def stream(self, user_id: str) -> LiveFeed[List[UserChatSummary]]:
        feed: LiveFeed[List[UserChatSummary]] = LiveFeed()
        await self.subscribe(user_id, feed.push, on_error=feed.fail, subscription=feed.subscription)
        return feed

    async def get_all_users(self, excluding_user_id: str) -> List[UserStub]:
        """Todos los perfiles menos el del llamador, para iniciar un chat nuevo."""
        profiles = await self.directory.list_profiles()
        return [
            UserStub(
                uid=p["id"],
                display_name=blank_to_none(p.get("displayName")),
                email=p.get("email"),
                photo_url=p.get("photoURL"),
            )
            for p in profiles
            if p.get("id") != excluding_user_id
        ]

    async def resolve_name(self, user_id: str) -> Optional[str]:
        """Perfil (displayName, nombres alternativos, email) y luego último post."""
        try:
            name = name_from_profile(await self.directory.get_profile(user_id))
            if name:
                return name
        except Exception as e:
            logger.warning("%s", EnrichmentLookupError(user_id, "profile", e))

        try:
            return name_from_post(await self.directory.latest_post_by(user_id))
        except Exception as e:
            logger.warning("%s", EnrichmentLookupError(user_id, "latest_post", e))
        return None

    async def wait_for_enrichment(self) -> None:
        """Espera a que terminen los enriquecimientos en curso."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ----------------------------- internos -----------------------------

    @staticmethod
    def _needs_enrichment(chat: UserChatSummary) -> bool:
        return chat.other_user_name == UNKNOWN_USER and bool(chat.other_user_id)

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _enrich_and_emit(self, chats, generation, current_generation, subscription, callback) -> None:
        targets = [c for c in chats if self._needs_enrichment(c)]
        results = await asyncio.gather(
            *(self.resolve_name(c.other_user_id) for c in targets),
            return_exceptions=True,
        )

        resolved: Dict[str, str] = {}
        for chat, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("%s", EnrichmentLookupError(chat.other_user_id, "enrichment", result))
            elif result:
                resolved[chat.chat_room_id] = result

        # Sin cancelación de búsquedas: si ya no hay suscriptor o llegó un
        # snapshot más nuevo, el resultado se descarta.
        if subscription.closed or generation != current_generation():
            logger.debug("Enriquecimiento descartado (suscripción cerrada o snapshot viejo)")
            return

        enriched = [
            c.model_copy(update={"other_user_name": resolved[c.chat_room_id]})
            if c.chat_room_id in resolved else c
            for c in chats
        ]
        callback(_sort_chats(enriched))
