# src/socialchat_backend/stores/supabase_store.py
"""
Store de chat sobre Supabase (PostgREST + Realtime).

- Las consultas filtran por UN solo campo (participants / chatRoomId) y no
  ordenan: el orden se hace del lado del cliente.
- Los watches escuchan `postgres_changes` y, ante cualquier cambio, vuelven
  a leer el conjunto filtrado completo y lo entregan como snapshot.
- La creación condicional usa upsert con ignore_duplicates sobre la PK.
"""
import asyncio
import logging
from typing import List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from ..exceptions import ChatStoreError, SubscriptionError, TransientStoreError
from .base import (
    MESSAGES_TABLE,
    POSTS_TABLE,
    ROOMS_TABLE,
    USERS_TABLE,
    ChatStore,
    ErrorHandler,
    Row,
    SnapshotHandler,
    UserDirectoryClient,
    Watch,
)

logger = logging.getLogger(__name__)

# Estados del canal que significan que la suscripción se perdió
_CHANNEL_FAILURES = {"CHANNEL_ERROR", "TIMED_OUT"}


async def _run(builder):
    """Ejecuta un query builder traduciendo los errores del cliente."""
    try:
        return await builder.execute()
    except httpx.TransportError as e:
        raise TransientStoreError(f"Supabase no disponible: {e}") from e
    except APIError as e:
        raise ChatStoreError(f"Error de Supabase: {getattr(e, 'message', None) or e}") from e


class SupabaseChatStore(ChatStore):

    def __init__(self, client: AsyncClient, schema: str = "public"):
        self.client = client
        self.schema = schema

    async def get_room(self, room_id: str) -> Optional[Row]:
        res = await _run(self.client.table(ROOMS_TABLE).select("*").eq("id", room_id).limit(1))
        rows = res.data or []
        return rows[0] if rows else None

    async def find_rooms_with_participant(self, user_id: str) -> List[Row]:
        res = await _run(
            self.client.table(ROOMS_TABLE).select("*").contains("participants", [user_id])
        )
        return res.data or []

    async def create_room(self, data: Row) -> str:
        # id y createdAt los asigna la BD (defaults de la tabla)
        res = await _run(self.client.table(ROOMS_TABLE).insert(data))
        if not res.data:
            raise ChatStoreError("No se pudo crear la sala")
        return res.data[0]["id"]

    async def create_room_if_absent(self, room_id: str, data: Row) -> bool:
        payload = {**data, "id": room_id}
        res = await _run(
            self.client.table(ROOMS_TABLE).upsert(payload, on_conflict="id", ignore_duplicates=True)
        )
        # Con ignore-duplicates solo vuelven las filas realmente insertadas
        return bool(res.data)

    async def add_message(self, data: Row) -> Row:
        res = await _run(self.client.table(MESSAGES_TABLE).insert(data))
        if not res.data:
            raise ChatStoreError("No se pudo insertar el mensaje")
        return res.data[0]

    async def update_room(self, room_id: str, fields: Row) -> None:
        res = await _run(self.client.table(ROOMS_TABLE).update(fields).eq("id", room_id))
        # PostgREST no falla si el filtro no encuentra filas
        if not res.data:
            raise ChatStoreError(f"No existe la sala {room_id}")

    async def watch_messages(self, room_id: str, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> Watch:
        def read():
            return self.client.table(MESSAGES_TABLE).select("*").eq("chatRoomId", room_id)

        return await self._watch(
            topic=f"messages:{room_id}",
            table=MESSAGES_TABLE,
            row_filter=f"chatRoomId=eq.{room_id}",
            read=read,
            on_snapshot=on_snapshot,
            on_error=on_error,
        )

    async def watch_rooms(self, user_id: str, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> Watch:
        def read():
            return self.client.table(ROOMS_TABLE).select("*").contains("participants", [user_id])

        # Realtime no filtra por "array contiene": se escucha la tabla y el
        # filtro lo aplica la relectura.
        return await self._watch(
            topic=f"rooms:{user_id}",
            table=ROOMS_TABLE,
            row_filter=None,
            read=read,
            on_snapshot=on_snapshot,
            on_error=on_error,
        )

    async def _watch(self, topic, table, row_filter, read, on_snapshot, on_error) -> Watch:
        lock = asyncio.Lock()
        tasks = set()
        closed = False

        async def refresh() -> None:
            async with lock:
                if closed:
                    return
                try:
                    res = await _run(read())
                except ChatStoreError as e:
                    logger.error("Error leyendo snapshot de %s: %s", topic, e)
                    error = e
                except Exception as e:
                    logger.exception("Fallo inesperado releyendo %s", topic)
                    error = SubscriptionError(f"No se pudo releer {topic}: {e}")
                else:
                    error = None
                if closed:
                    return
                if error is not None:
                    on_error(error)
                else:
                    on_snapshot(res.data or [])

        def schedule_refresh(_payload=None) -> None:
            task = asyncio.ensure_future(refresh())
            tasks.add(task)
            task.add_done_callback(tasks.discard)

        def on_status(status, err=None) -> None:
            state = getattr(status, "value", status)
            if state == "SUBSCRIBED":
                schedule_refresh()
            elif state in _CHANNEL_FAILURES:
                logger.error("Canal %s en estado %s: %s", topic, state, err)
                on_error(SubscriptionError(f"Canal {topic}: {state} ({err})"))

        channel = self.client.channel(topic)
        kwargs = {"schema": self.schema, "table": table, "callback": schedule_refresh}
        if row_filter:
            kwargs["filter"] = row_filter
        channel.on_postgres_changes("*", **kwargs)
        try:
            await channel.subscribe(on_status)
        except Exception as e:
            await self.client.remove_channel(channel)
            raise SubscriptionError(f"No se pudo suscribir a {topic}: {e}") from e

        async def cancel() -> None:
            nonlocal closed
            closed = True
            # Las relecturas en curso terminan, pero ya no entregan snapshot
            await self.client.remove_channel(channel)

        return Watch(cancel)


class SupabaseUserDirectory(UserDirectoryClient):

    def __init__(self, client: AsyncClient):
        self.client = client

    async def get_profile(self, user_id: str) -> Optional[Row]:
        res = await _run(self.client.table(USERS_TABLE).select("*").eq("id", user_id).limit(1))
        rows = res.data or []
        return rows[0] if rows else None

    async def list_profiles(self) -> List[Row]:
        res = await _run(self.client.table(USERS_TABLE).select("id, displayName, email, photoURL"))
        return res.data or []

    async def latest_post_by(self, user_id: str) -> Optional[Row]:
        res = await _run(
            self.client.table(POSTS_TABLE)
            .select("userId, userName, createdAt")
            .eq("userId", user_id)
            .order("createdAt", desc=True)
            .limit(1)
        )
        rows = res.data or []
        return rows[0] if rows else None
