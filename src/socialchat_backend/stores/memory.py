# src/socialchat_backend/stores/memory.py
"""
Store en memoria con el mismo contrato que el de Supabase.

Se usa en los tests y para desarrollo local (CHAT_STORE=memory). Cada
escritura vuelve a evaluar los watches y les entrega el snapshot completo
de forma síncrona, igual que un listener de snapshots.
"""
import copy
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ..exceptions import ChatStoreError
from .base import (
    ChatStore,
    ErrorHandler,
    Row,
    SnapshotHandler,
    UserDirectoryClient,
    Watch,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Watcher:
    def __init__(self, matches: Callable[[Row], bool], on_snapshot: SnapshotHandler, on_error: ErrorHandler):
        self.matches = matches
        self.on_snapshot = on_snapshot
        self.on_error = on_error


class InMemoryChatStore(ChatStore):

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock
        self.rooms: Dict[str, Row] = {}
        self.messages: Dict[str, Row] = {}
        self._room_watchers: List[_Watcher] = []
        self._message_watchers: List[_Watcher] = []

    # ----------------------------- salas -----------------------------

    async def get_room(self, room_id: str) -> Optional[Row]:
        room = self.rooms.get(room_id)
        return copy.deepcopy(room) if room is not None else None

    async def find_rooms_with_participant(self, user_id: str) -> List[Row]:
        return [
            copy.deepcopy(r) for r in self.rooms.values()
            if user_id in r.get("participants", [])
        ]

    async def create_room(self, data: Row) -> str:
        room_id = uuid.uuid4().hex
        self._insert_room(room_id, data)
        return room_id

    async def create_room_if_absent(self, room_id: str, data: Row) -> bool:
        if room_id in self.rooms:
            return False
        self._insert_room(room_id, data)
        return True

    async def update_room(self, room_id: str, fields: Row) -> None:
        if room_id not in self.rooms:
            # Igual que updateDoc sobre un documento inexistente
            raise ChatStoreError(f"No existe la sala {room_id}")
        self.rooms[room_id].update(copy.deepcopy(fields))
        self._notify(self._room_watchers, self.rooms)

    def _insert_room(self, room_id: str, data: Row) -> None:
        row = copy.deepcopy(data)
        row["id"] = room_id
        row["createdAt"] = self.clock()
        self.rooms[room_id] = row
        self._notify(self._room_watchers, self.rooms)

    # ---------------------------- mensajes ----------------------------

    async def add_message(self, data: Row) -> Row:
        row = copy.deepcopy(data)
        row["id"] = uuid.uuid4().hex
        row["createdAt"] = self.clock()
        self.messages[row["id"]] = row
        self._notify(self._message_watchers, self.messages)
        return copy.deepcopy(row)

    # ----------------------------- watches -----------------------------

    async def watch_messages(self, room_id: str, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> Watch:
        watcher = _Watcher(lambda r: r.get("chatRoomId") == room_id, on_snapshot, on_error)
        return self._register(self._message_watchers, watcher, self.messages)

    async def watch_rooms(self, user_id: str, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> Watch:
        watcher = _Watcher(lambda r: user_id in r.get("participants", []), on_snapshot, on_error)
        return self._register(self._room_watchers, watcher, self.rooms)

    def emit_error(self, exc: Exception) -> None:
        """Simula la caída del canal en vivo para todos los watches activos."""
        for watcher in list(self._room_watchers) + list(self._message_watchers):
            watcher.on_error(exc)

    def _register(self, watchers: List[_Watcher], watcher: _Watcher, rows: Dict[str, Row]) -> Watch:
        watchers.append(watcher)

        async def _remove() -> None:
            if watcher in watchers:
                watchers.remove(watcher)

        # Snapshot inicial, como el primer evento de un listener
        watcher.on_snapshot(self._select(watcher, rows))
        return Watch(_remove)

    def _notify(self, watchers: List[_Watcher], rows: Dict[str, Row]) -> None:
        for watcher in list(watchers):
            watcher.on_snapshot(self._select(watcher, rows))

    @staticmethod
    def _select(watcher: _Watcher, rows: Dict[str, Row]) -> List[Row]:
        return [copy.deepcopy(r) for r in rows.values() if watcher.matches(r)]


class InMemoryUserDirectory(UserDirectoryClient):

    def __init__(self, profiles: Optional[Dict[str, Row]] = None, posts: Optional[List[Row]] = None):
        self.profiles: Dict[str, Row] = dict(profiles or {})
        self.posts: List[Row] = list(posts or [])

    async def get_profile(self, user_id: str) -> Optional[Row]:
        profile = self.profiles.get(user_id)
        if profile is None:
            return None
        return {"id": user_id, **profile}

    async def list_profiles(self) -> List[Row]:
        return [{"id": uid, **p} for uid, p in self.profiles.items()]

    async def latest_post_by(self, user_id: str) -> Optional[Row]:
        authored = [p for p in self.posts if p.get("userId") == user_id]
        if not authored:
            return None
        return max(authored, key=lambda p: p.get("createdAt") or datetime.min.replace(tzinfo=timezone.utc))
