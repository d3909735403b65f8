# src/socialchat_backend/stores/base.py
"""
Contrato del store de documentos que usa el subsistema de chat.

Las filas se manejan como dicts con los nombres de campo persistidos
(camelCase) más la clave "id". Los watches entregan SIEMPRE el conjunto
completo que cumple el filtro (no deltas) y sin orden: el orden se aplica
del lado del cliente para no requerir índices compuestos.
"""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

Row = Dict[str, Any]
SnapshotHandler = Callable[[List[Row]], None]
ErrorHandler = Callable[[Exception], None]

ROOMS_TABLE = "chatRooms"
MESSAGES_TABLE = "messages"
USERS_TABLE = "users"
POSTS_TABLE = "posts"


class Watch:
    """Handle de una suscripción en vivo del store. cancel() es idempotente."""

    def __init__(self, on_cancel: Callable[[], Awaitable[None]]):
        self._on_cancel = on_cancel
        self.cancelled = False

    async def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        await self._on_cancel()


class ChatStore(ABC):

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[Row]:
        ...

    @abstractmethod
    async def find_rooms_with_participant(self, user_id: str) -> List[Row]:
        """Salas cuyo arreglo `participants` contiene user_id."""

    @abstractmethod
    async def create_room(self, data: Row) -> str:
        """Crea una sala con id asignado por el store."""

    @abstractmethod
    async def create_room_if_absent(self, room_id: str, data: Row) -> bool:
        """
        Creación condicional con id elegido por el llamador. Devuelve False
        (sin modificar nada) si ya existe una sala con ese id.
        """

    @abstractmethod
    async def add_message(self, data: Row) -> Row:
        """Inserta un mensaje; el store estampa `createdAt` con su hora."""

    @abstractmethod
    async def update_room(self, room_id: str, fields: Row) -> None:
        ...

    @abstractmethod
    async def watch_messages(
        self, room_id: str, on_snapshot: SnapshotHandler, on_error: ErrorHandler
    ) -> Watch:
        ...

    @abstractmethod
    async def watch_rooms(
        self, user_id: str, on_snapshot: SnapshotHandler, on_error: ErrorHandler
    ) -> Watch:
        ...


class UserDirectoryClient(ABC):
    """Lectura de perfiles (colección externa `users`) y de posts del feed."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Row]:
        ...

    @abstractmethod
    async def list_profiles(self) -> List[Row]:
        ...

    @abstractmethod
    async def latest_post_by(self, user_id: str) -> Optional[Row]:
        ...
