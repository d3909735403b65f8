# src/socialchat_backend/services/chat_rooms.py
import logging
from typing import Any, Mapping, Optional

from ..exceptions import ChatStoreError
from ..stores.base import ChatStore, Row
from .display_names import resolve_display_name

logger = logging.getLogger(__name__)

Profile = Optional[Mapping[str, Any]]


def room_key(user_id_a: str, user_id_b: str) -> str:
    """
    Id determinístico de la sala 1:1: el par ordenado, así A,B y B,A coinciden.

    Si algún id ya trae "_", la unión simple sería ambigua ("a_b"+"c" y
    "a"+"b_c"), así que se antepone el largo del primero: "3:a_b_c" vs
    "1:a_b_c". Una clave simple tiene un solo "_" y una con prefijo al
    menos dos, por lo que nunca coinciden.
    """
    low, high = sorted((user_id_a, user_id_b))
    if "_" in low or "_" in high:
        return f"{len(low)}:{low}_{high}"
    return f"{low}_{high}"


def _is_pair(room: Row, user_id_a: str, user_id_b: str) -> bool:
    return set(room.get("participants") or []) == {user_id_a, user_id_b}


def participant_snapshot(profile: Profile) -> Row:
    profile = profile or {}
    return {
        "displayName": resolve_display_name(profile),
        "email": profile.get("email") or "",
        "photoURL": profile.get("photoURL") or "",
    }


class ChatRoomRegistry:
    """Busca o crea la única sala entre dos participantes."""

    def __init__(self, store: ChatStore):
        self.store = store

    async def get_or_create_chat_room(
        self,
        user_id_a: str,
        user_id_b: str,
        profile_a: Profile = None,
        profile_b: Profile = None,
    ) -> str:
        """
        Devuelve el id de la sala entre A y B, creándola si no existe.

        1) Sala con el id determinístico del par.
        2) Salas antiguas con id asignado por el store: consulta por
           `participants` contiene A y se filtra B en memoria.
        3) Creación condicional con el id determinístico; si otra llamada
           concurrente la creó primero, se devuelve esa misma.

        Los errores del store se propagan; los ids vacíos no se validan aquí.
        """
        if user_id_a == user_id_b:
            raise ValueError("No se puede crear un chat con uno mismo")
        key = room_key(user_id_a, user_id_b)

        existing = await self.store.get_room(key)
        if existing is not None:
            if not _is_pair(existing, user_id_a, user_id_b):
                raise ChatStoreError(f"La sala {key} pertenece a otros participantes")
            logger.debug("Sala %s encontrada para %s y %s", key, user_id_a, user_id_b)
            return key

        for room in await self.store.find_rooms_with_participant(user_id_a):
            if user_id_b in (room.get("participants") or []):
                logger.debug("Sala previa %s encontrada para %s y %s", room["id"], user_id_a, user_id_b)
                return room["id"]

        created = await self.store.create_room_if_absent(key, {
            "participants": [user_id_a, user_id_b],
            "lastMessage": "",
            "lastMessageTime": None,
            "participantDetails": {
                user_id_a: participant_snapshot(profile_a),
                user_id_b: participant_snapshot(profile_b),
            },
        })
        if created:
            logger.info("Sala %s creada entre %s y %s", key, user_id_a, user_id_b)
        else:
            logger.debug("Sala %s creada por otra llamada concurrente", key)
        return key
