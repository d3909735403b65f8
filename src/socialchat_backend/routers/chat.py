# src/socialchat_backend/routers/chat.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from ..dependencies import (
    get_chat_list,
    get_current_user_id,
    get_message_stream,
    get_room_registry,
    get_ws_user_id,
)
from ..exceptions import ChatStoreError, SubscriptionError
from ..models.ChatModels import (
    ChatRoomCreate,
    ChatRoomRef,
    Message,
    MessageCreate,
    MessageUser,
    UserStub,
)
from ..services.chat_list import ChatListAggregator
from ..services.chat_rooms import ChatRoomRegistry
from ..services.display_names import resolve_display_name
from ..services.live import LiveFeed
from ..services.messages import MessageStream
from ..stores.base import ChatStore, UserDirectoryClient
from ..supabase_client import get_chat_store, get_user_directory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chats", tags=["chats"])

# ----------------------------- utils -----------------------------

async def _profile_or_lookup(given: Optional[Any], user_id: str, directory: UserDirectoryClient) -> dict:
    if given is not None:
        return given.model_dump(by_alias=True, exclude_none=True)
    return await directory.get_profile(user_id) or {}

async def _require_member(store: ChatStore, room_id: str, user_id: str) -> dict:
    room = await store.get_room(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Chat no encontrado")
    if user_id not in (room.get("participants") or []):
        raise HTTPException(status_code=403, detail="No participas en este chat")
    return room

def _dump(snapshot: List[Any]) -> List[dict]:
    return [item.model_dump(mode="json", by_alias=True) for item in snapshot]

async def _pump(websocket: WebSocket, feed: LiveFeed) -> None:
    """
    Reenvía cada snapshot como arreglo JSON. Cuando el cliente cierra el
    socket se cancela la suscripción.
    """
    async def watch_disconnect() -> None:
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await feed.aclose()

    waiter = asyncio.create_task(watch_disconnect())
    try:
        async for snapshot in feed:
            await websocket.send_json(_dump(snapshot))
    except SubscriptionError as e:
        # Sin re-suscripción automática: el cliente decide si reconecta
        logger.error("Feed en vivo cerrado por error: %s", e)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Suscripción perdida")
    except WebSocketDisconnect:
        pass
    finally:
        waiter.cancel()
        await feed.aclose()

async def _serve(websocket: WebSocket, open_feed: Callable[[], Awaitable[LiveFeed]]) -> None:
    await websocket.accept()
    try:
        feed = await open_feed()
    except ChatStoreError as e:
        logger.error("No se pudo abrir el feed en vivo: %s", e)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Suscripción no disponible")
        return
    await _pump(websocket, feed)

# --------------------------- endpoints ---------------------------

@router.post("", response_model=ChatRoomRef)
async def get_or_create_chat(
    body: ChatRoomCreate,
    user_id: str = Depends(get_current_user_id),
    registry: ChatRoomRegistry = Depends(get_room_registry),
    directory: UserDirectoryClient = Depends(get_user_directory),
):
    """
    Devuelve la sala 1:1 entre el usuario autenticado y otherUserId,
    creándola si no existe. Si no vienen los perfiles se leen de `users`.
    """
    me = await _profile_or_lookup(body.me, user_id, directory)
    other = await _profile_or_lookup(body.other, body.other_user_id, directory)
    try:
        room_id = await registry.get_or_create_chat_room(user_id, body.other_user_id, me, other)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ChatRoomRef(chat_room_id=room_id)


@router.get("/users", response_model=List[UserStub], response_model_exclude_none=True)
async def list_users_for_new_chat(
    user_id: str = Depends(get_current_user_id),
    chat_list: ChatListAggregator = Depends(get_chat_list),
):
    return await chat_list.get_all_users(user_id)


@router.post("/{room_id}/messages", response_model=Message, status_code=201)
async def send_message(
    room_id: str,
    body: MessageCreate,
    user_id: str = Depends(get_current_user_id),
    messages: MessageStream = Depends(get_message_stream),
    store: ChatStore = Depends(get_chat_store),
    directory: UserDirectoryClient = Depends(get_user_directory),
):
    """
    Agrega un mensaje a la sala. El remitente por defecto es el usuario
    autenticado; si el cliente manda `user`, su id tiene que coincidir.
    """
    await _require_member(store, room_id, user_id)

    if body.user is not None:
        if body.user.id != user_id:
            raise HTTPException(status_code=403, detail="No puedes enviar mensajes como otro usuario")
        sender = body.user
    else:
        profile = await directory.get_profile(user_id) or {}
        sender = MessageUser(
            id=user_id,
            name=resolve_display_name(profile),
            avatar=profile.get("photoURL") or None,
        )

    return await messages.send(room_id, body.text, sender.model_dump(exclude_none=True))


@router.websocket("/ws/rooms/{room_id}/messages")
async def messages_feed(
    websocket: WebSocket,
    room_id: str,
    user_id: str = Depends(get_ws_user_id),
    messages: MessageStream = Depends(get_message_stream),
    store: ChatStore = Depends(get_chat_store),
):
    """Mensajes de la sala en vivo, más nuevo primero."""
    room = await store.get_room(room_id)
    if room is None or user_id not in (room.get("participants") or []):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Chat no disponible")
        return

    await _serve(websocket, lambda: messages.stream(room_id))


@router.websocket("/ws/me")
async def my_chats_feed(
    websocket: WebSocket,
    user_id: str = Depends(get_ws_user_id),
    chat_list: ChatListAggregator = Depends(get_chat_list),
):
    """Lista de chats del usuario en vivo, ordenada por último mensaje."""
    await _serve(websocket, lambda: chat_list.stream(user_id))
