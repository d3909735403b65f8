from fastapi import HTTPException, Header, Depends, Query, WebSocketException, status
from typing import Annotated, Any, Optional

from socialchat_backend.supabase_client import get_admin_client, get_chat_store, get_user_directory
from socialchat_backend.services.chat_list import ChatListAggregator
from socialchat_backend.services.chat_rooms import ChatRoomRegistry
from socialchat_backend.services.messages import MessageStream
from socialchat_backend.stores.base import ChatStore, UserDirectoryClient

async def get_current_user(authorization: Annotated[str | None, Header()] = None) -> Any:
    """
    Dependencia de FastAPI para obtener el usuario autenticado a partir
    del token 'Authorization: Bearer ...' (Supabase Auth).
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Falta el encabezado de autorización")

    token = authorization.replace("Bearer ", "").strip()
    if not token:
        raise HTTPException(status_code=401, detail="Token malformado")

    return _user_from_token(token)

def _user_from_token(token: str) -> Any:
    try:
        user_response = get_admin_client().auth.get_user(token)
    except Exception as e:
        raise HTTPException(status_code=401, detail=f"Error de autenticación: {str(e)}")

    if user_response is None or user_response.user is None:
        raise HTTPException(status_code=401, detail="Token inválido o sesión expirada")

    return user_response.user

def get_user_id(current_user: Any) -> Optional[str]:
    if current_user is None:
        return None
    if hasattr(current_user, "id") and current_user.id:
        return str(current_user.id)
    if isinstance(current_user, dict):
        return str(current_user.get("id") or current_user.get("user_id") or "") or None
    return None

async def get_current_user_id(current_user=Depends(get_current_user)) -> str:
    user_id = get_user_id(current_user)
    if not user_id:
        raise HTTPException(status_code=401, detail="No autorizado")
    return user_id

# ---------------------------------------------------------
# Servicios de chat: reciben el store global por inyección
# ---------------------------------------------------------
async def get_room_registry(store: ChatStore = Depends(get_chat_store)) -> ChatRoomRegistry:
    return ChatRoomRegistry(store)

async def get_message_stream(store: ChatStore = Depends(get_chat_store)) -> MessageStream:
    return MessageStream(store)

async def get_chat_list(
    store: ChatStore = Depends(get_chat_store),
    directory: UserDirectoryClient = Depends(get_user_directory),
) -> ChatListAggregator:
    return ChatListAggregator(store, directory)

async def get_ws_user_id(token: Optional[str] = Query(None)) -> str:
    """
    Los navegadores no mandan headers en un WebSocket: el token llega como
    query param (?token=...).
    """
    if not token:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Falta token")
    try:
        user_id = get_user_id(_user_from_token(token))
    except HTTPException as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=str(e.detail))
    if not user_id:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="No autorizado")
    return user_id
