# src/socialchat_backend/supabase_client.py
import os
from typing import Optional
from dotenv import load_dotenv, find_dotenv
from supabase import acreate_client, create_client, AsyncClient, Client

from .stores.base import ChatStore, UserDirectoryClient
from .stores.memory import InMemoryChatStore, InMemoryUserDirectory
from .stores.supabase_store import SupabaseChatStore, SupabaseUserDirectory

# Carga el .env EN ESTE MÓDULO, antes de leer variables
load_dotenv(find_dotenv(), override=False)

def _getenv(name: str) -> str:
    v = os.getenv(name)
    if not v:
        raise RuntimeError(
            f"Falta la variable de entorno {name}. "
            f"Define {name} en tu .env o exporta la variable antes de ejecutar el servidor."
        )
    return v

# "supabase" (default) o "memory" para desarrollo local sin backend
CHAT_STORE = os.getenv("CHAT_STORE", "supabase").strip().lower()

def _admin_key() -> str:
    # Clave de servicio (opcional). ÚSALA SOLO si necesitas bypass de RLS.
    return os.getenv("SUPABASE_SERVICE_ROLE_KEY") or _getenv("SUPABASE_ANON_KEY")

def get_admin_client() -> Client:
    """
    Cliente síncrono con privilegios altos (bypass RLS) si existe SERVICE_ROLE,
    si no, cae a ANON. Se usa para validar tokens de Supabase Auth.
    """
    return create_client(_getenv("SUPABASE_URL"), _admin_key())

# ---------------------------------------------------------
# Handle global del store: se crea una vez y nunca se cierra.
# Los servicios lo reciben por inyección (ver dependencies.py).
# ---------------------------------------------------------
_async_client: Optional[AsyncClient] = None
_chat_store: Optional[ChatStore] = None
_user_directory: Optional[UserDirectoryClient] = None

async def get_async_client() -> AsyncClient:
    global _async_client
    if _async_client is None:
        _async_client = await acreate_client(_getenv("SUPABASE_URL"), _admin_key())
    return _async_client

async def get_chat_store() -> ChatStore:
    global _chat_store
    if _chat_store is None:
        if CHAT_STORE == "memory":
            _chat_store = InMemoryChatStore()
        else:
            _chat_store = SupabaseChatStore(await get_async_client())
    return _chat_store

async def get_user_directory() -> UserDirectoryClient:
    global _user_directory
    if _user_directory is None:
        if CHAT_STORE == "memory":
            _user_directory = InMemoryUserDirectory()
        else:
            _user_directory = SupabaseUserDirectory(await get_async_client())
    return _user_directory
