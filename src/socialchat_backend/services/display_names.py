# src/socialchat_backend/services/display_names.py
from typing import Any, Mapping, Optional

UNKNOWN_USER = "Unknown User"

# Campos alternativos de nombre que traen algunos perfiles
ALT_PROFILE_NAME_FIELDS = ("name", "fullName", "username")


def blank_to_none(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def resolve_display_name(data: Optional[Mapping[str, Any]]) -> str:
    """displayName (no vacío) -> email -> "Unknown User"."""
    data = data or {}
    name = blank_to_none(data.get("displayName"))
    if name:
        return name
    return data.get("email") or UNKNOWN_USER


def name_from_profile(profile: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Nombre de un perfil de `users`, o None si no tiene nada utilizable."""
    if not profile:
        return None
    for field in ("displayName",) + ALT_PROFILE_NAME_FIELDS + ("email",):
        value = blank_to_none(profile.get(field))
        if value:
            return value.strip()
    return None


def name_from_post(post: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not post:
        return None
    value = blank_to_none(post.get("userName"))
    return value.strip() if value else None
