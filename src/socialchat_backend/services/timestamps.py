# src/socialchat_backend/services/timestamps.py
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_dt(v: Any) -> Optional[datetime]:
    """Acepta datetime o ISO con o sin 'Z'; cualquier otra cosa es None."""
    if not v:
        return None
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    try:
        dt = datetime.fromisoformat(str(v).replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def newest_first(items: Iterable[T], key: Callable[[T], Optional[datetime]]) -> List[T]:
    """
    Orden descendente por fecha, estable para empates. Los elementos sin
    fecha van al final, en el orden de entrada.
    """
    items = list(items)
    dated = [i for i in items if key(i) is not None]
    undated = [i for i in items if key(i) is None]
    return sorted(dated, key=key, reverse=True) + undated
