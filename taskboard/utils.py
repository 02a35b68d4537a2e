import hashlib
import re
import uuid
from datetime import datetime, timezone
from typing import Iterable, TypeVar

T = TypeVar("T")

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def new_uuid() -> str:
    return str(uuid.uuid4())


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def is_hex_color(value: str) -> bool:
    return bool(HEX_COLOR.match(value))


def renumber(items: Iterable[T]) -> list[T]:
    """Rewrite ``position`` on each item to its index (0..n-1) and return them."""
    out = list(items)
    for index, item in enumerate(out):
        item.position = index
    return out
