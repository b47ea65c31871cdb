import re
import secrets

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

OBJECT_ID_LENGTH = 24
_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")


def generate_object_id() -> str:
    return secrets.token_hex(OBJECT_ID_LENGTH // 2)


def is_object_id(value: object) -> bool:
    """True for 24-character hexadecimal strings, the primary key format."""
    return isinstance(value, str) and bool(_OBJECT_ID_RE.fullmatch(value))


class ObjectIdString(TypeDecorator):
    """24-hex primary keys, stored lowercase so lookups are case-insensitive."""

    impl = String(OBJECT_ID_LENGTH)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value).lower()

    def process_result_value(self, value, dialect):
        return value


__all__ = ["ObjectIdString", "generate_object_id", "is_object_id"]
