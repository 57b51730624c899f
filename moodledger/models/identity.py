"""
Record Identifiers

Every record id lives in one of two spaces:

- LocalId: generated on this device, never seen by the remote store
- ServerId: assigned by the remote store (canonical UUID text)

DESIGN DECISION: The two spaces are distinct types rather than plain
strings checked by shape at every call site. Text is turned into a typed
id in exactly one place (parse_record_id), which runs when records are
loaded, imported or pulled from the remote store.

Both types subclass str, so they compare, hash and serialize like the
text they wrap.
"""

import re
from typing import Any
from uuid import UUID, uuid4

from pydantic_core import core_schema


SERVER_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

LOCAL_ID_PREFIX = "local-"


class RecordId(str):
    """Base type for record identifiers. Use LocalId or ServerId."""

    __slots__ = ()

    @property
    def is_server(self) -> bool:
        return isinstance(self, ServerId)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any):
        return core_schema.no_info_plain_validator_function(
            parse_record_id,
            serialization=core_schema.to_string_ser_schema(),
        )


class LocalId(RecordId):
    """Identifier generated on this device."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"LocalId({str(self)!r})"


class ServerId(RecordId):
    """Identifier assigned by the remote store."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"ServerId({str(self)!r})"


def is_server_shaped(value: str) -> bool:
    """Does this text look like an id assigned by the remote store?"""
    return bool(SERVER_ID_PATTERN.match(value or ""))


def new_local_id() -> LocalId:
    """
    Generate a collision-resistant local identifier.

    The prefix and the undashed hex body guarantee the result can
    never be mistaken for a server id.
    """
    return LocalId(f"{LOCAL_ID_PREFIX}{uuid4().hex}")


def parse_record_id(value: Any) -> RecordId:
    """
    Translate raw text into a typed record id.

    Raises:
        ValueError: If the value is empty or not text
    """
    if isinstance(value, RecordId):
        return value
    if isinstance(value, UUID):
        return ServerId(str(value))
    if isinstance(value, int) and not isinstance(value, bool):
        # Older exports used millisecond timestamps as ids
        value = str(value)
    if not isinstance(value, str):
        raise ValueError(f"Record id must be text, got {type(value).__name__}")

    text = value.strip()
    if not text:
        raise ValueError("Record id cannot be empty")
    if is_server_shaped(text):
        return ServerId(text.lower())
    return LocalId(text)
