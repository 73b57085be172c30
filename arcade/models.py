"""User records and the requests that change them."""

from __future__ import annotations

import string
import uuid
from dataclasses import dataclass, field

from arcade.timestamp import Timestamp

MAX_LOGIN_LEN = 256
MAX_PUBLIC_KEY_LEN = 4096

DEFAULT_USER_FILTER_LIMIT = 50
MAX_USER_FILTER_LIMIT = 100

_HEX = frozenset(string.hexdigits)
_URN_PREFIX = "urn:uuid:"


def parse_id(text: str) -> uuid.UUID:
    """Parse a UUID in canonical, braced, URN or bare hex form."""
    length = len(text.encode("utf-8"))
    if length == 32:
        if not set(text) <= _HEX:
            raise ValueError("invalid UUID format")
        return uuid.UUID(hex=text)
    if length == 36 + len(_URN_PREFIX):
        if text[: len(_URN_PREFIX)].lower() != _URN_PREFIX:
            raise ValueError(f"invalid urn prefix: {text[:len(_URN_PREFIX)]!r}")
        text = text[len(_URN_PREFIX):]
    elif length == 38:
        text = text[1:]
    elif length != 36:
        raise ValueError(f"invalid UUID length: {length}")

    if any(text[pos] != "-" for pos in (8, 13, 18, 23)):
        raise ValueError("invalid UUID format")
    digits = text[:36].replace("-", "")
    if len(digits) != 32 or not set(digits) <= _HEX:
        raise ValueError("invalid UUID format")
    return uuid.UUID(hex=digits)


@dataclass
class User:
    """A user of the game."""

    id: uuid.UUID
    login: str
    public_key: bytes
    player_id: uuid.UUID
    created: Timestamp = field(default_factory=Timestamp)
    updated: Timestamp = field(default_factory=Timestamp)


@dataclass(frozen=True)
class Filter:
    """Restricts a list of users to a window of the results."""

    offset: int = 0
    limit: int = 0


@dataclass(frozen=True)
class Change:
    """The fields of a user that a create or update sets."""

    login: str
    public_key: bytes


@dataclass(frozen=True)
class AssociatePlayer:
    """The player to associate with a user."""

    player_id: uuid.UUID