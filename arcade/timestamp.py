"""Timestamps exchanged with clients and stored in the database."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

_UTC = timezone.utc
_ZERO_TIME = datetime(1, 1, 1, tzinfo=_UTC)
_INVALID_JSON = "failed to unmarshal timestamp, invalid timestamp"
_PATTERN = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})(?:[.,]([0-9]{1,9}))?"
)


def format_timestamp(moment: datetime) -> str:
    """Format a moment as ``YYYY-MM-DDTHH:MM:SS`` with trailing zeros of the fraction trimmed."""
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += f".{moment.microsecond:06d}".rstrip("0")
    return text


def parse_timestamp(text: str) -> datetime:
    """Parse a timestamp in the wire format; the result is in UTC."""
    match = _PATTERN.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid timestamp: {text!r}")
    year, month, day, hour, minute, second, fraction = match.groups()
    microsecond = int((fraction or "")[:6].ljust(6, "0"))
    try:
        return datetime(
            int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second),
            microsecond,
            tzinfo=_UTC,
        )
    except ValueError as exc:
        raise ValueError(f"invalid timestamp: {text!r}: {exc}") from exc


@dataclass(frozen=True)
class Timestamp:
    """A point in time with a fixed JSON representation."""

    time: datetime = _ZERO_TIME

    def format(self) -> str:
        """Format the time in its own zone."""
        return format_timestamp(self.time)

    def to_json(self) -> str:
        """Return the JSON string literal for this timestamp, in UTC."""
        moment = self.time if self.time.tzinfo is None else self.time.astimezone(_UTC)
        return f'"{format_timestamp(moment)}"'

    @classmethod
    def from_json(cls, data: str | bytes) -> Timestamp:
        """Build a timestamp from a JSON string literal."""
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        if len(text) <= 2 or text[0] != '"' or text[-1] != '"':
            raise ValueError(_INVALID_JSON)
        return cls(parse_timestamp(text[1:-1]))

    @classmethod
    def from_db(cls, value: object) -> Timestamp:
        """Build a timestamp from a database column value."""
        if value is None:
            return cls()
        if isinstance(value, datetime):
            return cls(value)
        raise TypeError(f"Scan: unable to scan type {type(value).__name__} into Timestamp")