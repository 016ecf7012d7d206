"""
Parsing of the date/time strings returned by the RomM API.

The server is not consistent about its timestamp format (offset-aware
RFC 3339, with or without fractional seconds, or a bare database-style
date/time), so every ``updated_at`` goes through ``parse_timestamp`` before
local and remote files are compared.
"""

import functools
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_SECOND = 1_000_000_000

# Tried in order, first match wins
_FORMATS = (
    ('rfc3339-fraction', re.compile(
        r'^(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})'
        r'\.(?P<fraction>\d{1,9})(?P<zone>Z|[+-]\d{2}:\d{2})$', re.ASCII)),
    ('rfc3339', re.compile(
        r'^(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})'
        r'(?P<zone>Z|[+-]\d{2}:\d{2})$', re.ASCII)),
    ('db', re.compile(
        r'^(?P<date>\d{4}-\d{2}-\d{2}) (?P<time>\d{2}:\d{2}:\d{2})$', re.ASCII)),
    ('iso-naive', re.compile(
        r'^(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})$', re.ASCII)),
)


class TimestampParseError(ValueError):
    """Raised when a timestamp matches none of the supported formats"""

    def __init__(self, text):
        self.text = text
        super().__init__(f"failed to parse timestamp {text!r} with any supported format")


@functools.total_ordering
class Timestamp:
    """
    An instant with nanosecond precision.

    Stored as whole seconds since the Unix epoch plus a nanosecond
    component, so two timestamps written with different UTC offsets
    compare equal when they name the same instant.
    """

    __slots__ = ('_seconds', '_nanosecond')

    def __init__(self, seconds: int, nanosecond: int = 0):
        if not 0 <= nanosecond < _NANOS_PER_SECOND:
            raise ValueError(f"nanosecond out of range: {nanosecond}")
        self._seconds = int(seconds)
        self._nanosecond = int(nanosecond)

    @classmethod
    def from_datetime(cls, dt: datetime, nanosecond: Optional[int] = None) -> 'Timestamp':
        """Build from a datetime; naive values are taken as UTC."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delta = dt.replace(microsecond=0) - _EPOCH
        if nanosecond is None:
            nanosecond = dt.microsecond * 1000
        return cls(delta.days * 86400 + delta.seconds, nanosecond)

    @property
    def seconds(self) -> int:
        return self._seconds

    @property
    def nanosecond(self) -> int:
        return self._nanosecond

    @property
    def datetime(self) -> datetime:
        """Aware UTC datetime (sub-microsecond digits are dropped)."""
        return _EPOCH + timedelta(seconds=self._seconds, microseconds=self._nanosecond // 1000)

    def timestamp(self) -> float:
        return self._seconds + self._nanosecond / _NANOS_PER_SECOND

    def isoformat(self) -> str:
        text = self.datetime.strftime('%Y-%m-%dT%H:%M:%S')
        if self._nanosecond:
            text += ('.%09d' % self._nanosecond).rstrip('0')
        return text + 'Z'

    def _key(self):
        return self._seconds, self._nanosecond

    # Only Timestamps compare; convert datetimes with from_datetime first
    def __eq__(self, other):
        if not isinstance(other, Timestamp):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        if not isinstance(other, Timestamp):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return f"Timestamp({self.isoformat()!r})"

    def __str__(self):
        return self.isoformat()


def _zone_offset(zone: Optional[str]) -> Optional[timezone]:
    if zone is None or zone == 'Z':
        return timezone.utc
    sign = -1 if zone[0] == '-' else 1
    hours, minutes = int(zone[1:3]), int(zone[4:6])
    if hours > 23 or minutes > 59:
        return None
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def _build(match) -> Optional[Timestamp]:
    groups = match.groupdict()
    tz = _zone_offset(groups.get('zone'))
    if tz is None:
        return None
    try:
        dt = datetime.strptime(f"{groups['date']} {groups['time']}", '%Y-%m-%d %H:%M:%S')
    except ValueError:
        return None
    fraction = groups.get('fraction') or ''
    nanosecond = int(fraction.ljust(9, '0')) if fraction else 0
    try:
        return Timestamp.from_datetime(dt.replace(tzinfo=tz), nanosecond)
    except OverflowError:
        return None


def parse_timestamp(text: str) -> Timestamp:
    """
    Parse a RomM timestamp string.

    Supported, in order: RFC 3339 with fractional seconds (up to
    nanoseconds), RFC 3339 without them, ``YYYY-MM-DD HH:MM:SS`` and
    ``YYYY-MM-DDTHH:MM:SS``. The last two carry no zone and are read as UTC.

    Args:
        text: Timestamp as sent by the server

    Returns:
        Timestamp for the parsed instant

    Raises:
        TimestampParseError: If no supported format matches
    """
    if isinstance(text, str):
        for _name, pattern in _FORMATS:
            match = pattern.fullmatch(text)
            if not match:
                continue
            parsed = _build(match)
            if parsed is not None:
                return parsed
    raise TimestampParseError(text)


def format_timestamp(value: Union[datetime, float, int]) -> str:
    """Render a datetime or POSIX mtime as an RFC 3339 UTC string."""
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    else:
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    return dt.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
