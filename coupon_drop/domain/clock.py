from __future__ import annotations

import datetime

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
ONE_MS = datetime.timedelta(milliseconds=1)

CLAIM_NOW = "You can claim now"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def to_epoch_ms(dt: datetime.datetime) -> int:
    return (dt - EPOCH) // ONE_MS


def from_epoch_ms(ms: int) -> datetime.datetime:
    return EPOCH + datetime.timedelta(milliseconds=int(ms))


def add_ms(dt: datetime.datetime, ms: int) -> datetime.datetime:
    return dt + datetime.timedelta(milliseconds=ms)


def ms_between(start: datetime.datetime, end: datetime.datetime) -> int:
    """Whole milliseconds from ``start`` to ``end`` (negative if end is earlier)."""
    return to_epoch_ms(end) - to_epoch_ms(start)


def isoformat(dt: datetime.datetime) -> str:
    # same shape as JS Date.toISOString(): 2024-01-01T00:00:00.000Z
    return dt.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_time(ms: int) -> str:
    """
    Render a millisecond duration as "1h 1m 1s", dropping zero parts.

    The browser countdown derives the same string on its own, so the
    decomposition is plain floor division with no carrying. Non-positive
    input gives the CLAIM_NOW sentinel; a positive value under one second
    gives an empty string.
    """
    if ms <= 0:
        return CLAIM_NOW

    hours = ms // 3_600_000
    minutes = (ms // 60_000) % 60
    seconds = (ms // 1000) % 60

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if seconds > 0:
        parts.append(f"{seconds}s")
    return " ".join(parts)
