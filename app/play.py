"""
Play: one track play, shared by reference.

A Play is a handle onto a record. Handles alias: copying a handle, or wrapping
it in a MutablePlay, still points at the same record, and edits through one
are visible through all. Call clone() when you need an independent copy.

Equality is record identity, not field comparison, so two plays of the same
song at the same second are still different plays.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Dict


class Source(IntEnum):
    # Stored in the scrobble cache. Never reorder or renumber.
    UNKNOWN = 0
    LASTFM_RADIO = 1
    PLAYER = 2
    MEDIA_DEVICE = 3
    NON_PERSONALISED_BROADCAST = 4   # e.g. Shoutcast, BBC Radio 1
    PERSONALISED_RECOMMENDATION = 5  # e.g. Pandora, but not Last.fm


@dataclass
class _PlayRecord:
    artist: str = ""
    album: str | None = None
    title: str = ""
    track_number: int = 0
    duration: int = 0  # seconds
    source: Source = Source.UNKNOWN
    mbid: str | None = None
    fingerprint_id: int | None = None
    url: str | None = None
    timestamp: datetime | None = None  # UTC start of playback
    extras: Dict[str, str] = field(default_factory=dict)
    null: bool = True
    uid: str = field(default_factory=lambda: uuid.uuid4().hex)


def _to_utc(when: datetime | int | float) -> datetime:
    if isinstance(when, datetime):
        if when.tzinfo is None:
            return when.replace(tzinfo=timezone.utc)
        return when.astimezone(timezone.utc)
    return datetime.fromtimestamp(int(when), tz=timezone.utc)


class Play:
    """Read-only handle onto a play record. Play() is the null play."""

    __slots__ = ("_d",)

    def __init__(self, other: Play | None = None):
        self._d = other._d if other is not None else _PlayRecord()

    @classmethod
    def _wrap(cls, record: _PlayRecord) -> Play:
        p = cls.__new__(cls)
        p._d = record
        return p

    # -------- identity --------
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Play):
            return NotImplemented
        return self._d is other._d

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self) -> int:
        return hash(self._d.uid)

    @property
    def uid(self) -> str:
        return self._d.uid

    def clone(self) -> Play:
        """Deep copy with its own record (and its own identity)."""
        d = self._d
        return Play._wrap(_PlayRecord(
            artist=d.artist, album=d.album, title=d.title,
            track_number=d.track_number, duration=d.duration, source=d.source,
            mbid=d.mbid, fingerprint_id=d.fingerprint_id, url=d.url,
            timestamp=d.timestamp, extras=dict(d.extras), null=d.null,
        ))

    def is_null(self) -> bool:
        return self._d.null

    def is_stamped(self) -> bool:
        return self._d.timestamp is not None

    # -------- accessors --------
    @property
    def artist(self) -> str:
        return self._d.artist

    @property
    def album(self) -> str | None:
        return self._d.album

    @property
    def title(self) -> str:
        # Callers shouldn't display an untitled play, but if they do
        return self._d.title or "[unknown]"

    @property
    def track_number(self) -> int:
        return self._d.track_number

    @property
    def duration(self) -> int:
        return self._d.duration

    @property
    def source(self) -> Source:
        return self._d.source

    @property
    def mbid(self) -> str | None:
        return self._d.mbid

    @property
    def fingerprint_id(self) -> int | None:
        return self._d.fingerprint_id

    @property
    def url(self) -> str | None:
        return self._d.url

    @property
    def timestamp(self) -> datetime | None:
        return self._d.timestamp

    def extra(self, key: str) -> str:
        return self._d.extras.get(key, "")

    @property
    def extras(self) -> Dict[str, str]:
        return dict(self._d.extras)

    @staticmethod
    def format_duration(seconds: int) -> str:
        h, rest = divmod(int(seconds), 3600)
        m, s = divmod(rest, 60)
        if h:
            return f"{h}:{m:02d}:{s:02d}"
        return f"{m}:{s:02d}"

    def duration_string(self) -> str:
        return self.format_duration(self._d.duration)

    def to_string(self, separator: str = "–") -> str:
        return f"{self._d.artist} {separator} {self.title}"

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        if self.is_null():
            return "<Play null>"
        return f"<Play {self.to_string('-')!r} uid={self._d.uid[:8]}>"

    # -------- serialization --------
    def to_dict(self) -> Dict[str, Any]:
        d = self._d
        return {
            "uid": d.uid,
            "artist": d.artist,
            "album": d.album,
            "title": d.title,
            "track_number": d.track_number,
            "duration": d.duration,
            "source": int(d.source),
            "mbid": d.mbid,
            "fingerprint_id": d.fingerprint_id,
            "url": d.url,
            "timestamp": int(d.timestamp.timestamp()) if d.timestamp else None,
            "extras": dict(d.extras),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Play:
        known = {f.name for f in fields(_PlayRecord)}
        values = {k: v for k, v in data.items() if k in known and k not in ("timestamp", "source", "null")}
        record = _PlayRecord(**values)
        record.source = Source(data.get("source") or 0)
        if data.get("timestamp") is not None:
            record.timestamp = _to_utc(data["timestamp"])
        record.extras = dict(data.get("extras") or {})
        record.null = False
        return cls._wrap(record)


class MutablePlay(Play):
    """Editable view of a play.

    Plays are normally set up once and then left alone, so editing goes
    through this separate class. Wrapping an existing Play edits the shared
    record; note that wrapping the null Play makes that record non-null.
    """

    __slots__ = ()

    def __init__(self, other: Play | None = None):
        super().__init__(other)
        self._d.null = False

    def set_artist(self, artist: str) -> None:
        self._d.artist = artist.strip()

    def set_album(self, album: str | None) -> None:
        self._d.album = album.strip() if album is not None else None

    def set_title(self, title: str) -> None:
        self._d.title = title.strip()

    def set_track_number(self, n: int) -> None:
        self._d.track_number = int(n)

    def set_duration(self, seconds: int) -> None:
        self._d.duration = int(seconds)

    def set_url(self, url: str | None) -> None:
        self._d.url = url

    def set_source(self, source: Source) -> None:
        self._d.source = Source(source)

    def set_mbid(self, mbid: str | None) -> None:
        self._d.mbid = mbid

    def set_fingerprint_id(self, fpid: int | None) -> None:
        self._d.fingerprint_id = fpid

    def set_extra(self, key: str, value: str) -> None:
        self._d.extras[key] = value

    def remove_extra(self, key: str) -> None:
        self._d.extras.pop(key, None)

    def stamp(self, when: datetime | int | float | None = None) -> None:
        """Record when playback started (now, unless given)."""
        self._d.timestamp = _to_utc(when) if when is not None else datetime.now(timezone.utc)
