"""Shared fixtures: a hand-driven transport and stamped plays."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from lastfm_client import (
    LastFMNetworkError, LastFMParseError, LastFMServiceError, PendingReply, Reply,
)
from play import MutablePlay, Play
from scrobble_queue import PlayQueue

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeTransport:
    """Collects requests; tests finish them by hand."""

    def __init__(self):
        self.sent: List[PendingReply] = []
        self.session_key = None

    def update_now_playing(self, fields: Dict[str, Any]) -> PendingReply:
        return self._queue(PendingReply("track.updateNowPlaying", fields))

    def scrobble(self, tracks: List[Dict[str, Any]]) -> PendingReply:
        return self._queue(PendingReply("track.scrobble", tracks))

    def _queue(self, pending: PendingReply) -> PendingReply:
        self.sent.append(pending)
        return pending

    def set_session_key(self, key: str) -> None:
        self.session_key = key

    @property
    def last(self) -> PendingReply:
        return self.sent[-1]

    def succeed(self, pending: PendingReply | None = None) -> None:
        (pending or self.last).finish(Reply())

    def service_error(self, code: int, message: str = "error", pending: PendingReply | None = None) -> None:
        (pending or self.last).finish(Reply(error=LastFMServiceError(code, message)))

    def network_error(self, pending: PendingReply | None = None) -> None:
        (pending or self.last).finish(Reply(error=LastFMNetworkError("connection refused")))

    def malformed(self, pending: PendingReply | None = None) -> None:
        (pending or self.last).finish(Reply(error=LastFMParseError("Malformed response")))


def make_play(n: int = 0, *, artist: str | None = None, title: str | None = None, **fields) -> Play:
    p = MutablePlay()
    p.set_artist(artist or f"Artist {n}")
    p.set_title(title or f"Title {n}")
    if "album" in fields:
        p.set_album(fields["album"])
    if "duration" in fields:
        p.set_duration(fields["duration"])
    if "track_number" in fields:
        p.set_track_number(fields["track_number"])
    if "mbid" in fields:
        p.set_mbid(fields["mbid"])
    p.stamp(BASE_TIME + timedelta(minutes=n))
    return Play(p)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def queue(tmp_path) -> PlayQueue:
    return PlayQueue(str(tmp_path), "alice")
