"""
Audioscrobbler: gets plays from the local cache to Last.fm.

Two independent lanes, each with at most one request in flight:

- now playing: best effort, never cached, never retried.
- scrobbling: submit() sends the oldest cached plays (50 at most) in one
  request. Only an acknowledged batch is removed from the cache; anything
  else leaves it there for the next submit(), so retries go out oldest-first.

Starting a request in a busy lane cancels the old one, and a reply that is no
longer the lane's current one is ignored. Nothing here sleeps or retries on a
timer: whoever owns the scrobbler decides when to call submit().
"""

from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

from error_classifier import (
    ErrorClass, ErrorKind, ProgrammingError, classify, is_blocking, kind_for_service_code,
)
from lastfm_client import LastFMServiceError, PendingReply
from play import Play
from scrobble_queue import PlayQueue

log = logging.getLogger("scrobbler")

BATCH_LIMIT = 50
HARD_FAILURE_LIMIT = 3


class EngineState(enum.Enum):
    IDLE = "idle"
    ANNOUNCING = "announcing"
    SUBMITTING = "submitting"
    NEEDS_REAUTH = "needs_reauth"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class StatusEvent:
    kind: ErrorKind
    error_class: ErrorClass
    hard_failures: int
    message: str = ""


def _track_fields(play: Play) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"artist": play.artist, "title": play.title}
    # Optional fields only when set
    if play.album:
        fields["album"] = play.album
    if play.duration > 0:
        fields["duration"] = play.duration
    if play.track_number > 0:
        fields["track_number"] = play.track_number
    if play.mbid:
        fields["mbid"] = play.mbid
    return fields


def now_playing_fields(play: Play) -> Dict[str, Any]:
    """Keyword arguments for pylast's update_now_playing()."""
    return _track_fields(play)


def scrobble_tracks(batch: Sequence[Play]) -> List[Dict[str, Any]]:
    """Track dicts for one scrobble_many() call, in batch order.

    pylast sends them as artist[i], track[i], timestamp[i] and so on.
    """
    tracks = []
    for play in batch[:BATCH_LIMIT]:
        track = _track_fields(play)
        track["timestamp"] = int(play.timestamp.timestamp())
        tracks.append(track)
    return tracks


class Audioscrobbler:
    def __init__(self, queue: PlayQueue, transport, *,
                 on_status: Callable[[StatusEvent], None] | None = None,
                 on_reauth_needed: Callable[[], None] | None = None,
                 strict: bool = False):
        self.queue = queue
        self.transport = transport
        self.on_status = on_status
        self.on_reauth_needed = on_reauth_needed
        self.strict = strict
        self.hard_failures = 0
        self.last_error: ErrorKind | None = None
        self._blocked: ErrorClass | None = None
        self._np_reply: PendingReply | None = None
        self._scrobble_reply: PendingReply | None = None
        self._batch: Tuple[Play, ...] = ()

    @property
    def state(self) -> EngineState:
        if self._blocked is ErrorClass.NEEDS_REAUTH:
            return EngineState.NEEDS_REAUTH
        if self._blocked is not None:
            return EngineState.TERMINAL
        if self._scrobble_reply is not None:
            return EngineState.SUBMITTING
        if self._np_reply is not None:
            return EngineState.ANNOUNCING
        return EngineState.IDLE

    @property
    def batch(self) -> Tuple[Play, ...]:
        return self._batch

    def cache(self, plays: Play | Iterable[Play]) -> None:
        self.queue.add(plays)

    # -------- now playing --------
    def now_playing(self, play: Play) -> None:
        if self._blocked is not None:
            log.debug("Skipping now playing for %s; scrobbler is %s", play, self.state.value)
            return
        if self._np_reply is not None:
            self._np_reply.cancel()
        self._np_reply = self.transport.update_now_playing(now_playing_fields(play))
        self._np_reply.on_finished(self._on_announced)

    def _on_announced(self, pending: PendingReply) -> None:
        if pending is not self._np_reply:
            return
        self._np_reply = None
        if pending.reply.error is not None:
            log.warning("Now playing update failed: %s", pending.reply.error)
            return
        log.debug("Now playing: %s - %s", pending.payload["artist"], pending.payload["title"])

    # -------- scrobbling --------
    def submit(self) -> bool:
        """Send the oldest cached plays. Returns False when nothing was sent."""
        if self._blocked is not None:
            log.debug("Not submitting; scrobbler is %s", self.state.value)
            return False

        self._batch = ()
        plays = self.queue.tracks()[:BATCH_LIMIT]
        if not plays:
            return False

        tracks = scrobble_tracks(plays)
        self._batch = plays
        if self._scrobble_reply is not None:
            self._scrobble_reply.cancel()
        self._scrobble_reply = self.transport.scrobble(tracks)
        self._scrobble_reply.on_finished(self._on_scrobbled)
        log.info("Submitting %s of %s cached scrobbles", len(plays), self.queue.size())
        return True

    def _on_scrobbled(self, pending: PendingReply) -> None:
        if pending is not self._scrobble_reply:
            return
        self._scrobble_reply = None
        error = pending.reply.error
        if isinstance(error, LastFMServiceError):
            self._failed(kind_for_service_code(error.code, error.message), str(error))
            return
        if error is not None:
            self._failed(ErrorKind.HARD_FAILURE, str(error))
            return

        removed = self.queue.remove(self._batch)
        self.hard_failures = 0
        log.info("Scrobbled %s plays; %s still cached", removed, self.queue.size())

    def _failed(self, kind: ErrorKind, message: str) -> None:
        self.hard_failures += 1
        if classify(kind) is ErrorClass.TRANSIENT and self.hard_failures >= HARD_FAILURE_LIMIT:
            kind = ErrorKind.THREE_HARD_FAILURES
        log.warning("Scrobble submission failed (%s consecutive): %s", self.hard_failures, message)
        self.on_error(kind, message)

    # -------- errors --------
    def on_error(self, kind: ErrorKind, message: str = "") -> None:
        error_class = classify(kind)
        self.last_error = kind
        if error_class is ErrorClass.TERMINAL:
            # The app has to tell the user and let them decide what to do
            log.error("Scrobbling stopped (%s): %s", kind.value, message)
        elif error_class is ErrorClass.NEEDS_REAUTH:
            log.warning("Scrobbling paused until re-authentication (%s)", kind.value)
        elif error_class is ErrorClass.PROGRAMMING_ERROR:
            log.error("Unhandled scrobbler error %s: %s", kind, message)
        if is_blocking(error_class):
            self._blocked = error_class

        if self.on_status is not None:
            self.on_status(StatusEvent(kind, error_class, self.hard_failures, message))

        if error_class is ErrorClass.NEEDS_REAUTH and self.on_reauth_needed is not None:
            self.on_reauth_needed()
        elif error_class is ErrorClass.PROGRAMMING_ERROR and self.strict:
            raise ProgrammingError(f"No handling for scrobbler error {kind!r}")

    def session_established(self, session_key: str | None = None) -> None:
        """Called once a new session is active; lifts any block."""
        if session_key:
            self.transport.set_session_key(session_key)
        if self._blocked is not None:
            log.info("Session re-established; resuming scrobbling")
        self._blocked = None
        self.last_error = None
        self.hard_failures = 0

    def close(self) -> None:
        for reply in (self._np_reply, self._scrobble_reply):
            if reply is not None:
                reply.cancel()
        self._np_reply = None
        self._scrobble_reply = None
