from __future__ import annotations
from typing import Tuple

from play import Play

# Last.fm rules: scrobble at half the track or 4 minutes, whichever comes
# first, and never scrobble tracks shorter than 30 seconds.
MAX_THRESHOLD = 240
MIN_TRACK_LENGTH = 30


def track_key(play: Play) -> Tuple[str, str, str | None, int] | None:
    """What makes two polls "the same track". Each poll builds a new Play."""
    if play.is_null():
        return None
    return (play.artist, play.title, play.album, play.duration)


class PlaybackTracker:
    """Tracks the player and decides when the current play counts as a scrobble.

    The Play handed to update() on a track change is kept; later polls of the
    same track only advance elapsed time, so the play that gets stamped and
    cached is the one that was announced as now playing.
    """

    def __init__(self):
        self.current: Play = Play()
        self.scrobbled: bool = False
        self.elapsed: int = 0
        self.state: str | None = None  # 'play', 'pause', 'stop'
        self.is_new_track: bool = False

    def update(self, *, play: Play, state: str | None, elapsed: int | None):
        # Reset scrobble state on track change
        self.is_new_track = track_key(play) != track_key(self.current)
        if self.is_new_track:
            self.current = play
            self.scrobbled = False
            self.elapsed = 0

        self.state = state
        if elapsed is not None:
            self.elapsed = max(self.elapsed, int(elapsed))

    def threshold(self) -> int:
        # Default fallback threshold when duration is unknown: 240s
        if self.current.is_null() or not self.current.duration:
            return MAX_THRESHOLD
        return min(MAX_THRESHOLD, self.current.duration // 2)

    def should_scrobble(self) -> bool:
        if self.current.is_null() or self.scrobbled or self.state != "play":
            return False
        if self.current.duration and self.current.duration < MIN_TRACK_LENGTH:
            return False
        return self.elapsed >= self.threshold()

    def mark_scrobbled(self):
        self.scrobbled = True
