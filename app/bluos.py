import requests
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from play import MutablePlay, Play, Source

# /Status tags per field, first one present wins; firmware versions disagree
_TAGS = {
    "title": ("name", "title1"),
    "artist": ("artist", "title2"),
    "album": ("album", "title3"),
    "duration": ("totlen",),
    "secs": ("secs", "elapsed"),
    "state": ("state",),
}


def _lookup(root: ET.Element, field: str) -> str | None:
    for tag in _TAGS[field]:
        text = root.findtext(f".//{tag}")
        if text and text.strip():
            return text.strip()
    return None


def _seconds(text: str | None) -> int | None:
    try:
        return int(float(text)) if text is not None else None
    except ValueError:
        return None


@dataclass
class PlayerStatus:
    title: str | None
    artist: str | None
    album: str | None
    duration: int | None  # seconds
    secs: int | None      # elapsed seconds
    state: str | None     # 'play', 'pause', 'stop'

    @classmethod
    def from_xml(cls, root: ET.Element) -> "PlayerStatus":
        state = _lookup(root, "state")
        return cls(
            title=_lookup(root, "title"),
            artist=_lookup(root, "artist"),
            album=_lookup(root, "album"),
            duration=_seconds(_lookup(root, "duration")),
            secs=_seconds(_lookup(root, "secs")),
            state=state.lower() if state else None,
        )

    def to_play(self) -> Play:
        """A fresh, unstamped play for this status, or the null Play if we can't tell what's playing."""
        if not (self.artist and self.title):
            return Play()
        p = MutablePlay()
        p.set_artist(self.artist)
        p.set_title(self.title)
        if self.album:
            p.set_album(self.album)
        if self.duration:
            p.set_duration(self.duration)
        p.set_source(Source.PLAYER)
        return p


class BluOSClient:
    """Reads what a BluOS player is playing from its /Status XML."""

    def __init__(self, host: str, port: int = 11000, timeout: int = 5):
        self.status_url = f"http://{host}:{port}/Status"
        self.timeout = timeout

    def get_status(self) -> PlayerStatus | None:
        """None when the player can't be reached or answers with something other than XML."""
        try:
            resp = requests.get(self.status_url, timeout=self.timeout)
            resp.raise_for_status()
            return PlayerStatus.from_xml(ET.fromstring(resp.text))
        except (requests.RequestException, ET.ParseError):
            return None
