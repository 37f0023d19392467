"""
Persistent per-user play queue.

- Stores unsent plays on disk (one JSON file per Last.fm user), so we don't lose plays on network errors.
- Order is insertion order; each entry keeps a `seq` so a reload restores it exactly.
- Removal is by play identity, never by field comparison.
- API: add(), tracks(), remove(), size().
"""

from __future__ import annotations
import json
import logging
import os
import re
import threading
from typing import Any, Dict, Iterable, List, Tuple

from play import Play

log = logging.getLogger("scrobble-cache")


def cache_path(cache_dir: str, username: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_.-]", "_", username) or "_"
    return os.path.join(cache_dir, f"{safe}.scrobbles.json")


class PlayQueue:
    def __init__(self, cache_dir: str, username: str):
        self.username = username
        self.path = cache_path(cache_dir, username)
        self._lock = threading.Lock()
        self._entries: List[Tuple[int, Play]] = []
        self._next_seq = 0
        self._load()

    # -------- persistence --------
    def _load(self) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        if not os.path.isfile(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            entries = [(int(e["seq"]), Play.from_dict(e["play"])) for e in data["plays"]]
        except (OSError, ValueError, KeyError, TypeError) as e:
            # Keep the bad file around for inspection, then start fresh
            aside = f"{self.path}.corrupt"
            log.warning("Scrobble cache %s unreadable (%s); moved to %s", self.path, e, aside)
            os.replace(self.path, aside)
            return

        entries.sort(key=lambda e: e[0])
        self._entries = entries
        if entries:
            self._next_seq = entries[-1][0] + 1
        log.info("Loaded %s cached scrobbles for %s", len(entries), self.username)

    def _save(self, entries: List[Tuple[int, Play]]) -> None:
        payload: Dict[str, Any] = {
            "user": self.username,
            "plays": [{"seq": seq, "play": p.to_dict()} for seq, p in entries],
        }
        # Write atomically to avoid corruption
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    # -------- public API --------
    def add(self, plays: Play | Iterable[Play]) -> None:
        """Append one play or several, oldest first. Duplicates are not filtered."""
        batch = [plays] if isinstance(plays, Play) else list(plays)
        for p in batch:
            if p.is_null() or not p.is_stamped():
                raise ValueError(f"Only stamped plays can be cached, got {p!r}")
        if not batch:
            return
        with self._lock:
            # Memory only changes once the file is written
            entries = self._entries + [(self._next_seq + i, p) for i, p in enumerate(batch)]
            self._save(entries)
            self._entries = entries
            self._next_seq += len(batch)

    def tracks(self) -> Tuple[Play, ...]:
        with self._lock:
            return tuple(p for _, p in self._entries)

    def remove(self, batch: Iterable[Play]) -> int:
        """Drop exactly the plays in `batch`; returns how many were removed."""
        gone = {p.uid for p in batch}
        with self._lock:
            keep = [e for e in self._entries if e[1].uid not in gone]
            removed = len(self._entries) - len(keep)
            if removed:
                self._save(keep)
                self._entries = keep
        return removed

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()
