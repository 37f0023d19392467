"""
Status notifications for scrobbler errors.

- WebhookNotifier POSTs JSON to NOTIFY_WEBHOOK_URL (Slack/Discord-compatible hooks work too).
- GotifyNotifier POSTs to GOTIFY_URL/message with the app token.
- StatusNotifier turns scrobbler StatusEvents into alerts and fans them out.
- Delivery is best-effort: failures are logged but never raised.
"""

from __future__ import annotations
import logging
import os
from typing import Iterable

import requests

from audioscrobbler import StatusEvent
from error_classifier import ErrorClass, ErrorKind

log = logging.getLogger("notifier")

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}

_EVENT_LEVELS = {
    ErrorClass.TERMINAL: "ERROR",
    ErrorClass.PROGRAMMING_ERROR: "ERROR",
    ErrorClass.NEEDS_REAUTH: "WARNING",
    ErrorClass.TRANSIENT: "INFO",
}

_TITLES = {
    ErrorKind.BANNED_CLIENT_VERSION: "Last.fm rejected this client",
    ErrorKind.INVALID_SESSION_KEY: "Last.fm authentication failed",
    ErrorKind.BAD_TIME: "System clock is off; Last.fm refused the timestamps",
    ErrorKind.THREE_HARD_FAILURES: "Scrobbling failed three times in a row",
    ErrorKind.BAD_SESSION: "Last.fm session expired",
    ErrorKind.HARD_FAILURE: "Scrobble submission failed; will retry",
    ErrorKind.UNRECOGNIZED: "Unrecognized Last.fm error",
}


class WebhookNotifier:
    def __init__(self, webhook_url: str | None, min_level: str = "WARNING", app_tag: str = "Scrobble relay"):
        self.webhook_url = webhook_url.strip() if webhook_url else None
        self.min_level = _LEVELS.get(min_level.upper(), 30)
        self.app_tag = app_tag

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        if not self.webhook_url or _LEVELS.get(level.upper(), 30) < self.min_level:
            return
        payload = {
            "level": level.upper(),
            "title": f"{self.app_tag}: {title}",
            "message": message,
            "extra": extra or {},
        }
        try:
            requests.post(self.webhook_url, json=payload, timeout=5)
        except requests.RequestException as e:
            log.debug("Webhook notification failed: %s", e)


class GotifyNotifier:
    def __init__(self, url: str | None, token: str | None, min_level: str = "WARNING",
                 default_priority: int = 5, app_tag: str = "Scrobble relay"):
        self.url = url.rstrip("/") if url else None
        self.token = token.strip() if token else None
        self.min_level = _LEVELS.get(min_level.upper(), 30)
        self.default_priority = default_priority
        self.app_tag = app_tag

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        if not self.url or not self.token or _LEVELS.get(level.upper(), 30) < self.min_level:
            return
        body = {
            "title": f"{self.app_tag}: {title}",
            "message": message if not extra else f"{message}\n\n{extra}",
            # ERROR and above jump the queue on the phone
            "priority": max(self.default_priority, 8) if level.upper() in ("ERROR", "CRITICAL") else self.default_priority,
        }
        try:
            requests.post(f"{self.url}/message", json=body, headers={"X-Gotify-Key": self.token}, timeout=5)
        except requests.RequestException as e:
            log.debug("Gotify notification failed: %s", e)


class StatusNotifier:
    def __init__(self, notifiers: Iterable, username: str | None = None):
        self.notifiers = list(notifiers)
        self.username = username

    def alert(self, level: str, title: str, message: str, extra: dict | None = None):
        for n in self.notifiers:
            n.send(level, title, message, extra)

    def __call__(self, event: StatusEvent):
        level = _EVENT_LEVELS.get(event.error_class, "ERROR")
        title = _TITLES.get(event.kind, event.kind.value)
        log.log(_LEVELS[level], "Scrobbler status: %s (%s)", event.kind.value, event.error_class.value)
        self.alert(level, title, event.message or title, {
            "user": self.username,
            "kind": event.kind.value,
            "class": event.error_class.value,
            "hard_failures": event.hard_failures,
        })


def from_env(username: str | None = None) -> StatusNotifier:
    app_tag = os.getenv("APP_TAG", "Scrobble relay")
    webhook = WebhookNotifier(
        webhook_url=os.getenv("NOTIFY_WEBHOOK_URL"),
        min_level=os.getenv("NOTIFY_MIN_LEVEL", "WARNING"),
        app_tag=app_tag,
    )
    gotify = GotifyNotifier(
        os.getenv("GOTIFY_URL"),
        os.getenv("GOTIFY_TOKEN"),
        min_level=os.getenv("GOTIFY_MIN_LEVEL", "WARNING"),
        default_priority=int(os.getenv("GOTIFY_PRIORITY", "5")),
        app_tag=app_tag,
    )
    return StatusNotifier([webhook, gotify], username=username)
