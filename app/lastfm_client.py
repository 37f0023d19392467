"""
Last.fm web service transport over pylast.

pylast does the signing, the HTTP and the `<lfm>` decoding. Its calls block,
so each one runs in a small worker pool and the caller gets a PendingReply
straight away. Finished replies wait in a queue until the owner calls
dispatch(), which runs their callbacks on the owner's thread. Cancelling a
PendingReply means its callback never runs.
"""

from __future__ import annotations
import logging
import queue
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

import pylast

log = logging.getLogger("lastfm")

# Custom error classes so callers can branch
class LastFMError(Exception): ...
class LastFMNetworkError(LastFMError): ...
class LastFMParseError(LastFMError): ...

class LastFMServiceError(LastFMError):
    def __init__(self, code: int | None, message: str):
        super().__init__(f"Last.fm API error {code}: {message}")
        self.code = code
        self.message = message


def service_error(e: pylast.WSError) -> LastFMServiceError:
    status = str(e.get_id())
    return LastFMServiceError(int(status) if status.isdigit() else None, str(e))


@dataclass
class Reply:
    result: Any = None
    error: LastFMError | None = None


class PendingReply:
    """Handle on one request in flight."""

    def __init__(self, method: str, payload: Any):
        self.method = method
        self.payload = payload
        self.reply: Reply | None = None
        self.cancelled = False
        self._future: Future | None = None
        self._callbacks: List[Callable[[PendingReply], None]] = []

    def on_finished(self, callback: Callable[[PendingReply], None]) -> None:
        self._callbacks.append(callback)

    def cancel(self) -> None:
        self.cancelled = True
        if self._future is not None:
            self._future.cancel()

    @property
    def finished(self) -> bool:
        return self.reply is not None

    def finish(self, reply: Reply) -> None:
        if self.cancelled or self.finished:
            return
        self.reply = reply
        for cb in list(self._callbacks):
            cb(self)


def _call(fn: Callable[..., Any], *args, **kwargs) -> Reply:
    """Run one pylast call, turning its errors into a Reply."""
    try:
        return Reply(result=fn(*args, **kwargs))
    except pylast.WSError as e:
        return Reply(error=service_error(e))
    except pylast.MalformedResponseError as e:
        return Reply(error=LastFMParseError(str(e)))
    except pylast.NetworkError as e:
        return Reply(error=LastFMNetworkError(str(e)))


class LastFMTransport:
    def __init__(self, api_key: str, api_secret: str, session_key: str | None = None,
                 max_workers: int = 2):
        self.network = pylast.LastFMNetwork(
            api_key=api_key,
            api_secret=api_secret,
            session_key=session_key,
        )
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lastfm")
        self._done: "queue.Queue[Tuple[PendingReply, Future]]" = queue.Queue()

    @property
    def session_key(self) -> str | None:
        return self.network.session_key

    def set_session_key(self, session_key: str) -> None:
        self.network.session_key = session_key

    def update_now_playing(self, fields: Dict[str, Any]) -> PendingReply:
        """Announce one track; `fields` are update_now_playing() keyword arguments."""
        return self._submit("track.updateNowPlaying", fields, self.network.update_now_playing, **fields)

    def scrobble(self, tracks: List[Dict[str, Any]]) -> PendingReply:
        """Scrobble up to 50 tracks in one request; `tracks` as for scrobble_many()."""
        return self._submit("track.scrobble", tracks, self.network.scrobble_many, tracks)

    def _submit(self, method: str, payload: Any, fn: Callable[..., Any], *args, **kwargs) -> PendingReply:
        pending = PendingReply(method, payload)
        future = self._executor.submit(_call, fn, *args, **kwargs)
        pending._future = future
        future.add_done_callback(lambda f: self._done.put((pending, f)))
        log.debug("Queued %s", method)
        return pending

    def dispatch(self) -> int:
        """Deliver finished replies on this thread. Returns how many were delivered."""
        delivered = 0
        while True:
            try:
                pending, future = self._done.get_nowait()
            except queue.Empty:
                return delivered
            if future.cancelled() or pending.cancelled:
                continue
            exc = future.exception()
            if exc is not None:
                raise exc
            pending.finish(future.result())
            delivered += 1

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
