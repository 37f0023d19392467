import logging
import time
from datetime import datetime, timezone

import config
from audioscrobbler import Audioscrobbler, EngineState
from bluos import BluOSClient, PlayerStatus
from handshake import Handshake, HandshakeError
from lastfm_client import LastFMTransport
from notifier import from_env as notifier_from_env
from play import MutablePlay
from scrobble_queue import PlayQueue
from state import PlaybackTracker

# -------------------------
# Logging setup
# -------------------------
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    force=True,  # ensure our config is used even if libs pre-configure logging
)
log = logging.getLogger("scrobble-relay")


def main():
    config.validate()

    handshake = Handshake(
        config.LASTFM_API_KEY,
        config.LASTFM_API_SECRET,
        session_key=config.LASTFM_SESSION_KEY,
        username=config.LASTFM_USERNAME,
        password_md5=config.LASTFM_PASSWORD_MD5,
    )
    try:
        session_key = handshake.establish()
    except HandshakeError as e:
        raise SystemExit(str(e))

    transport = LastFMTransport(
        config.LASTFM_API_KEY,
        config.LASTFM_API_SECRET,
        session_key=session_key,
    )
    queue = PlayQueue(config.SCROBBLE_CACHE_DIR, config.LASTFM_USERNAME)
    notifier = notifier_from_env(config.LASTFM_USERNAME)
    schedule = SubmitSchedule(config.SUBMIT_INTERVAL)
    scrobbler = Audioscrobbler(
        queue,
        transport,
        on_status=notifier,
        # The handshake itself runs on the next submit tick, not inside dispatch()
        on_reauth_needed=schedule.hurry,
        strict=config.STRICT_ERRORS,
    )

    blu = BluOSClient(config.BLUOS_HOST, config.BLUOS_PORT)
    tracker = PlaybackTracker()
    log.info("Starting BluOS → Last.fm bridge. Poll interval: %ss, submit interval: %ss",
             config.POLL_INTERVAL, config.SUBMIT_INTERVAL)
    log.info("BluOS device: %s:%s | Cache: %s (size=%s)",
             config.BLUOS_HOST, config.BLUOS_PORT, queue.path, queue.size())
    notifier.alert("INFO", "Bridge started",
                   f"Polling {config.BLUOS_HOST}:{config.BLUOS_PORT}; cache {queue.path}.")

    try:
        while True:
            try:
                transport.dispatch()
            except OSError as e:
                # A batch that could not be dropped from the cache is sent again later
                log.error("Scrobble cache write failed: %s", e)
            poll(blu, tracker, scrobbler)

            # Anything cached (including what was just cached) goes out on the submit interval
            if schedule.due(time.monotonic()):
                submit_tick(scrobbler, handshake)
                schedule.done(time.monotonic())

            time.sleep(config.POLL_INTERVAL)
    finally:
        scrobbler.close()
        transport.close()


class SubmitSchedule:
    """When the next submit tick is due."""

    def __init__(self, interval: float):
        self.interval = interval
        self.due_at = 0.0

    def due(self, now: float) -> bool:
        return now >= self.due_at

    def done(self, now: float) -> None:
        self.due_at = now + self.interval

    def hurry(self) -> None:
        self.due_at = 0.0


def submit_tick(scrobbler: Audioscrobbler, handshake: Handshake) -> None:
    # Retried on every tick while paused
    if scrobbler.state is EngineState.NEEDS_REAUTH:
        handshake.reauthenticate(scrobbler)
    scrobbler.submit()


def poll(blu: BluOSClient, tracker: PlaybackTracker, scrobbler: Audioscrobbler) -> None:
    status: PlayerStatus | None = blu.get_status()
    if status is None:
        log.info("Parsed: status=None (unreachable or XML parse failed)")
        return
    log.debug("Parsed: state=%s artist=%s title=%s album=%s elapsed=%s duration=%s",
              status.state, status.artist, status.title, status.album, status.secs, status.duration)

    tracker.update(play=status.to_play(), state=status.state, elapsed=status.secs)
    play = tracker.current

    # Only act when playback is active and we have meaningful metadata
    if status.state != "play" or play.is_null():
        log.debug("Playback not in 'play' state or missing metadata; skipping.")
        return

    if tracker.is_new_track:
        scrobbler.now_playing(play)

    if tracker.should_scrobble():
        started_at = datetime.now(timezone.utc).timestamp() - (status.secs or 0)
        MutablePlay(play).stamp(started_at)
        try:
            scrobbler.cache(play)
        except OSError as e:
            # Not marked, so the next poll tries again
            log.error("Could not cache scrobble %s: %s", play, e)
            return
        tracker.mark_scrobbled()
        log.info("Cached scrobble: %s%s", play, f" [{play.album}]" if play.album else "")


def run():
    try:
        main()
    except KeyboardInterrupt:
        log.info("Shutting down…")


if __name__ == "__main__":
    run()
