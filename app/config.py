import os

# -------------------------
# Configuration via ENV VARS
# -------------------------
BLUOS_HOST = os.getenv("BLUOS_HOST", "127.0.0.1")
BLUOS_PORT = int(os.getenv("BLUOS_PORT", "11000"))
POLL_INTERVAL = max(1, int(os.getenv("POLL_INTERVAL", "3")))
SUBMIT_INTERVAL = max(POLL_INTERVAL, int(os.getenv("SUBMIT_INTERVAL", "30")))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LASTFM_API_KEY = os.getenv("LASTFM_API_KEY")
LASTFM_API_SECRET = os.getenv("LASTFM_API_SECRET")
LASTFM_SESSION_KEY = os.getenv("LASTFM_SESSION_KEY")
LASTFM_USERNAME = os.getenv("LASTFM_USERNAME")
LASTFM_PASSWORD_MD5 = os.getenv("LASTFM_PASSWORD_MD5")

SCROBBLE_CACHE_DIR = os.getenv("SCROBBLE_CACHE_DIR", "/data")
# Raise on unhandled scrobbler errors instead of just reporting them (development)
STRICT_ERRORS = os.getenv("STRICT_ERRORS", "0").lower() in ("1", "true", "yes")


def validate() -> None:
    """Fail early with a clear message if Last.fm credentials are missing."""
    if not LASTFM_API_KEY or not LASTFM_API_SECRET:
        raise SystemExit("LASTFM_API_KEY and LASTFM_API_SECRET are required")
    if not (LASTFM_SESSION_KEY or (LASTFM_USERNAME and LASTFM_PASSWORD_MD5)):
        raise SystemExit("Provide LASTFM_SESSION_KEY or LASTFM_USERNAME + LASTFM_PASSWORD_MD5")
    if not LASTFM_USERNAME:
        # The cache is kept per user
        raise SystemExit("LASTFM_USERNAME is required")
