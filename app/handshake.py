import logging

import pylast

from error_classifier import ErrorKind

log = logging.getLogger("handshake")


class HandshakeError(Exception): ...


class Handshake:
    """Gets a Last.fm session key through pylast.

    The current key (at first the configured one) is reused until Last.fm
    rejects it. Only then is a new one requested with username + MD5 password.
    """

    def __init__(self, api_key: str, api_secret: str, *, session_key: str | None = None,
                 username: str | None = None, password_md5: str | None = None):
        self.api_key = api_key
        self.api_secret = api_secret
        self.username = username
        self.password_md5 = password_md5
        self.session_key = session_key

    def establish(self, renew: bool = False) -> str:
        if self.session_key and not renew:
            log.info("Using Last.fm session key auth")
            return self.session_key

        if not (self.username and self.password_md5):
            raise HandshakeError("Missing Last.fm credentials for a new session")

        log.info("Requesting Last.fm session for %s (username + MD5 password auth)", self.username)
        network = pylast.LastFMNetwork(api_key=self.api_key, api_secret=self.api_secret)
        try:
            key = pylast.SessionKeyGenerator(network).get_session_key(self.username, self.password_md5)
        except (pylast.WSError, pylast.NetworkError, pylast.MalformedResponseError) as e:
            raise HandshakeError(f"Last.fm handshake failed: {e}") from e
        self.session_key = key
        return key

    def reauthenticate(self, scrobbler) -> bool:
        """Run the handshake and tell `scrobbler` about the session.

        The key is only replaced when Last.fm said it was bad; after plain
        hard failures the same key is handed back and scrobbling resumes.
        """
        renew = scrobbler.last_error is ErrorKind.BAD_SESSION
        try:
            key = self.establish(renew=renew)
        except HandshakeError as e:
            log.warning("%s; scrobbling stays paused", e)
            return False
        scrobbler.session_established(key)
        return True
