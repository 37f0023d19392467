"""Tests for the pylast-backed handshake."""

from unittest import mock

import pylast
import pytest

from error_classifier import ErrorKind
from handshake import Handshake, HandshakeError


def _scrobbler(last_error=None) -> mock.Mock:
    return mock.Mock(last_error=last_error)


def test_configured_session_key_is_kept() -> None:
    h = Handshake("key", "secret", session_key="sk-1", username="alice", password_md5="md5")
    with mock.patch("handshake.pylast.SessionKeyGenerator") as gen:
        assert h.establish() == "sk-1"
        assert h.establish() == "sk-1"
        gen.assert_not_called()


def test_renew_asks_for_a_new_key() -> None:
    h = Handshake("key", "secret", session_key="sk-1", username="alice", password_md5="md5")
    with mock.patch("handshake.pylast.SessionKeyGenerator") as gen:
        gen.return_value.get_session_key.return_value = "sk-2"
        assert h.establish(renew=True) == "sk-2"
        gen.return_value.get_session_key.assert_called_once_with("alice", "md5")
    assert h.establish() == "sk-2"


def test_missing_credentials() -> None:
    with pytest.raises(HandshakeError):
        Handshake("key", "secret").establish()
    with pytest.raises(HandshakeError):
        Handshake("key", "secret", session_key="sk-1").establish(renew=True)


def test_pylast_failure_is_a_handshake_error() -> None:
    h = Handshake("key", "secret", username="alice", password_md5="md5")
    with mock.patch("handshake.pylast.SessionKeyGenerator") as gen:
        gen.return_value.get_session_key.side_effect = pylast.NetworkError(None, "down")
        with pytest.raises(HandshakeError):
            h.establish()


class TestReauthenticate:
    def test_hard_failures_reuse_the_configured_key(self) -> None:
        h = Handshake("key", "secret", session_key="sk-1")
        scrobbler = _scrobbler(ErrorKind.THREE_HARD_FAILURES)
        assert h.reauthenticate(scrobbler)
        assert h.reauthenticate(scrobbler)
        assert scrobbler.session_established.call_args_list == [mock.call("sk-1"), mock.call("sk-1")]

    def test_bad_session_gets_a_new_key(self) -> None:
        h = Handshake("key", "secret", session_key="sk-1", username="alice", password_md5="md5")
        scrobbler = _scrobbler(ErrorKind.BAD_SESSION)
        with mock.patch("handshake.pylast.SessionKeyGenerator") as gen:
            gen.return_value.get_session_key.return_value = "sk-new"
            assert h.reauthenticate(scrobbler)
        scrobbler.session_established.assert_called_once_with("sk-new")

    def test_failure_leaves_scrobbler_blocked_and_can_be_retried(self) -> None:
        h = Handshake("key", "secret", username="alice", password_md5="md5")
        scrobbler = _scrobbler(ErrorKind.THREE_HARD_FAILURES)
        with mock.patch("handshake.pylast.SessionKeyGenerator") as gen:
            gen.return_value.get_session_key.side_effect = [pylast.NetworkError(None, "down"), "sk-new"]
            assert not h.reauthenticate(scrobbler)
            scrobbler.session_established.assert_not_called()
            assert h.reauthenticate(scrobbler)
        scrobbler.session_established.assert_called_once_with("sk-new")

    def test_bad_session_without_password_stays_blocked(self) -> None:
        scrobbler = _scrobbler(ErrorKind.BAD_SESSION)
        assert not Handshake("key", "secret", session_key="sk-1").reauthenticate(scrobbler)
        scrobbler.session_established.assert_not_called()
