"""Tests for error mapping, pylast request building, and reply delivery."""

import threading
import time
from unittest import mock

import pylast
import pytest

from audioscrobbler import now_playing_fields, scrobble_tracks
from conftest import make_play
from lastfm_client import (
    LastFMNetworkError, LastFMParseError, LastFMServiceError, LastFMTransport,
    PendingReply, Reply, service_error,
)


class TestServiceError:
    def test_code_comes_from_ws_error_id(self) -> None:
        err = service_error(pylast.WSError(None, "9", "Invalid session key"))
        assert err.code == 9
        assert err.message == "Invalid session key"

    def test_non_numeric_status_has_no_code(self) -> None:
        assert service_error(pylast.WSError(None, "", "???")).code is None


class TestPendingReply:
    def test_callback_runs_once(self) -> None:
        calls = []
        p = PendingReply("track.scrobble", [])
        p.on_finished(calls.append)
        p.finish(Reply(result="a"))
        p.finish(Reply(result="b"))
        assert calls == [p]
        assert p.reply.result == "a"

    def test_cancelled_reply_never_calls_back(self) -> None:
        calls = []
        p = PendingReply("track.scrobble", [])
        p.on_finished(calls.append)
        p.cancel()
        p.finish(Reply())
        assert calls == []
        assert not p.finished


@pytest.fixture
def transport():
    t = LastFMTransport("key", "secret", session_key="sk")
    yield t
    t.close()


def _wait_for(transport: LastFMTransport, pending: PendingReply) -> None:
    deadline = time.monotonic() + 5
    while not pending.finished and time.monotonic() < deadline:
        transport.dispatch()
        time.sleep(0.01)


class TestRequests:
    """What pylast is asked to send, checked at its request layer."""

    def _sent(self, transport: LastFMTransport, pending: PendingReply):
        _wait_for(transport, pending)
        assert pending.reply.error is None
        return pending

    def test_scrobble_uses_indexed_fields(self, transport: LastFMTransport) -> None:
        a = make_play(0, album="Album", duration=215, track_number=4, mbid="mb-9")
        b = make_play(1)
        with mock.patch("pylast._Request") as request:
            self._sent(transport, transport.scrobble(scrobble_tracks([a, b])))

        network, method, params = request.call_args.args
        assert network is transport.network
        assert method == "track.scrobble"
        assert params == {
            "artist[0]": "Artist 0",
            "track[0]": "Title 0",
            "timestamp[0]": int(a.timestamp.timestamp()),
            "album[0]": "Album",
            "duration[0]": 215,
            "trackNumber[0]": 4,
            "mbid[0]": "mb-9",
            "artist[1]": "Artist 1",
            "track[1]": "Title 1",
            "timestamp[1]": int(b.timestamp.timestamp()),
        }
        request.return_value.execute.assert_called_once_with()

    def test_unset_optional_fields_are_not_sent(self, transport: LastFMTransport) -> None:
        with mock.patch("pylast._Request") as request:
            self._sent(transport, transport.scrobble(scrobble_tracks([make_play(0)])))
        assert set(request.call_args.args[2]) == {"artist[0]", "track[0]", "timestamp[0]"}

    def test_now_playing_is_not_indexed(self, transport: LastFMTransport) -> None:
        with mock.patch("pylast._Request") as request:
            self._sent(transport, transport.update_now_playing(now_playing_fields(make_play(0, album="Album"))))
        _, method, params = request.call_args.args
        assert method == "track.updateNowPlaying"
        assert params == {"artist": "Artist 0", "track": "Title 0", "album": "Album"}

    def test_session_key_can_be_replaced(self, transport: LastFMTransport) -> None:
        transport.set_session_key("sk-2")
        assert transport.network.session_key == "sk-2"
        assert transport.session_key == "sk-2"


class TestDelivery:
    def test_reply_waits_for_dispatch(self, transport: LastFMTransport) -> None:
        with mock.patch.object(transport.network, "scrobble_many", return_value=None) as scrobble_many:
            calls = []
            pending = transport.scrobble([{"artist": "Low", "title": "Words", "timestamp": 1}])
            pending.on_finished(calls.append)
            assert calls == []  # nothing until dispatch()
            _wait_for(transport, pending)

        assert calls == [pending]
        assert pending.reply.error is None
        scrobble_many.assert_called_once_with([{"artist": "Low", "title": "Words", "timestamp": 1}])

    def test_callbacks_run_on_the_dispatching_thread(self, transport: LastFMTransport) -> None:
        threads = []
        with mock.patch.object(transport.network, "update_now_playing"):
            pending = transport.update_now_playing({"artist": "Low", "title": "Words"})
            pending.on_finished(lambda p: threads.append(threading.current_thread()))
            _wait_for(transport, pending)
        assert threads == [threading.current_thread()]

    @pytest.mark.parametrize("raised, expected", [
        (pylast.WSError(None, "9", "Invalid session key"), LastFMServiceError),
        (pylast.NetworkError(None, OSError("connection refused")), LastFMNetworkError),
    ])
    def test_pylast_errors_become_error_replies(self, transport, raised, expected) -> None:
        with mock.patch.object(transport.network, "scrobble_many", side_effect=raised):
            pending = transport.scrobble([])
            _wait_for(transport, pending)
        assert isinstance(pending.reply.error, expected)

    def test_malformed_response_is_a_parse_error(self, transport: LastFMTransport) -> None:
        raised = pylast.MalformedResponseError(transport.network, ValueError("not xml"))
        with mock.patch.object(transport.network, "scrobble_many", side_effect=raised):
            pending = transport.scrobble([])
            _wait_for(transport, pending)
        assert isinstance(pending.reply.error, LastFMParseError)

    def test_unexpected_exception_surfaces_on_dispatch(self, transport: LastFMTransport) -> None:
        with mock.patch.object(transport.network, "scrobble_many", side_effect=KeyError("artist")):
            transport.scrobble([])
            time.sleep(0.1)
            with pytest.raises(KeyError):
                deadline = time.monotonic() + 5
                while time.monotonic() < deadline:
                    transport.dispatch()
                    time.sleep(0.01)

    def test_cancelled_request_is_not_delivered(self, transport: LastFMTransport) -> None:
        with mock.patch.object(transport.network, "scrobble_many"):
            calls = []
            pending = transport.scrobble([])
            pending.on_finished(calls.append)
            pending.cancel()
            time.sleep(0.1)
            transport.dispatch()
        assert calls == []
