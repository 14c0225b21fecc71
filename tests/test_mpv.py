"""Tests for the mpv IPC controller, without a real mpv process."""

import json
import socket

import pytest

from lockstep_radio.core.mpv import MpvPlaybackController
from lockstep_radio.exceptions import PlaybackError

from .conftest import make_track


@pytest.fixture
def wired(logger):
    """Controller whose socket is one end of a socketpair."""
    ours, theirs = socket.socketpair()
    controller = MpvPlaybackController(logger)
    controller._sock = ours
    yield controller, theirs
    theirs.close()
    ours.close()


def read_commands(sock, count):
    sock.settimeout(2)
    data = b""
    while data.count(b"\n") < count:
        data += sock.recv(4096)
    return [json.loads(line) for line in data.decode("utf-8").splitlines()]


def test_load_sets_start_then_loads(wired):
    controller, mpv = wired
    track = make_track("a", 200)
    acks = []

    controller.load(track, 42.5, acks.append)
    commands = read_commands(mpv, 2)

    assert commands[0]["command"] == ["set_property", "start", "42.500"]
    assert commands[1]["command"] == ["loadfile", track.media_uri, "replace"]
    assert controller.current_track() == track
    assert acks == []

    controller._dispatch({"event": "file-loaded"})
    assert acks == [None]


def test_seek_acknowledged_by_reply(wired):
    controller, mpv = wired
    acks = []

    controller.seek(10, acks.append)
    (command,) = read_commands(mpv, 1)
    assert command["command"] == ["seek", 10.0, "absolute+exact"]

    controller._dispatch({"request_id": command["request_id"], "error": "success"})
    assert acks == [None]


def test_failed_seek_acknowledges_error(wired):
    controller, mpv = wired
    acks = []

    controller.seek(10, acks.append)
    (command,) = read_commands(mpv, 1)
    controller._dispatch({"request_id": command["request_id"], "error": "property unavailable"})

    assert len(acks) == 1
    assert isinstance(acks[0], PlaybackError)


def test_time_pos_updates_position(wired):
    controller, _ = wired
    assert controller.report_position() is None

    controller._dispatch({"event": "property-change", "name": "time-pos", "data": 12.25})
    assert controller.report_position() == 12.25


def test_end_of_file_emits_track_ended(wired):
    controller, mpv = wired
    track = make_track("a", 200)
    ended = []
    controller.add_track_ended_callback(ended.append)

    controller.load(track, 0)
    read_commands(mpv, 2)
    controller._dispatch({"event": "end-file", "reason": "eof"})
    assert ended == [track]


def test_load_error_acknowledges_load(wired):
    controller, mpv = wired
    acks = []
    errors = []
    controller.add_error_callback(errors.append)

    controller.load(make_track("a", 200), 0, acks.append)
    read_commands(mpv, 2)
    controller._dispatch({"event": "end-file", "reason": "error"})

    assert isinstance(acks[0], PlaybackError)
    assert errors == []


def test_send_without_process(logger):
    controller = MpvPlaybackController(logger)
    with pytest.raises(PlaybackError):
        controller.seek(1)
