"""Playback controller backed by an mpv process over JSON IPC."""

import json
import logging
import os
import socket
import subprocess
import threading
import time
from typing import Any, Dict, Optional

from ..exceptions import PlaybackError
from ..models.track import Track
from ..utils.platform import is_windows
from .controller import Acknowledge, PlaybackController


class MpvPlaybackController(PlaybackController):
    """Drives ``mpv --idle`` through its ``--input-ipc-server`` socket.

    Commands are fire-and-forget with a request id; replies and events are
    read on a background thread. Acknowledgements for ``seek`` come from the
    command reply, for ``load`` from the ``file-loaded`` event.
    """

    def __init__(
        self,
        logger: logging.Logger,
        mpv_path: str = "mpv",
        ipc_path: str = "/tmp/lockstep-radio-mpv.sock",
        connect_timeout: float = 3.0
    ):
        """Initialize the controller. Call ``start`` before use.

        Args:
            logger: Logger instance
            mpv_path: mpv executable
            ipc_path: Unix socket path for the IPC server
            connect_timeout: Seconds to wait for mpv to open the socket
        """
        super().__init__()
        self.logger = logger
        self.mpv_path = mpv_path
        self.ipc_path = ipc_path
        self.connect_timeout = connect_timeout

        self._proc: Optional[subprocess.Popen] = None
        self._sock: Optional[socket.socket] = None
        self._rx_thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._tx_lock = threading.Lock()
        self._state_lock = threading.Lock()

        self._request_id = 0
        self._pending_requests: Dict[int, Acknowledge] = {}
        self._pending_load: Optional[Acknowledge] = None
        self._track: Optional[Track] = None
        self._time_pos: Optional[float] = None

    def start(self) -> None:
        """Launch mpv and connect to its IPC socket.

        Raises:
            PlaybackError: If mpv cannot be started or the socket never appears
        """
        if is_windows():
            raise PlaybackError("The mpv controller needs Unix domain sockets")
        if self._proc is not None:
            return

        if os.path.exists(self.ipc_path):
            os.remove(self.ipc_path)

        args = [
            self.mpv_path,
            "--idle=yes",
            "--no-video",
            "--audio-display=no",
            "--keep-open=no",
            "--terminal=no",
            f"--input-ipc-server={self.ipc_path}",
        ]
        self.logger.debug(f"Starting mpv: {' '.join(args)}")
        try:
            self._proc = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise PlaybackError(f"Failed to start mpv ({self.mpv_path}): {e}") from e

        deadline = time.monotonic() + self.connect_timeout
        last_error: Optional[Exception] = None
        while time.monotonic() < deadline:
            try:
                sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
                sock.connect(self.ipc_path)
                self._sock = sock
                break
            except OSError as e:
                last_error = e
                time.sleep(0.05)

        if self._sock is None:
            self.close()
            raise PlaybackError(f"mpv IPC socket {self.ipc_path} not available: {last_error}")

        self._rx_thread = threading.Thread(target=self._rx_loop, name="mpv-ipc-rx", daemon=True)
        self._rx_thread.start()
        self._send(["observe_property", 1, "time-pos"])
        self.logger.info("mpv playback controller started")

    def close(self) -> None:
        self._stop.set()
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError as e:
                self.logger.debug(f"Error closing mpv socket: {e}")
            self._sock = None

        if self._proc is not None:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._proc.kill()
            self._proc = None

        with self._state_lock:
            self._pending_requests.clear()
            self._pending_load = None
        super().close()

    # PlaybackController

    def load(self, track: Track, offset_seconds: float, done: Optional[Acknowledge] = None) -> None:
        with self._state_lock:
            self._track = track
            self._time_pos = None
            self._pending_load = done

        # "start" applies to the next loadfile
        self._send(["set_property", "start", f"{offset_seconds:.3f}"])
        self._send(["loadfile", track.media_uri, "replace"])

    def seek(self, offset_seconds: float, done: Optional[Acknowledge] = None) -> None:
        self._send(["seek", float(offset_seconds), "absolute+exact"], done)

    def report_position(self) -> Optional[float]:
        with self._state_lock:
            return self._time_pos

    def current_track(self) -> Optional[Track]:
        with self._state_lock:
            return self._track

    # IPC

    def _send(self, command: list, done: Optional[Acknowledge] = None) -> None:
        if self._sock is None:
            raise PlaybackError("mpv is not running")

        payload: Dict[str, Any] = {"command": command}
        with self._state_lock:
            self._request_id += 1
            payload["request_id"] = self._request_id
            if done is not None:
                self._pending_requests[self._request_id] = done

        line = (json.dumps(payload) + "\n").encode("utf-8")
        try:
            with self._tx_lock:
                self._sock.sendall(line)
        except OSError as e:
            raise PlaybackError(f"Failed to send {command[0]} to mpv: {e}") from e

    def _rx_loop(self) -> None:
        buf = b""
        while not self._stop.is_set():
            try:
                chunk = self._sock.recv(4096) if self._sock else b""
            except OSError:
                break
            if not chunk:
                break

            buf += chunk
            while b"\n" in buf:
                line, buf = buf.split(b"\n", 1)
                line = line.strip()
                if not line:
                    continue
                try:
                    message = json.loads(line.decode("utf-8", errors="replace"))
                except ValueError:
                    self.logger.debug(f"Ignoring malformed mpv message: {line!r}")
                    continue
                if isinstance(message, dict):
                    self._dispatch(message)

        if not self._stop.is_set():
            self._emit_error(PlaybackError("mpv IPC connection closed"))

    def _dispatch(self, message: Dict[str, Any]) -> None:
        if "request_id" in message and "event" not in message:
            with self._state_lock:
                done = self._pending_requests.pop(message.get("request_id"), None)
            if done is not None:
                if message.get("error") == "success":
                    done(None)
                else:
                    done(PlaybackError(f"mpv: {message.get('error')}"))
            return

        event = message.get("event")
        if event == "property-change" and message.get("name") == "time-pos":
            data = message.get("data")
            with self._state_lock:
                self._time_pos = float(data) if data is not None else None

        elif event == "file-loaded":
            with self._state_lock:
                done, self._pending_load = self._pending_load, None
            if done is not None:
                done(None)

        elif event == "end-file":
            reason = message.get("reason")
            with self._state_lock:
                track = self._track
                done = None
                if reason == "error":
                    done, self._pending_load = self._pending_load, None

            if reason == "eof" and track is not None:
                self._emit_track_ended(track)
            elif reason == "error":
                error = PlaybackError(f"mpv could not play {track.media_uri if track else 'file'}")
                if done is not None:
                    done(error)
                else:
                    self._emit_error(error)
