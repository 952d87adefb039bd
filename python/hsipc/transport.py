"""
Transport layer for hsipc.

Responsibilities:
    * Define the channel/listener interface the host and client are written against.
    * Provide a Unix-domain-socket implementation: one endpoint per name under a
      runtime directory, one JSON line per message, one JSON line per reply.

The listener is a single-threaded ``socketserver.UnixStreamServer`` so that
message handling and idle callbacks (the session reaper) never overlap.
"""

from __future__ import annotations

import json
import logging
import re
import socket
import socketserver
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .errors import TransportError


LOGGER = logging.getLogger("hsipc.transport")

MessageHandler = Callable[[int, str], Optional[str]]
IdleCallback = Callable[[], None]

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class Channel(Protocol):
    def send(self, payload: str, tag: int) -> Optional[str]:
        ...

    def is_valid(self) -> bool:
        ...

    def delete(self) -> None:
        ...


class Listener(Channel, Protocol):
    def serve_forever(self, poll_interval: float = 0.5, idle: Optional[IdleCallback] = None) -> None:
        ...

    def start(self) -> None:
        ...

    def shutdown(self) -> None:
        ...


class Transport(Protocol):
    def open_point_to_point(self, name: str) -> Channel:
        ...

    def open_listener(self, name: str, on_message: MessageHandler) -> Listener:
        ...


#
# Wire framing
#
def _json_dumps(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8") + b"\n"


def encode_message(tag: int, payload: str) -> bytes:
    return _json_dumps({"tag": int(tag), "payload": str(payload)})


def decode_message(line: bytes) -> Tuple[int, str]:
    message = json.loads(line.decode("utf-8"))
    if not isinstance(message, dict):
        raise ValueError("frame must be an object")
    tag = message.get("tag")
    payload = message.get("payload", "")
    if isinstance(tag, bool) or not isinstance(tag, int):
        raise ValueError("frame tag must be an integer")
    if not isinstance(payload, str):
        raise ValueError("frame payload must be a string")
    return tag, payload


def encode_reply(reply: Optional[str], *, error: Optional[str] = None) -> bytes:
    frame: Dict[str, Any] = {"reply": None if reply is None else str(reply)}
    if error is not None:
        frame["error"] = error
    return _json_dumps(frame)


def decode_reply(line: bytes) -> Optional[str]:
    try:
        frame = json.loads(line.decode("utf-8"))
    except ValueError as exc:
        raise TransportError("invalid reply frame") from exc
    if not isinstance(frame, dict):
        raise TransportError("invalid reply frame")
    error = frame.get("error")
    if error is not None:
        raise TransportError(f"remote error: {error}")
    reply = frame.get("reply")
    return None if reply is None else str(reply)


def validate_endpoint_name(name: str) -> str:
    if not isinstance(name, str) or not _NAME_RE.match(name):
        raise TransportError(f"invalid endpoint name: {name!r}")
    return name


#
# Point-to-point channel
#
class SocketChannel:
    """Sends tagged messages to a named endpoint, one connection per message."""

    def __init__(self, path: Path, *, timeout: float = 5.0) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self._deleted = False

    def _connect(self) -> socket.socket:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.timeout)
        try:
            sock.connect(str(self.path))
        except OSError:
            sock.close()
            raise
        return sock

    def send(self, payload: str, tag: int) -> Optional[str]:
        if self._deleted:
            raise TransportError("channel deleted")
        try:
            sock = self._connect()
        except OSError as exc:
            raise TransportError(f"connect failed: {exc}") from exc
        with sock:
            try:
                sock.sendall(encode_message(tag, payload))
                with sock.makefile("rb") as reader:
                    line = reader.readline()
            except OSError as exc:
                raise TransportError(f"send failed: {exc}") from exc
        if not line:
            raise TransportError("connection closed before reply")
        return decode_reply(line)

    def is_valid(self) -> bool:
        if self._deleted or not self.path.exists():
            return False
        try:
            sock = self._connect()
        except OSError:
            return False
        sock.close()
        return True

    def delete(self) -> None:
        self._deleted = True

    def __repr__(self) -> str:
        return f"SocketChannel({str(self.path)!r}, deleted={self._deleted})"


#
# Listener
#
class _ListenerHandler(socketserver.StreamRequestHandler):
    # a peer that connects and never writes must not wedge the loop
    timeout = 10.0

    def handle(self) -> None:
        while True:
            try:
                line = self.rfile.readline()
            except OSError as exc:
                LOGGER.debug("dropping idle connection on %s: %s", self.server.path, exc)
                break
            if not line:
                break
            if not line.strip():
                continue
            try:
                tag, payload = decode_message(line)
            except ValueError:
                LOGGER.warning("discarding malformed frame on %s", self.server.path)
                self._write(encode_reply(None, error="invalid_frame"))
                continue
            self._write(self.server.deliver(tag, payload))

    def _write(self, data: bytes) -> None:
        self.wfile.write(data)
        self.wfile.flush()


class LocalListener(socketserver.UnixStreamServer):
    """Well-known local endpoint that hands every inbound message to *on_message*."""

    def __init__(self, path: Path, on_message: MessageHandler) -> None:
        self.path = Path(path)
        self.on_message = on_message
        self._idle: List[IdleCallback] = []
        self._thread: Optional[threading.Thread] = None
        self._serving = False
        self._deleted = False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            if SocketChannel(self.path, timeout=0.5).is_valid():
                raise TransportError(f"endpoint already in use: {self.path}")
            self.path.unlink()
        super().__init__(str(self.path), _ListenerHandler)

    def deliver(self, tag: int, payload: str) -> bytes:
        try:
            reply = self.on_message(tag, payload)
        except Exception as exc:
            LOGGER.exception("message handler failed (tag=%s)", tag)
            return encode_reply(None, error=str(exc) or type(exc).__name__)
        return encode_reply(reply)

    def add_idle_callback(self, callback: IdleCallback) -> None:
        self._idle.append(callback)

    def service_actions(self) -> None:
        for callback in list(self._idle):
            try:
                callback()
            except Exception:
                LOGGER.exception("idle callback failed")

    def serve_forever(self, poll_interval: float = 0.5, idle: Optional[IdleCallback] = None) -> None:
        if idle is not None:
            self.add_idle_callback(idle)
        self._serving = True
        try:
            super().serve_forever(poll_interval)
        finally:
            self._serving = False

    def start(self) -> None:
        """Serve on a daemon thread."""
        if self._thread and self._thread.is_alive():
            return
        self._serving = True
        self._thread = threading.Thread(
            target=self.serve_forever,
            name=f"hsipc-listener-{self.path.stem}",
            daemon=True,
        )
        self._thread.start()

    def shutdown(self) -> None:
        if not self._serving:
            return
        super().shutdown()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None

    def send(self, payload: str, tag: int) -> Optional[str]:
        raise TransportError("listener channels cannot send")

    def is_valid(self) -> bool:
        return not self._deleted

    def delete(self) -> None:
        if self._deleted:
            return
        self._deleted = True
        self.shutdown()
        self.server_close()
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class SocketTransport:
    """Unix-domain-socket transport rooted at *runtime_dir*."""

    def __init__(self, runtime_dir: Path | str, *, timeout: float = 5.0) -> None:
        self.runtime_dir = Path(runtime_dir).expanduser()
        self.timeout = timeout

    def endpoint(self, name: str) -> Path:
        return self.runtime_dir / f"{validate_endpoint_name(name)}.sock"

    def open_point_to_point(self, name: str) -> SocketChannel:
        return SocketChannel(self.endpoint(name), timeout=self.timeout)

    def open_listener(self, name: str, on_message: MessageHandler) -> LocalListener:
        listener = LocalListener(self.endpoint(name), on_message)
        LOGGER.debug("listening on %s", listener.path)
        return listener


__all__ = [
    "Channel",
    "Listener",
    "Transport",
    "MessageHandler",
    "IdleCallback",
    "encode_message",
    "decode_message",
    "encode_reply",
    "decode_reply",
    "validate_endpoint_name",
    "SocketChannel",
    "LocalListener",
    "SocketTransport",
]
