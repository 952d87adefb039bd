"""In-process transport: listeners are a name table and sends are direct calls."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from .errors import TransportError
from .transport import IdleCallback, MessageHandler, validate_endpoint_name


LOGGER = logging.getLogger("hsipc.loopback")


class LoopbackListener:
    def __init__(self, transport: "LoopbackTransport", name: str, on_message: MessageHandler) -> None:
        self.transport = transport
        self.name = name
        self.on_message = on_message
        self._idle: List[IdleCallback] = []
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._deleted = False

    def deliver(self, tag: int, payload: str) -> Optional[str]:
        try:
            return self.on_message(tag, payload)
        except Exception as exc:
            LOGGER.exception("message handler failed (tag=%s)", tag)
            raise TransportError(f"remote error: {exc}") from exc

    def add_idle_callback(self, callback: IdleCallback) -> None:
        self._idle.append(callback)

    def serve_forever(self, poll_interval: float = 0.5, idle: Optional[IdleCallback] = None) -> None:
        """Run idle callbacks every *poll_interval* until shutdown; messages never wait on this loop."""
        if idle is not None:
            self.add_idle_callback(idle)
        self._stop.clear()
        while not self._stop.wait(poll_interval):
            for callback in list(self._idle):
                try:
                    callback()
                except Exception:
                    LOGGER.exception("idle callback failed")

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self.serve_forever, name=f"hsipc-loopback-{self.name}", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stop.set()
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
        self.transport._forget(self)


class LoopbackChannel:
    def __init__(self, transport: "LoopbackTransport", name: str) -> None:
        self.transport = transport
        self.name = name
        self._deleted = False

    def send(self, payload: str, tag: int) -> Optional[str]:
        if self._deleted:
            raise TransportError("channel deleted")
        listener = self.transport.listener(self.name)
        if listener is None:
            raise TransportError(f"no listener named {self.name!r}")
        return listener.deliver(int(tag), str(payload))

    def is_valid(self) -> bool:
        return not self._deleted and self.transport.listener(self.name) is not None

    def delete(self) -> None:
        self._deleted = True

    def __repr__(self) -> str:
        return f"LoopbackChannel({self.name!r}, deleted={self._deleted})"


class LoopbackTransport:
    """Transport whose endpoints all live in the current process."""

    def __init__(self) -> None:
        self._listeners: Dict[str, LoopbackListener] = {}

    def listener(self, name: str) -> Optional[LoopbackListener]:
        return self._listeners.get(name)

    def open_point_to_point(self, name: str) -> LoopbackChannel:
        return LoopbackChannel(self, validate_endpoint_name(name))

    def open_listener(self, name: str, on_message: MessageHandler) -> LoopbackListener:
        validate_endpoint_name(name)
        if name in self._listeners:
            raise TransportError(f"endpoint already in use: {name}")
        listener = LoopbackListener(self, name, on_message)
        self._listeners[name] = listener
        return listener

    def _forget(self, listener: LoopbackListener) -> None:
        if self._listeners.get(listener.name) is listener:
            del self._listeners[listener.name]


__all__ = ["LoopbackTransport", "LoopbackChannel", "LoopbackListener"]
