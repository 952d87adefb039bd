"""Shared fakes and fixtures for the hsipc tests."""

from __future__ import annotations

import io
import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from hsipc.config import HostConfig
from hsipc.errors import TransportError
from hsipc.host import IPCHost
from hsipc.protocol import build_register_payload


class RecordingChannel:
    """Point-to-point channel that records every send."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.sent: List[Tuple[str, int]] = []
        self.valid = True
        self.deleted = False
        self.fail = False

    def send(self, payload: str, tag: int) -> Optional[str]:
        if self.fail:
            raise TransportError("peer gone")
        self.sent.append((payload, int(tag)))
        return None

    def is_valid(self) -> bool:
        return self.valid and not self.deleted

    def delete(self) -> None:
        self.deleted = True

    def tags(self) -> List[int]:
        return [tag for _, tag in self.sent]


class DummyListener:
    def __init__(self, name: str, on_message) -> None:
        self.name = name
        self.on_message = on_message
        self.deleted = False
        self.started = False

    def serve_forever(self, poll_interval: float = 0.5, idle=None) -> None:
        if idle is not None:
            idle()

    def start(self) -> None:
        self.started = True

    def shutdown(self) -> None:
        self.started = False

    def send(self, payload: str, tag: int) -> Optional[str]:
        raise TransportError("listener channels cannot send")

    def is_valid(self) -> bool:
        return not self.deleted

    def delete(self) -> None:
        self.deleted = True


class FakeTransport:
    def __init__(self) -> None:
        self.channels: List[RecordingChannel] = []
        self.listeners: Dict[str, DummyListener] = {}

    def open_point_to_point(self, name: str) -> RecordingChannel:
        channel = RecordingChannel(name)
        self.channels.append(channel)
        return channel

    def open_listener(self, name: str, on_message) -> DummyListener:
        listener = DummyListener(name, on_message)
        self.listeners[name] = listener
        return listener

    def channels_for(self, name: str) -> List[RecordingChannel]:
        return [channel for channel in self.channels if channel.name == name]

    def latest(self, name: str) -> RecordingChannel:
        return self.channels_for(name)[-1]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def host_output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def host(transport, host_output) -> IPCHost:
    instance = IPCHost(transport, HostConfig(), stream=host_output)
    instance.start()
    yield instance
    instance.stop()


@pytest.fixture
def register(host, transport):
    """Register a session through the dispatcher and return its reverse channel."""

    def _register(session_id: str, *args: str) -> RecordingChannel:
        payload = session_id
        if args:
            payload = build_register_payload(session_id, list(args))
        host.dispatcher.dispatch(100, payload)
        return transport.latest(session_id)

    return _register


@pytest.fixture
def short_tmpdir():
    # AF_UNIX paths are length limited; pytest's tmp_path can be too deep
    path = Path(tempfile.mkdtemp(prefix="hsipc-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)
