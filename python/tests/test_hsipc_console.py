"""Tests for host console sinks and the mirror broadcaster."""

from __future__ import annotations

import io

import pytest

from conftest import RecordingChannel

from hsipc.console import CaptureSink, ConsoleBroadcaster, FanoutSink, HostConsole, StreamSink
from hsipc.protocol import ConsoleMode, MessageTag
from hsipc.registry import Session, SessionRegistry


def _registry_with_modes():
    registry = SessionRegistry()
    for session_id, mode, quiet in (
        ("mirror", ConsoleMode.MIRROR, False),
        ("mirror-quiet", ConsoleMode.MIRROR, True),
        ("legacy", ConsoleMode.LEGACY, False),
        ("none", ConsoleMode.NONE, False),
    ):
        registry.add(Session(session_id=session_id, channel=RecordingChannel(session_id), console_mode=mode, quiet=quiet))
    return registry


def test_broadcast_reaches_only_mirror_sessions():
    registry = _registry_with_modes()
    ConsoleBroadcaster(registry).write(["a", "b"])
    assert registry.get("mirror").channel.sent == [("a\tb\n", int(MessageTag.CONSOLE))]
    for session_id in ("mirror-quiet", "legacy", "none"):
        assert registry.get(session_id).channel.sent == []


def test_broadcast_failure_does_not_stop_other_sessions():
    registry = SessionRegistry()
    broken = registry.add(Session("broken", RecordingChannel("broken"), console_mode=ConsoleMode.MIRROR))
    broken.channel.fail = True
    healthy = registry.add(Session("healthy", RecordingChannel("healthy"), console_mode=ConsoleMode.MIRROR))
    ConsoleBroadcaster(registry).write(["hello"])
    assert healthy.channel.sent == [("hello\n", int(MessageTag.CONSOLE))]


def test_host_console_writes_stream_before_attached_sinks():
    order = []

    class Recorder:
        def __init__(self, label):
            self.label = label

        def write(self, values):
            order.append((self.label, tuple(values)))

    console = HostConsole(Recorder("stream"))
    console.attach(Recorder("mirror"))
    console.print("x", 1)
    assert order == [("stream", ("x", 1)), ("mirror", ("x", 1))]


def test_stream_sink_formats_line():
    stream = io.StringIO()
    StreamSink(stream).write(["a", 1, None])
    assert stream.getvalue() == "a\t1\tNone\n"


def test_capture_collects_and_restores():
    stream = io.StringIO()
    console = HostConsole(StreamSink(stream))
    before = console.sink
    with console.capture() as captured:
        console.print("one")
        console.print("two", 2)
    console.print("after")
    assert captured.getvalue() == "one\ntwo\t2\n"
    assert stream.getvalue() == "one\ntwo\t2\nafter\n"
    assert console.sink is before


def test_capture_restores_sink_on_error():
    console = HostConsole(CaptureSink())
    before = console.sink
    with pytest.raises(RuntimeError):
        with console.capture():
            raise RuntimeError("boom")
    assert console.sink is before


def test_fanout_forwards_in_order():
    first, second = CaptureSink(), CaptureSink()
    FanoutSink(first, second).write(["z"])
    assert first.getvalue() == second.getvalue() == "z\n"
