"""Tests for the session registry and the stale-session reaper."""

from __future__ import annotations

from conftest import RecordingChannel

from hsipc.protocol import ConsoleMode, MessageTag
from hsipc.registry import Session, SessionRegistry


def _session(session_id: str, **kwargs) -> Session:
    return Session(session_id=session_id, channel=RecordingChannel(session_id), **kwargs)


def test_add_replaces_and_deletes_previous_channel():
    registry = SessionRegistry()
    first = registry.add(_session("A"))
    old_channel = first.channel
    second = registry.add(_session("A"))
    assert len(registry) == 1
    assert registry.get("A") is second
    assert old_channel.deleted is True
    assert second.channel.deleted is False


def test_remove_unknown_id_is_noop():
    registry = SessionRegistry()
    registry.add(_session("A"))
    assert registry.remove("missing") is False
    assert len(registry) == 1


def test_remove_deletes_channel():
    registry = SessionRegistry()
    session = registry.add(_session("A"))
    channel = session.channel
    assert registry.remove("A") is True
    assert "A" not in registry
    assert channel.deleted is True
    assert session.channel is None


def test_reap_removes_invalid_and_missing_channels():
    registry = SessionRegistry()
    good = registry.add(_session("good"))
    bad = registry.add(_session("bad"))
    bad_channel = bad.channel
    bad_channel.valid = False
    registry.add(Session(session_id="orphan", channel=None))

    reaped = registry.reap()

    assert sorted(reaped) == ["bad", "orphan"]
    assert [session.session_id for session in registry] == ["good"]
    assert bad_channel.deleted is True
    assert good.channel.deleted is False


def test_prune_waits_for_interval():
    clock = [0.0]
    registry = SessionRegistry(reap_interval=60.0, clock=lambda: clock[0])
    stale = registry.add(_session("stale"))
    stale.channel.valid = False

    assert registry.prune(now=30.0) == []
    assert "stale" in registry
    assert registry.prune(now=60.0) == ["stale"]
    assert len(registry) == 0

    registry.add(_session("later")).channel.valid = False
    clock[0] = 100.0
    assert registry.prune() == []
    clock[0] = 120.0
    assert registry.prune() == ["later"]


def test_close_removes_everything():
    registry = SessionRegistry()
    channels = [registry.add(_session(name)).channel for name in ("a", "b", "c")]
    registry.close()
    assert len(registry) == 0
    assert all(channel.deleted for channel in channels)


def test_mirror_targets_excludes_quiet_and_other_modes():
    registry = SessionRegistry()
    registry.add(_session("mirror", console_mode=ConsoleMode.MIRROR))
    registry.add(_session("quiet", console_mode=ConsoleMode.MIRROR, quiet=True))
    registry.add(_session("legacy", console_mode=ConsoleMode.LEGACY))
    registry.add(_session("none"))
    assert [session.session_id for session in registry.mirror_targets()] == ["mirror"]


def test_session_print_sends_output_and_echoes_in_legacy_mode():
    echoed = []
    session = _session("A", console_mode=ConsoleMode.LEGACY, echo=lambda *values: echoed.append(values))
    session.print("x", 2)
    assert session.channel.sent == [("x\t2\n", int(MessageTag.OUTPUT))]
    assert echoed == [("x", 2)]


def test_quiet_session_print_is_silent():
    echoed = []
    session = _session("A", quiet=True, console_mode=ConsoleMode.LEGACY, echo=lambda *values: echoed.append(values))
    session.print("x")
    assert session.channel.sent == []
    assert echoed == []
