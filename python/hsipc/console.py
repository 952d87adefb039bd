"""Host console output: sinks, scoped capture and the mirror broadcaster."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Protocol, Sequence, TextIO

from .errors import TransportError
from .protocol import MessageTag, format_values
from .registry import SessionRegistry


LOGGER = logging.getLogger("hsipc.console")


class OutputSink(Protocol):
    def write(self, values: Sequence[Any]) -> None:
        ...


class StreamSink:
    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream

    def write(self, values: Sequence[Any]) -> None:
        stream = self.stream if self.stream is not None else sys.stdout
        stream.write(format_values(values) + "\n")
        stream.flush()


class CaptureSink:
    def __init__(self) -> None:
        self._chunks: List[str] = []

    def write(self, values: Sequence[Any]) -> None:
        self._chunks.append(format_values(values) + "\n")

    def getvalue(self) -> str:
        return "".join(self._chunks)


class FanoutSink:
    def __init__(self, *sinks: OutputSink) -> None:
        self.sinks: List[OutputSink] = list(sinks)

    def write(self, values: Sequence[Any]) -> None:
        for sink in self.sinks:
            sink.write(values)


class ConsoleBroadcaster:
    """Mirror host output to every non-quiet MIRROR session as CONSOLE messages."""

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    def write(self, values: Sequence[Any]) -> None:
        text = format_values(values) + "\n"
        for session in self.registry.mirror_targets():
            try:
                session.send(text, MessageTag.CONSOLE)
            except TransportError as exc:
                LOGGER.warning("console mirror to %s failed: %s", session.session_id, exc)


class HostConsole:
    def __init__(self, sink: Optional[OutputSink] = None) -> None:
        self.sink: OutputSink = sink if sink is not None else StreamSink()

    def print(self, *values: Any) -> None:
        self.sink.write(values)

    def attach(self, sink: OutputSink) -> None:
        self.sink = FanoutSink(self.sink, sink)

    @contextmanager
    def capture(self) -> Iterator[CaptureSink]:
        """Copy everything printed inside the block into a fresh CaptureSink."""
        previous = self.sink
        buffer = CaptureSink()
        self.sink = FanoutSink(previous, buffer)
        try:
            yield buffer
        finally:
            self.sink = previous


__all__ = [
    "OutputSink",
    "StreamSink",
    "CaptureSink",
    "FanoutSink",
    "ConsoleBroadcaster",
    "HostConsole",
]
