"""Session records and the registry that owns their reply channels."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from .errors import TransportError
from .protocol import ConsoleMode, MessageTag, format_values
from .transport import Channel


LOGGER = logging.getLogger("hsipc.registry")

DEFAULT_REAP_INTERVAL = 60.0


@dataclass(eq=False)
class Session:
    session_id: str
    channel: Optional[Channel]
    console_mode: ConsoleMode = ConsoleMode.NONE
    quiet: bool = False
    script_args: Optional[List[str]] = None
    raw_args: Optional[List[str]] = None
    namespace: Optional[Any] = None
    echo: Optional[Callable[..., None]] = None
    created_at: float = field(default_factory=time.time)

    def send(self, payload: str, tag: MessageTag) -> Optional[str]:
        if self.channel is None:
            raise TransportError(f"session {self.session_id} has no channel")
        return self.channel.send(payload, int(tag))

    def print(self, *values: Any) -> None:
        """Per-session print: send OUTPUT to this client, echo to the host console in legacy mode."""
        if self.quiet:
            return
        self.send(format_values(values) + "\n", MessageTag.OUTPUT)
        if self.console_mode is ConsoleMode.LEGACY and self.echo is not None:
            self.echo(*values)

    @property
    def wants_console(self) -> bool:
        return self.console_mode is ConsoleMode.MIRROR and not self.quiet

    def __repr__(self) -> str:
        return (
            f"Session({self.session_id!r}, console_mode={self.console_mode.value}, "
            f"quiet={self.quiet}, channel={self.channel!r})"
        )


class SessionRegistry:
    """Map of session id to Session, plus the liveness sweep.

    Only touched from the host's control loop, so there is no locking.
    """

    def __init__(self, *, reap_interval: float = DEFAULT_REAP_INTERVAL, clock: Callable[[], float] = time.time) -> None:
        self.sessions: Dict[str, Session] = {}
        self.reap_interval = float(reap_interval)
        self._clock = clock
        self._last_reap = clock()

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self.sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self.sessions.values()))

    def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def add(self, session: Session) -> Session:
        previous = self.sessions.get(session.session_id)
        if previous is not None:
            LOGGER.info("replacing session %s", session.session_id)
            self._delete_channel(previous)
        self.sessions[session.session_id] = session
        LOGGER.info("session registered id=%s mode=%s quiet=%s", session.session_id, session.console_mode.value, session.quiet)
        return session

    def remove(self, session_id: str, reason: str = "unregister") -> bool:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        self._delete_channel(session)
        LOGGER.info("session closed id=%s reason=%s", session_id, reason)
        return True

    def mirror_targets(self) -> List[Session]:
        return [session for session in self.sessions.values() if session.wants_console]

    def reap(self) -> List[str]:
        """Drop every session whose channel is missing or no longer valid."""
        reaped: List[str] = []
        for session_id, session in list(self.sessions.items()):
            channel = session.channel
            if channel is None or not channel.is_valid():
                reaped.append(session_id)
        for session_id in reaped:
            self.remove(session_id, reason="stale")
        if reaped:
            LOGGER.debug("reaped %d stale session(s)", len(reaped))
        return reaped

    def prune(self, now: Optional[float] = None) -> List[str]:
        now = self._clock() if now is None else now
        if (now - self._last_reap) < self.reap_interval:
            return []
        self._last_reap = now
        return self.reap()

    def close(self) -> None:
        for session_id in list(self.sessions):
            self.remove(session_id, reason="shutdown")

    @staticmethod
    def _delete_channel(session: Session) -> None:
        channel = session.channel
        session.channel = None
        if channel is None:
            return
        try:
            channel.delete()
        except TransportError as exc:
            LOGGER.warning("channel delete failed for %s: %s", session.session_id, exc)


__all__ = ["Session", "SessionRegistry", "DEFAULT_REAP_INTERVAL"]
