"""Routes inbound ``(tag, payload)`` messages to the protocol handlers."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from .console import HostConsole
from .errors import TransportError
from .protocol import (
    VERSION_TOKEN,
    MessageTag,
    parse_register_payload,
    split_fields,
)
from .registry import Session, SessionRegistry
from .sandbox import EvalResult, Evaluator, SessionNamespace
from .transport import Transport


LOGGER = logging.getLogger("hsipc.dispatcher")

Handler = Callable[[str], Optional[str]]


class MessageDispatcher:
    def __init__(
        self,
        registry: SessionRegistry,
        evaluator: Evaluator,
        console: HostConsole,
        transport: Transport,
    ) -> None:
        self.registry = registry
        self.evaluator = evaluator
        self.console = console
        self.transport = transport
        self._handlers: Dict[MessageTag, Handler] = {
            MessageTag.VERSION_PROBE: self.handle_version_probe,
            MessageTag.REGISTER: self.handle_register,
            MessageTag.UNREGISTER: self.handle_unregister,
            MessageTag.COMMAND: self.handle_command,
            MessageTag.QUERY: self.handle_query,
            MessageTag.LEGACY: self.handle_legacy,
        }

    def dispatch(self, tag: int, payload: str) -> Optional[str]:
        message_tag = MessageTag.from_any(tag)
        handler = self._handlers.get(message_tag) if message_tag is not None else None
        if handler is None:
            LOGGER.error("unexpected message id received: %s, %r", tag, payload)
            return None
        return handler(payload)

    # Handlers -----------------------------------------------------------------

    def handle_version_probe(self, payload: str) -> str:
        return VERSION_TOKEN

    def handle_register(self, payload: str) -> None:
        request = parse_register_payload(payload)
        channel = self.transport.open_point_to_point(request.session_id)
        session = Session(
            session_id=request.session_id,
            channel=channel,
            console_mode=request.console_mode,
            quiet=request.quiet,
            script_args=request.script_args,
            raw_args=request.raw_args,
            echo=self.console.print,
        )
        session.namespace = SessionNamespace(
            self.evaluator.shared,
            {"_cli": session, "print": session.print},
        )
        self.registry.add(session)
        return None

    def handle_unregister(self, payload: str) -> None:
        if not self.registry.remove(payload, reason="unregister"):
            LOGGER.warning("unregister for unknown session %r", payload)
        return None

    def handle_command(self, payload: str) -> Optional[str]:
        located = self._locate(payload)
        if located is None:
            return None
        session, code = located
        result = self._evaluate(code, session)
        tag = MessageTag.RETURN if result.ok else MessageTag.ERROR
        try:
            session.send(result.format(), tag)
        except TransportError as exc:
            LOGGER.warning("reply to %s failed: %s", session.session_id, exc)
        return "ok" if result.ok else "error"

    def handle_query(self, payload: str) -> Optional[str]:
        located = self._locate(payload)
        if located is None:
            return None
        session, code = located
        return self._evaluate(code, session).format()

    def handle_legacy(self, payload: str) -> str:
        # first character is the historical "raw" flag
        code = self.evaluator.apply_preparser(payload[1:])
        with self.console.capture() as captured:
            result = self.evaluator.evaluate(code)
        return captured.getvalue() + result.joined()

    # Helpers ------------------------------------------------------------------

    def _locate(self, payload: str) -> Optional[tuple]:
        session_id, code = split_fields(payload)
        if code is None:
            LOGGER.error("unexpected message received: %r", payload)
            return None
        session = self.registry.get(session_id)
        if session is None:
            LOGGER.error("no session registered for id %r", session_id)
            return None
        return session, code

    def _evaluate(self, code: str, session: Session) -> EvalResult:
        prepared = self.evaluator.apply_preparser(code)
        return self.evaluator.evaluate(prepared, session.namespace)


__all__ = ["MessageDispatcher"]
