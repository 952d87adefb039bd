"""Client side of the hsipc protocol."""

from __future__ import annotations

import logging
import queue
import uuid
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import ClientError, ProtocolVersionError, TransportError
from .protocol import (
    DEFAULT_LISTENER_NAME,
    VERSION_TOKEN,
    MessageTag,
    build_register_payload,
    join_fields,
)
from .transport import Channel, Listener, Transport


LOGGER = logging.getLogger("hsipc.client")

OutputCallback = Callable[[MessageTag, str], None]


class CLIClient:
    """One registered session on a host.

    Opens a reverse endpoint named after ``instance_id`` so the host can push
    OUTPUT, CONSOLE, RETURN and ERROR messages back.  RETURN/ERROR are queued
    for :meth:`execute`; OUTPUT/CONSOLE go straight to ``on_output``.
    """

    def __init__(
        self,
        transport: Transport,
        listener_name: str = DEFAULT_LISTENER_NAME,
        *,
        instance_id: Optional[str] = None,
        args: Optional[Sequence[str]] = None,
        on_output: Optional[OutputCallback] = None,
        timeout: float = 5.0,
    ) -> None:
        self.transport = transport
        self.listener_name = listener_name
        self.instance_id = instance_id or uuid.uuid4().hex
        self.args: Optional[List[str]] = list(args) if args is not None else None
        self.on_output = on_output
        self.timeout = timeout
        self.listener: Optional[Listener] = None
        self.remote: Optional[Channel] = None
        self._replies: "queue.Queue[Tuple[MessageTag, str]]" = queue.Queue()
        self._registered = False

    @property
    def connected(self) -> bool:
        return self._registered

    def connect(self) -> "CLIClient":
        if self._registered:
            return self
        self.listener = self.transport.open_listener(self.instance_id, self._on_message)
        self.listener.start()
        try:
            self.remote = self.transport.open_point_to_point(self.listener_name)
            reply = self.remote.send("", MessageTag.VERSION_PROBE)
            if reply != VERSION_TOKEN:
                raise ProtocolVersionError(f"server replied {reply!r} to the version probe, expected {VERSION_TOKEN!r}")
            self.remote.send(build_register_payload(self.instance_id, self.args), MessageTag.REGISTER)
        except Exception:
            self._teardown()
            raise
        self._registered = True
        LOGGER.debug("registered %s with %s", self.instance_id, self.listener_name)
        return self

    def _on_message(self, tag: int, payload: str) -> Optional[str]:
        message_tag = MessageTag.from_any(tag)
        if message_tag in (MessageTag.RETURN, MessageTag.ERROR):
            self._replies.put((message_tag, payload))
        elif message_tag in (MessageTag.OUTPUT, MessageTag.CONSOLE):
            if self.on_output is not None:
                self.on_output(message_tag, payload)
        else:
            LOGGER.warning("unexpected message from host: %s", tag)
        return None

    def _require_remote(self) -> Channel:
        if not self._registered or self.remote is None:
            raise ClientError("client is not connected")
        return self.remote

    def execute(self, code: str) -> Tuple[bool, str]:
        """Send a COMMAND and wait for its RETURN/ERROR; returns ``(ok, text)``.

        The host pushes the reply before it acks, and handles commands one at a
        time, so once the ack is in, the newest queued reply is ours and any
        older ones belong to commands that timed out earlier.
        """
        remote = self._require_remote()
        self._discard_late_replies()
        ack = remote.send(join_fields(self.instance_id, code), MessageTag.COMMAND)
        if ack not in ("ok", "error"):
            raise ClientError(f"command not accepted by host (ack={ack!r})")
        reply = self._newest_reply()
        if reply is None:
            try:
                reply = self._replies.get(timeout=self.timeout)
            except queue.Empty as exc:
                raise ClientError(f"no reply from host within {self.timeout}s") from exc
        tag, text = reply
        return tag is MessageTag.RETURN, text

    def _newest_reply(self) -> Optional[Tuple[MessageTag, str]]:
        newest = None
        while True:
            try:
                reply = self._replies.get_nowait()
            except queue.Empty:
                return newest
            if newest is not None:
                LOGGER.warning("discarding late %s reply: %r", newest[0].name, newest[1])
            newest = reply

    def _discard_late_replies(self) -> int:
        """Drop RETURN/ERROR replies left over from commands that already timed out."""
        dropped = 0
        while True:
            try:
                tag, text = self._replies.get_nowait()
            except queue.Empty:
                break
            dropped += 1
            LOGGER.warning("discarding late %s reply: %r", tag.name, text)
        return dropped

    def query(self, code: str) -> str:
        remote = self._require_remote()
        reply = remote.send(join_fields(self.instance_id, code), MessageTag.QUERY)
        if reply is None:
            raise ClientError("query not accepted by host")
        return reply

    def legacy(self, code: str, *, raw: bool = False) -> str:
        """Evaluate through the pre-versioning path; no registration needed."""
        remote = self.remote or self.transport.open_point_to_point(self.listener_name)
        reply = remote.send(("r" if raw else "x") + code, MessageTag.LEGACY)
        return reply or ""

    def close(self) -> None:
        if self._registered and self.remote is not None:
            try:
                self.remote.send(self.instance_id, MessageTag.UNREGISTER)
            except TransportError as exc:
                LOGGER.warning("unregister failed: %s", exc)
        self._registered = False
        self._teardown()

    def _teardown(self) -> None:
        listener, self.listener = self.listener, None
        if listener is not None:
            listener.delete()
        remote, self.remote = self.remote, None
        if remote is not None:
            remote.delete()

    def __enter__(self) -> "CLIClient":
        return self.connect()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["CLIClient", "OutputCallback"]
