"""hsipc host: one listener, the session registry and the evaluation loop."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from .config import HostConfig, configure_logging, default_settings_path, resolve_log_level
from .console import ConsoleBroadcaster, HostConsole, StreamSink
from .dispatcher import MessageDispatcher
from .errors import IPCError
from .registry import SessionRegistry
from .sandbox import Evaluator
from .settings import SettingsStore
from .transport import Listener, SocketTransport, Transport


LOGGER = logging.getLogger("hsipc.host")


class IPCHost:
    """Wires registry, console, evaluator and dispatcher around one listener.

    Everything runs on whichever thread drives the listener: message handling
    and the reaper tick never overlap.
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[HostConfig] = None,
        *,
        namespace: Optional[Dict[str, Any]] = None,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.transport = transport
        self.config = config or HostConfig()
        self.registry = SessionRegistry(reap_interval=self.config.reap_interval)
        self.console = HostConsole(StreamSink(stream))
        self.console.attach(ConsoleBroadcaster(self.registry))
        self.namespace: Dict[str, Any] = namespace if namespace is not None else {}
        self.namespace["print"] = self.console.print
        self.evaluator = Evaluator(self.namespace)
        self.dispatcher = MessageDispatcher(self.registry, self.evaluator, self.console, transport)
        self.listener: Optional[Listener] = None

    @property
    def preparser(self) -> Any:
        return self.evaluator.preparser

    @preparser.setter
    def preparser(self, hook: Any) -> None:
        self.evaluator.preparser = hook

    @property
    def name(self) -> str:
        return self.config.listener_name

    def start(self) -> Listener:
        if self.listener is not None:
            return self.listener
        self.listener = self.transport.open_listener(self.config.listener_name, self.dispatcher.dispatch)
        LOGGER.info("host listening as %s", self.config.listener_name)
        return self.listener

    def tick(self) -> None:
        self.registry.prune()

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        listener = self.start()
        listener.serve_forever(poll_interval, idle=self.tick)

    def stop(self) -> None:
        self.registry.close()
        listener, self.listener = self.listener, None
        if listener is not None:
            listener.delete()
            LOGGER.info("host %s stopped", self.config.listener_name)

    def __enter__(self) -> "IPCHost":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="hsipc host daemon")
    parser.add_argument("--settings", type=Path, default=None, help="Settings file (default $HSIPC_HOME/settings.json)")
    parser.add_argument("--runtime-dir", type=Path, default=None, help="Directory holding endpoint sockets")
    parser.add_argument("--name", default=None, help="Listener name (default hsipc)")
    parser.add_argument("--reap-interval", type=float, default=None, help="Seconds between stale-session sweeps")
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings, else WARNING)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    store = SettingsStore(args.settings or default_settings_path())
    configure_logging(resolve_log_level(store, args.log_level))
    config = HostConfig.from_settings(store)
    if args.runtime_dir is not None:
        config.runtime_dir = args.runtime_dir
    if args.name:
        config.listener_name = args.name
    if args.reap_interval is not None:
        config.reap_interval = args.reap_interval

    host = IPCHost(SocketTransport(config.runtime_dir), config)
    try:
        host.start()
    except (IPCError, OSError) as exc:
        print(f"[hsipc-host] {exc}", file=sys.stderr)
        return 1
    print(f"[hsipc-host] listening as {config.listener_name} in {config.runtime_dir}")
    try:
        host.serve_forever(poll_interval=min(0.5, max(config.reap_interval, 0.05)))
    except KeyboardInterrupt:
        print("\n[hsipc-host] shutting down")
    finally:
        host.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
