"""
hsipc - session and message-dispatch layer between a long-running host and
its command-line clients.

Each module keeps one responsibility:

    protocol.py    → message tags, payload fields, register argument parsing
    transport.py   → channel/listener interface and the Unix socket transport
    loopback.py    → in-process transport
    registry.py    → sessions, the registry and the stale-session reaper
    sandbox.py     → two-attempt compile and protected evaluation
    console.py     → host console sinks and the mirror broadcaster
    dispatcher.py  → routes inbound messages to the protocol handlers
    host.py        → host wiring and the ``hsipc-host`` daemon
    client.py      → client side of the protocol
    cli.py         → the ``hsipc`` command and REPL
"""

from .errors import (  # noqa: F401
    ClientError,
    IPCError,
    ProtocolVersionError,
    RegistrationError,
    TransportError,
)
from .protocol import VERSION_TOKEN, ConsoleMode, MessageTag  # noqa: F401
from .registry import Session, SessionRegistry  # noqa: F401
from .sandbox import EvalResult, Evaluator, SessionNamespace  # noqa: F401
from .console import ConsoleBroadcaster, HostConsole  # noqa: F401
from .dispatcher import MessageDispatcher  # noqa: F401
from .host import IPCHost  # noqa: F401
from .client import CLIClient  # noqa: F401
from .loopback import LoopbackTransport  # noqa: F401
from .transport import SocketTransport  # noqa: F401

__all__ = [
    "IPCError",
    "TransportError",
    "RegistrationError",
    "ProtocolVersionError",
    "ClientError",
    "VERSION_TOKEN",
    "MessageTag",
    "ConsoleMode",
    "Session",
    "SessionRegistry",
    "Evaluator",
    "EvalResult",
    "SessionNamespace",
    "HostConsole",
    "ConsoleBroadcaster",
    "MessageDispatcher",
    "IPCHost",
    "CLIClient",
    "LoopbackTransport",
    "SocketTransport",
]

__version__ = "0.1.0"
