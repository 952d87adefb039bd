"""Wire-level constants and payload helpers for the hsipc message protocol.

Tags are a compatibility contract with external client binaries and must not
be renumbered.  Two-field payloads (register, command, query) pack their
fields with a NUL separator; the register argument list is a JSON array.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Iterable, List, Optional, Tuple

from .errors import RegistrationError


VERSION_TOKEN = "version:2.0a"
DEFAULT_LISTENER_NAME = "hsipc"
FIELD_SEPARATOR = "\0"


class MessageTag(IntEnum):
    VERSION_PROBE = 900
    REGISTER = 100
    UNREGISTER = 200
    COMMAND = 500
    QUERY = 501
    LEGACY = 0

    ERROR = -1
    OUTPUT = 1
    RETURN = 2
    CONSOLE = 3

    @classmethod
    def from_any(cls, value: Any) -> Optional["MessageTag"]:
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return None


INBOUND_TAGS = frozenset(
    {
        MessageTag.VERSION_PROBE,
        MessageTag.REGISTER,
        MessageTag.UNREGISTER,
        MessageTag.COMMAND,
        MessageTag.QUERY,
        MessageTag.LEGACY,
    }
)


class ConsoleMode(Enum):
    NONE = "none"
    MIRROR = "mirror"
    LEGACY = "legacy"

    @classmethod
    def from_any(cls, value: Any) -> "ConsoleMode":
        if isinstance(value, ConsoleMode):
            return value
        if value is None:
            return cls.NONE
        if isinstance(value, str):
            alias = _CONSOLE_MODE_ALIASES.get(value.strip().lower())
            if alias is not None:
                return alias
        raise ValueError(f"unknown_console_mode:{value}")


_CONSOLE_MODE_ALIASES = {mode.value: mode for mode in ConsoleMode}
_CONSOLE_MODE_ALIASES.update({"": ConsoleMode.NONE, "-c": ConsoleMode.MIRROR, "-p": ConsoleMode.LEGACY})

_FLAG_QUIET = "-q"
_FLAG_MIRROR = "-C"
_FLAG_LEGACY = "-P"


@dataclass
class RegisterRequest:
    session_id: str
    raw_args: Optional[List[str]] = None
    script_args: Optional[List[str]] = None
    quiet: bool = False
    console_mode: ConsoleMode = ConsoleMode.NONE


@dataclass
class ArgumentFlags:
    quiet: bool = False
    console_mode: ConsoleMode = ConsoleMode.NONE
    script_args: List[str] = field(default_factory=list)


def split_fields(payload: str) -> Tuple[str, Optional[str]]:
    """Split *payload* on the first NUL; the second field is None when absent."""
    head, sep, tail = payload.partition(FIELD_SEPARATOR)
    if not sep:
        return payload, None
    return head, tail


def join_fields(first: str, second: str) -> str:
    return f"{first}{FIELD_SEPARATOR}{second}"


def is_separator_token(token: str) -> bool:
    return token == "--" or token.startswith("~") or token.startswith("/") or token.startswith("./")


def classify_arguments(arguments: Iterable[str]) -> ArgumentFlags:
    """Collect leading flags and the script arguments that follow the first separator.

    Index 0 is the program name and never counts as a separator.  Once a
    separator is seen, it and every later token are script arguments; flags
    after that point are not interpreted.
    """
    args = list(arguments)
    flags = ArgumentFlags()
    seen_separator = False
    for index, token in enumerate(args):
        if index > 0 and is_separator_token(token):
            seen_separator = True
        if seen_separator:
            flags.script_args.append(token)
            continue
        if token == _FLAG_QUIET:
            flags.quiet = True
        elif token == _FLAG_MIRROR:
            flags.console_mode = ConsoleMode.MIRROR
        elif token == _FLAG_LEGACY:
            flags.console_mode = ConsoleMode.LEGACY
    if not flags.script_args:
        flags.script_args = list(args)
    return flags


def decode_arguments(encoded: str) -> List[str]:
    try:
        decoded = json.loads(encoded)
    except json.JSONDecodeError as exc:
        raise RegistrationError(f"invalid_arguments:{exc.msg}") from exc
    if not isinstance(decoded, list) or not all(isinstance(item, str) for item in decoded):
        raise RegistrationError("invalid_arguments:expected array of strings")
    return decoded


def encode_arguments(arguments: Iterable[str]) -> str:
    return json.dumps([str(item) for item in arguments])


def parse_register_payload(payload: str) -> RegisterRequest:
    """Decode a register payload (``id`` or ``id\\0[json args]``)."""
    session_id, encoded = split_fields(payload)
    if encoded is None:
        return RegisterRequest(session_id=session_id)
    arguments = decode_arguments(encoded)
    flags = classify_arguments(arguments)
    return RegisterRequest(
        session_id=session_id,
        raw_args=arguments,
        script_args=flags.script_args,
        quiet=flags.quiet,
        console_mode=flags.console_mode,
    )


def build_register_payload(session_id: str, arguments: Optional[Iterable[str]] = None) -> str:
    if arguments is None:
        return session_id
    return join_fields(session_id, encode_arguments(arguments))


def format_values(values: Iterable[Any]) -> str:
    """Stringify *values* and join them with tabs."""
    return "\t".join(str(value) for value in values)


__all__ = [
    "VERSION_TOKEN",
    "DEFAULT_LISTENER_NAME",
    "FIELD_SEPARATOR",
    "MessageTag",
    "INBOUND_TAGS",
    "ConsoleMode",
    "RegisterRequest",
    "ArgumentFlags",
    "split_fields",
    "join_fields",
    "is_separator_token",
    "classify_arguments",
    "decode_arguments",
    "encode_arguments",
    "parse_register_payload",
    "build_register_payload",
    "format_values",
]
