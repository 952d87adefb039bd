"""Exception types shared by the hsipc host and client."""

from __future__ import annotations


class IPCError(RuntimeError):
    """Base class for hsipc failures."""


class TransportError(IPCError):
    """Raised when a channel cannot deliver a message."""


class RegistrationError(IPCError, ValueError):
    """Raised when a register payload cannot be decoded."""


class ProtocolVersionError(IPCError):
    """Raised when the server does not answer the version probe with the expected token."""


class ClientError(IPCError):
    """Raised when a client request fails or times out."""


__all__ = [
    "IPCError",
    "TransportError",
    "RegistrationError",
    "ProtocolVersionError",
    "ClientError",
]
