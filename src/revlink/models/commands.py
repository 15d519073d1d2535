"""
Coordination commands carried by the command bus.

The four command types form a closed union; every component matches on them
with ``match`` and ignores the variants it has no use for.
"""

import ipaddress
from dataclasses import dataclass

from revlink.relay.exceptions import AddressError


@dataclass(frozen=True)
class Address:
    """An IP literal plus port. Hostnames are rejected."""

    host: str
    port: int

    @classmethod
    def parse(cls, value: str) -> "Address":
        """
        Parse ``ip:port`` or ``[ipv6]:port``.

        Raises:
            AddressError: if the value is not a socket address
        """
        host, sep, port_text = value.rpartition(":")
        if not sep or not (port_text.isascii() and port_text.isdigit()):
            raise AddressError(value)

        port = int(port_text)
        if port > 65535:
            raise AddressError(value)

        try:
            if host.startswith("[") and host.endswith("]"):
                ip = ipaddress.IPv6Address(host[1:-1])
            else:
                ip = ipaddress.IPv4Address(host)
        except ValueError as e:
            raise AddressError(value) from e

        return cls(host=str(ip), port=port)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Connect:
    """Request to open a data session to ``address``."""

    address: Address


@dataclass(frozen=True)
class Data:
    """One line of payload, terminator included, tagged with its origin."""

    payload: bytes
    origin: Address

    def __repr__(self) -> str:
        return f"Data(len={len(self.payload)}, origin={self.origin})"


@dataclass(frozen=True)
class Connected:
    """A data session to ``address`` has been established."""

    address: Address


@dataclass(frozen=True)
class Disconnect:
    """The data session to ``address`` has ended."""

    address: Address


Command = Connect | Data | Connected | Disconnect
