"""
Public link handshake protocol.

Wire format (line oriented, CRLF terminated):

    peer  -> relay:  CONNECT <host:port> HTTP/1.1\\r\\n
    relay -> peer:   HTTP/1.1 200 OK\\r\\n

After the acknowledgment every line in either direction is opaque payload.
The data link has no handshake.
"""

from revlink.models.commands import Address
from revlink.relay.exceptions import AddressError

# =============================================================================
# Handshake Constants
# =============================================================================

CONNECT_PREFIX: bytes = b"CONNECT "
CONNECT_SUFFIX: bytes = b" HTTP/1.1\r\n"
CONNECT_OK: bytes = b"HTTP/1.1 200 OK\r\n"


def is_connect_request(line: bytes) -> bool:
    """Check whether a line has the shape of a handshake directive."""
    return (
        line.startswith(CONNECT_PREFIX)
        and line.endswith(CONNECT_SUFFIX)
        and len(line) >= len(CONNECT_PREFIX) + len(CONNECT_SUFFIX)
    )


def parse_connect_request(line: bytes) -> Address:
    """
    Parse the target address out of a handshake directive.

    Args:
        line: One line read from the public link, terminator included

    Returns:
        The requested data endpoint address

    Raises:
        AddressError: if the line is not a directive or its address is invalid
    """
    if not is_connect_request(line):
        raise AddressError(line.decode("utf-8", errors="replace").rstrip("\r\n"))

    target = line[len(CONNECT_PREFIX) : -len(CONNECT_SUFFIX)]
    try:
        text = target.decode("ascii")
    except UnicodeDecodeError as e:
        raise AddressError(target.decode("utf-8", errors="replace")) from e

    return Address.parse(text)


def build_connect_request(address: Address) -> bytes:
    """Build a handshake directive for ``address``."""
    return CONNECT_PREFIX + str(address).encode("ascii") + CONNECT_SUFFIX
