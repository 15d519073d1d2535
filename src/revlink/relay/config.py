"""
Relay configuration.

A global Config instance that can be modified at runtime.
"""

from dataclasses import dataclass

from revlink.models.commands import Address
from revlink.models.enums import LogLevel


@dataclass
class RelayConfig:
    """Relay process configuration."""

    # Network Configuration
    PUBLIC_ADDRESS: str = "127.0.0.1:8080"

    # Timing Configuration
    RECONNECT_INTERVAL_SECONDS: float = 5.0
    DATA_CONNECT_TIMEOUT_SECONDS: float | None = None  # None waits for the OS

    # Relay Configuration
    BUS_CAPACITY: int = 32  # Queued commands per subscriber before dropping
    READ_LIMIT: int = 64 * 1024  # Longest accepted line, terminator included
    EXCLUSIVE_DIALING: bool = False  # Ignore Connect while a handler is dialing

    # Logging Configuration
    LOG_LEVEL: LogLevel = LogLevel.INFO

    def get_public_address(self) -> Address:
        """
        Get the parsed public endpoint address.

        Raises:
            AddressError: if PUBLIC_ADDRESS is not a socket address
        """
        return Address.parse(self.PUBLIC_ADDRESS)


# Global config instance
config = RelayConfig()
