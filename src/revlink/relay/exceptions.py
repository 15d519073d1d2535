"""Relay exception classes."""


class RelayError(Exception):
    """Base exception for relay operations."""

    pass


class AddressError(RelayError, ValueError):
    """A value could not be parsed as a ``host:port`` socket address."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid socket address: {value!r}")


class LinkError(RelayError):
    """Connect, read or write failure on one endpoint."""

    def __init__(self, address, message: str):
        self.address = address
        super().__init__(f"{address}: {message}")
