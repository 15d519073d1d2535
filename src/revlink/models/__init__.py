"""Shared types for the relay."""

from revlink.models.commands import (
    Address,
    Command,
    Connect,
    Connected,
    Data,
    Disconnect,
)
from revlink.models.enums import LinkState, LogLevel, SessionState

__all__ = [
    "Address",
    "Command",
    "Connect",
    "Connected",
    "Data",
    "Disconnect",
    "LinkState",
    "LogLevel",
    "SessionState",
]
