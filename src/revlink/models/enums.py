"""
Enumeration types for revlink.

State enums for the relay's long-lived components and logging configuration.
"""

from enum import Enum


# =============================================================================
# Session / Link Enums
# =============================================================================


class SessionState(str, Enum):
    """
    Data session lifecycle, as tracked by the dispatcher.

    State transitions:
        IDLE -> DIALING (Connect dispatched)
        DIALING -> ACTIVE (Connected observed)
        DIALING -> IDLE (handler failed to connect)
        ACTIVE -> IDLE (Disconnect observed or handler finished)
    """

    IDLE = "idle"  # No session; public link parses handshake lines
    DIALING = "dialing"  # Handler spawned, connect in progress
    ACTIVE = "active"  # Data session established; public link forwards


class LinkState(str, Enum):
    """
    Public link state.

    CONNECTING -> HANDSHAKE -> FORWARDING -> CONNECTING (on any failure)
    """

    CONNECTING = "connecting"
    HANDSHAKE = "handshake"
    FORWARDING = "forwarding"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace, including every relayed line
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
