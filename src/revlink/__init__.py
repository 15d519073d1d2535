"""
revlink - reverse-tunnel relay.

Keeps an outbound link to a public rendezvous endpoint and, on request,
bridges it to a second outbound data connection.
"""

__version__ = "0.1.0"
