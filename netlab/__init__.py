"""TCP and UDP echo servers, clients, readiness demos and socket helpers."""

__version__ = "0.1.0"

__all__ = [
    "byteorder",
    "client",
    "echo",
    "edge",
    "multiplex",
    "reactor",
    "sockio",
    "udp",
]