"""Socket I/O helpers: exact-length reads and writes, buffered line reads, listeners."""

from __future__ import annotations

import socket

_CHUNK_SIZE = 100
DEFAULT_MAXLEN = 8192


class LineReader:
    """Read newline-terminated lines from a socket through a small read-ahead buffer."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._buffer = b""

    def _fill(self) -> bool:
        """Refill the read-ahead buffer; return False at end of stream."""
        chunk = self._sock.recv(_CHUNK_SIZE)
        self._buffer = chunk
        return bool(chunk)

    def readline(self, maxlen: int = DEFAULT_MAXLEN) -> bytes:
        """Return the next line, newline included, of at most ``maxlen - 1`` bytes.

        The line is shorter when the stream ends first; an empty result at
        end of stream means nothing was left to read.
        """
        if maxlen < 1:
            raise ValueError("maxlen must be at least 1")
        limit = maxlen - 1
        line = bytearray()
        while len(line) < limit:
            if not self._buffer and not self._fill():
                break
            take = self._buffer[: limit - len(line)]
            newline = take.find(b"\n")
            if newline >= 0:
                take = take[: newline + 1]
            line += take
            self._buffer = self._buffer[len(take):]
            if newline >= 0:
                break
        return bytes(line)

    def __iter__(self):
        """Yield lines until the stream ends."""
        while line := self.readline():
            yield line


def readn(sock: socket.socket, n: int) -> bytes:
    """Read exactly ``n`` bytes, or fewer if the peer closes the stream first."""
    if n < 0:
        raise ValueError("n must not be negative")
    chunks: list[bytes] = []
    remaining = n
    while remaining > 0:
        data = sock.recv(remaining)
        if not data:
            break
        chunks.append(data)
        remaining -= len(data)
    return b"".join(chunks)


def writen(sock: socket.socket, data: bytes) -> int:
    """Write all of ``data`` and return the number of bytes written."""
    view = memoryview(data)
    while view:
        sent = sock.send(view)
        if sent <= 0:
            raise ConnectionError("socket accepted no data")
        view = view[sent:]
    return len(data)


def accept_connection(listener: socket.socket):
    """Accept a connection, retrying when the attempt is aborted or interrupted."""
    while True:
        try:
            return listener.accept()
        except (ConnectionAbortedError, InterruptedError):
            continue


def create_listener(
    port: int,
    backlog: int = 128,
    host: str = "",
    reuse_addr: bool = True,
) -> socket.socket:
    """Create an IPv4 TCP socket bound to ``host:port`` and listening."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        if reuse_addr:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
    except BaseException:
        sock.close()
        raise
    return sock