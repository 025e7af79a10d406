"""Line-oriented TCP client: send each input line, print the server's reply."""

from __future__ import annotations

import argparse
import socket
import sys
from typing import Iterable, Iterator, Optional, TextIO, Union

from netlab.echo import CLOSED_MESSAGE, MAXLINE, _emit
from netlab.sockio import writen

__all__ = ["CLOSED_MESSAGE", "MAXLINE", "main", "run_client"]


def _pieces(data: bytes, size: int = MAXLINE) -> Iterator[bytes]:
    """Split ``data`` the way a line read into a ``size``-byte buffer would."""
    step = size - 1
    for start in range(0, len(data), step):
        yield data[start:start + step]


def run_client(
    sock: socket.socket,
    lines: Iterable[Union[bytes, str]],
    out: Optional[TextIO] = None,
) -> list[bytes]:
    """Send each line, write each reply to ``out`` and return the replies.

    Stops early, after reporting it, when the server closes the connection.
    """
    if out is None:
        out = sys.stdout
    replies: list[bytes] = []
    for line in lines:
        data = line.encode("utf-8") if isinstance(line, str) else bytes(line)
        for piece in _pieces(data):
            try:
                writen(sock, piece)
                reply = sock.recv(MAXLINE)
            except (BrokenPipeError, ConnectionResetError):
                reply = b""
            if not reply:
                _emit(out, CLOSED_MESSAGE + "\n")
                return replies
            _emit(out, reply.decode("utf-8", "replace"))
            replies.append(reply)
    return replies


def main(argv: Optional[list[str]] = None) -> int:
    """Connect to an echo server and relay standard input to it."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("host", nargs="?", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    try:
        sock = socket.create_connection((args.host, args.port))
    except OSError as exc:
        print(f"connect error: {exc}", file=sys.stderr)
        return 1

    with sock:
        run_client(sock, sys.stdin.buffer, sys.stdout)
    return 0