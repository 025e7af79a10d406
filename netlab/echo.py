"""TCP upper-casing echo servers: single-client, thread-per-client and worker-per-client."""

from __future__ import annotations

import argparse
import select
import socket
import sys
import threading
from typing import Callable, Optional, TextIO

from netlab.sockio import accept_connection, create_listener, writen

MAXLINE = 8192
CLOSED_MESSAGE = "the other side has been closed."
_POLL_INTERVAL = 0.1


def _emit(out: TextIO, text: str) -> None:
    """Write ``text`` to ``out`` and flush it when the stream can be flushed."""
    out.write(text)
    flush = getattr(out, "flush", None)
    if flush is not None:
        flush()


def _stopped(stop: Optional[threading.Event]) -> bool:
    return stop is not None and stop.is_set()


class _SynchronizedWriter:
    """Serialise writes from several threads onto one text stream."""

    def __init__(self, out: TextIO) -> None:
        self._out = out
        self._lock = threading.Lock()

    def write(self, text: str) -> None:
        with self._lock:
            self._out.write(text)

    def flush(self) -> None:
        with self._lock:
            flush = getattr(self._out, "flush", None)
            if flush is not None:
                flush()


def to_upper(data: bytes) -> bytes:
    """Upper-case the ASCII letters in ``data``; every other byte is kept."""
    return bytes(data).upper()


def format_peer(address) -> str:
    """Describe where a chunk of data came from."""
    host, port = address[0], address[1]
    return f"received from {host} at PORT {port}"


def handle_connection(conn: socket.socket, address, out: Optional[TextIO] = None) -> None:
    """Echo everything read from ``conn`` back upper-cased until the peer closes it."""
    if out is None:
        out = sys.stdout
    with conn:
        while True:
            try:
                data = conn.recv(MAXLINE)
            except OSError as exc:
                _emit(out, f"read error: {exc}\n")
                break
            if not data:
                _emit(out, CLOSED_MESSAGE + "\n")
                break
            _emit(out, format_peer(address) + "\n")
            upper = to_upper(data)
            _emit(out, upper.decode("utf-8", "replace"))
            try:
                writen(conn, upper)
            except OSError as exc:
                _emit(out, f"write error: {exc}\n")
                break


def serve_single(listener: socket.socket, out: Optional[TextIO] = None):
    """Accept one client and serve it until it disconnects; return its address."""
    if out is None:
        out = sys.stdout
    _emit(out, "wait for client connect ...\n")
    conn, address = accept_connection(listener)
    _emit(out, f"client IP:{address[0]}\tport:{address[1]}\n")
    handle_connection(conn, address, out)
    return address


def _serve_workers(
    listener: socket.socket,
    out: Optional[TextIO],
    banner: str,
    stop: Optional[threading.Event],
) -> None:
    """Hand every accepted client to its own daemon worker until ``stop`` is set."""
    writer = _SynchronizedWriter(sys.stdout if out is None else out)
    _emit(writer, banner)
    while not _stopped(stop):
        ready, _, _ = select.select([listener], [], [], _POLL_INTERVAL)
        if not ready:
            continue
        conn, address = accept_connection(listener)
        threading.Thread(
            target=handle_connection, args=(conn, address, writer), daemon=True
        ).start()


def serve_threaded(
    listener: socket.socket,
    out: Optional[TextIO] = None,
    stop: Optional[threading.Event] = None,
) -> None:
    """Serve every client on its own daemon thread until ``stop`` is set."""
    _serve_workers(listener, out, "Accepting client connect ...\n", stop)


def serve_forking(listener: socket.socket, out: Optional[TextIO] = None) -> None:
    """Serve every client on its own independent worker; runs until interrupted.

    Each accepted connection is handed to a dedicated worker that owns it
    outright, so the accepting loop keeps nothing of the connection.
    """
    _serve_workers(listener, out, "Accepting connections ...\n", None)


def _run_main(
    argv: Optional[list[str]],
    description: Optional[str],
    modes: dict[str, tuple[int, int, Callable[[socket.socket], None]]],
    default_mode: str,
    fatal: tuple[type[BaseException], ...] = (),
) -> int:
    """Parse the server options, bind the listener and run the chosen server."""
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--mode", choices=sorted(modes), default=default_mode)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--host", default="")
    args = parser.parse_args(argv)

    default_port, backlog, server = modes[args.mode]
    port = default_port if args.port is None else args.port
    try:
        listener = create_listener(port, backlog, args.host)
    except OSError as exc:
        print(f"bind error: {exc}", file=sys.stderr)
        return 1

    with listener:
        try:
            server(listener)
        except fatal as exc:
            print(exc, file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            pass
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Run one of the echo servers."""
    modes = {
        "single": (9527, 64, serve_single),
        "threaded": (8000, 128, serve_threaded),
        "forking": (8000, 20, serve_forking),
    }
    return _run_main(argv, __doc__, modes, "threaded")