"""Edge- and level-triggered readiness demos: a patterned writer and a half-chunk reader."""

from __future__ import annotations

import argparse
import itertools
import os
import select
import selectors
import socket
import sys
import threading
import time
from typing import Iterator, Optional, TextIO, Union

from netlab.echo import format_peer
from netlab.sockio import accept_connection, create_listener

MAXLINE = 10
HALF = MAXLINE // 2
_POLL_INTERVAL = 0.1


def _emit(out: TextIO, text: str) -> None:
    out.write(text)
    flush = getattr(out, "flush", None)
    if flush is not None:
        flush()


def _stopped(stop: Optional[threading.Event]) -> bool:
    return stop is not None and stop.is_set()


def make_chunk(first: Union[int, str]) -> bytes:
    """Build one 10-byte chunk: four ``first`` bytes, newline, four of the next byte, newline."""
    if isinstance(first, str):
        if len(first) != 1 or ord(first) > 0xFF:
            raise ValueError(f"expected a single byte-sized character, got {first!r}")
        code = ord(first)
    else:
        code = int(first)
        if not 0 <= code <= 0xFF:
            raise ValueError(f"byte value out of range: {first!r}")
    second = (code + 1) & 0xFF
    return bytes([code]) * (HALF - 1) + b"\n" + bytes([second]) * (HALF - 1) + b"\n"


def pattern_chunks() -> Iterator[bytes]:
    """Yield chunks starting at ``a``, advancing two byte values each time."""
    code = ord("a")
    while True:
        yield make_chunk(code)
        code = (code + 2) & 0xFF


def _write_all(target, data: bytes) -> None:
    if isinstance(target, int):
        view = memoryview(data)
        while view:
            view = view[os.write(target, view):]
    else:
        target.sendall(data)


def write_pattern(sock, interval: float = 5.0, count: Optional[int] = None) -> int:
    """Write pattern chunks to a socket or file descriptor, pausing between them.

    Writes forever when ``count`` is None; returns the number of chunks written.
    """
    if count is not None and count < 0:
        raise ValueError("count must not be negative")
    chunks = pattern_chunks()
    if count is not None:
        chunks = itertools.islice(chunks, count)
    written = 0
    for chunk in chunks:
        if written:
            time.sleep(interval)
        _write_all(sock, chunk)
        written += 1
    return written


class _ReadinessWatcher:
    """Watch one socket for input: edge-triggered where epoll exists, level-triggered otherwise."""

    def __init__(self, sock: socket.socket) -> None:
        self._epoll = None
        self._selector = None
        if hasattr(select, "epoll"):
            self._epoll = select.epoll()
            self._epoll.register(sock.fileno(), select.EPOLLIN | select.EPOLLET)
        else:
            self._selector = selectors.DefaultSelector()
            self._selector.register(sock, selectors.EVENT_READ)

    def wait(self, timeout: float) -> int:
        if self._epoll is not None:
            return len(self._epoll.poll(timeout))
        return len(self._selector.select(timeout))

    def close(self) -> None:
        if self._epoll is not None:
            self._epoll.close()
        else:
            self._selector.close()

    def __enter__(self) -> "_ReadinessWatcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _take(data: bytes, out: TextIO, received: bytearray) -> None:
    received += data
    _emit(out, data.decode("utf-8", "replace"))


def _read_piece(sock: socket.socket, out: TextIO, received: bytearray) -> bool:
    """Read one half-chunk; return True when the stream has ended."""
    try:
        data = sock.recv(HALF)
    except BlockingIOError:
        return False
    except ConnectionResetError:
        return True
    if not data:
        return True
    _take(data, out, received)
    return False


def _drain(sock: socket.socket, out: TextIO, received: bytearray) -> bool:
    """Read half-chunks until none is left; return True when the stream has ended."""
    while True:
        try:
            data = sock.recv(HALF)
        except BlockingIOError:
            return False
        except ConnectionResetError:
            return True
        if not data:
            return True
        _take(data, out, received)


def read_on_ready(
    sock: socket.socket,
    out: Optional[TextIO] = None,
    drain: bool = False,
    stop: Optional[threading.Event] = None,
) -> bytes:
    """Wait for input and read it in half-chunks, copying it to ``out``.

    Without ``drain`` one half-chunk is read per wake-up; with it the socket is
    made non-blocking and read until empty. Returns everything read once the
    peer closes or ``stop`` is set.
    """
    if out is None:
        out = sys.stdout
    received = bytearray()
    if drain:
        sock.setblocking(False)
    with _ReadinessWatcher(sock) as watcher:
        while not _stopped(stop):
            if drain:
                _emit(out, "epoll_wait begin\n")
            ready = 0
            while not ready and not _stopped(stop):
                ready = watcher.wait(_POLL_INTERVAL)
            if not ready:
                break
            _emit(out, f"epoll_wait end res {ready}\n" if drain else f"res {ready}\n")
            ended = _drain(sock, out, received) if drain else _read_piece(sock, out, received)
            if ended:
                break
    return bytes(received)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the patterned writer, the readiness reader, or both over a local pair."""
    parser = argparse.ArgumentParser(description=__doc__)
    commands = parser.add_subparsers(dest="command", required=True)

    pair = commands.add_parser("pipe", help="writer and reader joined locally")
    pair.add_argument("--drain", action="store_true")
    pair.add_argument("--interval", type=float, default=5.0)

    server = commands.add_parser("server", help="accept one client and read it")
    server.add_argument("--drain", action="store_true")
    server.add_argument("--port", type=int, default=None)
    server.add_argument("--host", default="")

    client = commands.add_parser("client", help="send the pattern to a server")
    client.add_argument("host", nargs="?", default="127.0.0.1")
    client.add_argument("--port", type=int, default=9000)
    client.add_argument("--interval", type=float, default=5.0)

    args = parser.parse_args(argv)

    try:
        if args.command == "pipe":
            writer_end, reader_end = socket.socketpair()
            with writer_end, reader_end:
                writer = threading.Thread(
                    target=write_pattern, args=(writer_end, args.interval), daemon=True
                )
                writer.start()
                read_on_ready(reader_end, sys.stdout, args.drain)
        elif args.command == "server":
            port = args.port if args.port is not None else (8000 if args.drain else 9000)
            with create_listener(port, 20, args.host) as listener:
                print("Accepting connections ...", flush=True)
                conn, address = accept_connection(listener)
                print(format_peer(address), flush=True)
                with conn:
                    read_on_ready(conn, sys.stdout, args.drain)
        else:
            with socket.create_connection((args.host, args.port)) as sock:
                write_pattern(sock, args.interval)
    except KeyboardInterrupt:
        pass
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0