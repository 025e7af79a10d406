"""Single-threaded TCP upper-casing echo servers multiplexed with select, poll and selectors."""

from __future__ import annotations

import itertools
import select
import selectors
import socket
import sys
import threading
from typing import Optional, TextIO

from netlab.echo import (
    MAXLINE,
    _POLL_INTERVAL,
    _emit,
    _run_main,
    _stopped,
    format_peer,
    to_upper,
)
from netlab.sockio import accept_connection, writen

POLL_MAXLINE = 80
FD_SETSIZE = 1024
OPEN_MAX = 1024


class TooManyClients(RuntimeError):
    """Raised when a server has no free slot for a newly accepted client."""


def _claim_slot(slots: dict, conn: socket.socket, first: int, limit: int) -> int:
    """Return the lowest free slot numbered from ``first``; close ``conn`` if none is left."""
    slot = next(i for i in itertools.count(first) if i not in slots)
    if slot >= first + limit:
        conn.close()
        raise TooManyClients("too many clients")
    return slot


def _close_all(conns) -> None:
    for conn in conns:
        conn.close()


def serve_select(
    listener: socket.socket,
    out: Optional[TextIO] = None,
    stop: Optional[threading.Event] = None,
    max_clients: int = FD_SETSIZE,
) -> None:
    """Serve clients with ``select`` until ``stop`` is set.

    Each chunk read is sent back upper-cased and also written to ``out``.
    Raises TooManyClients when a client arrives while all slots are taken.
    """
    if out is None:
        out = sys.stdout
    slots: dict[int, socket.socket] = {}

    def drop(slot: int) -> None:
        slots.pop(slot).close()

    try:
        while not _stopped(stop):
            readable, _, _ = select.select(
                [listener, *slots.values()], [], [], _POLL_INTERVAL
            )
            if listener in readable:
                conn, address = accept_connection(listener)
                _emit(out, format_peer(address) + "\n")
                slots[_claim_slot(slots, conn, 0, max_clients)] = conn

            for slot, conn in list(slots.items()):
                if conn not in readable:
                    continue
                try:
                    data = conn.recv(MAXLINE)
                except OSError as exc:
                    _emit(out, f"read error: {exc}\n")
                    drop(slot)
                    continue
                if not data:
                    drop(slot)
                    continue
                upper = to_upper(data)
                try:
                    writen(conn, upper)
                except OSError:
                    drop(slot)
                    continue
                _emit(out, upper.decode("utf-8", "replace"))
    finally:
        _close_all(slots.values())


def serve_poll(
    listener: socket.socket,
    out: Optional[TextIO] = None,
    stop: Optional[threading.Event] = None,
    max_clients: int = OPEN_MAX - 1,
) -> None:
    """Serve clients with ``poll`` until ``stop`` is set.

    Clients occupy slots numbered from 1; the slot is reported when a client
    leaves. Raises TooManyClients when all slots are taken.
    """
    if not hasattr(select, "poll"):
        raise RuntimeError("poll is not available on this platform")
    if out is None:
        out = sys.stdout
    poller = select.poll()
    listen_fd = listener.fileno()
    poller.register(listen_fd, select.POLLIN)
    slots: dict[int, socket.socket] = {}
    slot_of_fd: dict[int, int] = {}

    def release(fd: int) -> None:
        poller.unregister(fd)
        slots.pop(slot_of_fd.pop(fd)).close()

    try:
        while not _stopped(stop):
            for fd, mask in poller.poll(int(_POLL_INTERVAL * 1000)):
                if fd == listen_fd:
                    if mask & select.POLLIN:
                        conn, address = accept_connection(listener)
                        _emit(out, format_peer(address) + "\n")
                        slot = _claim_slot(slots, conn, 1, max_clients)
                        slots[slot] = conn
                        slot_of_fd[conn.fileno()] = slot
                        poller.register(conn.fileno(), select.POLLIN)
                    continue

                slot = slot_of_fd.get(fd)
                if slot is None:
                    continue
                if not mask & (select.POLLIN | select.POLLERR | select.POLLHUP):
                    continue
                conn = slots[slot]
                try:
                    data = conn.recv(POLL_MAXLINE)
                except ConnectionResetError:
                    _emit(out, f"client[{slot}] aborted connection\n")
                    release(fd)
                    continue
                if not data:
                    _emit(out, f"client[{slot}] closed connection\n")
                    release(fd)
                    continue
                try:
                    writen(conn, to_upper(data))
                except OSError:
                    release(fd)
    finally:
        _close_all(slots.values())


def serve_selector(
    listener: socket.socket,
    out: Optional[TextIO] = None,
    stop: Optional[threading.Event] = None,
) -> None:
    """Serve clients with the platform's best selector until ``stop`` is set."""
    if out is None:
        out = sys.stdout
    selector = selectors.DefaultSelector()
    selector.register(listener, selectors.EVENT_READ, None)
    accepted = 0

    def drop(conn: socket.socket) -> None:
        selector.unregister(conn)
        conn.close()

    try:
        while not _stopped(stop):
            for key, _events in selector.select(_POLL_INTERVAL):
                if key.data is None:
                    conn, address = accept_connection(listener)
                    accepted += 1
                    _emit(out, format_peer(address) + "\n")
                    _emit(out, f"cfd {conn.fileno()}---client {accepted}\n")
                    selector.register(conn, selectors.EVENT_READ, address)
                    continue

                conn = key.fileobj
                fd = key.fd
                try:
                    data = conn.recv(MAXLINE)
                except OSError as exc:
                    _emit(out, f"read n < 0 error: {exc}\n")
                    drop(conn)
                    continue
                if not data:
                    drop(conn)
                    _emit(out, f"client[{fd}] closed connection\n")
                    continue
                upper = to_upper(data)
                _emit(out, upper.decode("utf-8", "replace"))
                try:
                    writen(conn, upper)
                except OSError:
                    drop(conn)
    finally:
        _close_all(
            key.fileobj
            for key in list(selector.get_map().values())
            if key.fileobj is not listener
        )
        selector.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Run one of the multiplexed echo servers."""
    modes = {
        "select": (6666, 128, serve_select),
        "poll": (8000, 128, serve_poll),
        "epoll": (8000, 20, serve_selector),
    }
    return _run_main(argv, __doc__, modes, "epoll", fatal=(TooManyClients,))