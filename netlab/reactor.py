"""Event-driven echo server built on a readiness selector with per-connection slots."""

from __future__ import annotations

import argparse
import selectors
import socket
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TextIO

from netlab.sockio import create_listener

MAX_EVENTS = 1024
BUFLEN = 4096
SERV_PORT = 8080
IDLE_TIMEOUT = 60
CHECKS_PER_ROUND = 100
_WAIT_TIMEOUT = 1.0

READ = selectors.EVENT_READ
WRITE = selectors.EVENT_WRITE


def _emit(out: TextIO, text: str) -> None:
    out.write(text)
    flush = getattr(out, "flush", None)
    if flush is not None:
        flush()


@dataclass(eq=False)
class EventSlot:
    """One watched socket: what it waits for, what to call, and what it last received."""

    index: int
    sock: Optional[socket.socket] = None
    fd: int = -1
    events: int = 0
    handler: Optional[Callable[["EventSlot"], None]] = None
    active: bool = False
    data: bytes = b""
    last_active: float = 0.0


class Reactor:
    """Echo every chunk a client sends straight back, switching between read and write interest.

    Clients occupy the first ``max_events`` slots; the listener occupies the last.
    Clients idle for ``idle_timeout`` seconds are disconnected.
    """

    def __init__(
        self,
        listener: socket.socket,
        max_events: int = MAX_EVENTS,
        idle_timeout: float = IDLE_TIMEOUT,
        clock: Callable[[], float] = time.time,
        out: Optional[TextIO] = None,
    ) -> None:
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self._listener = listener
        self.max_events = max_events
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._out = sys.stdout if out is None else out
        self._selector = selectors.DefaultSelector()
        self.slots = [EventSlot(index) for index in range(max_events + 1)]
        self._checkpos = 0
        self._closed = False

        listener.setblocking(False)
        listen_slot = self.slots[max_events]
        self._set(listen_slot, listener, self._accept)
        self._add(listen_slot, READ)

    def __enter__(self) -> "Reactor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _set(self, slot: EventSlot, sock: socket.socket, handler) -> None:
        slot.sock = sock
        slot.fd = sock.fileno()
        slot.handler = handler
        slot.events = 0
        slot.last_active = self._clock()

    def _add(self, slot: EventSlot, events: int) -> None:
        slot.events = events
        try:
            if slot.active:
                self._selector.modify(slot.sock, events, slot)
                op = "MOD"
            else:
                self._selector.register(slot.sock, events, slot)
                op = "ADD"
        except (KeyError, ValueError, OSError):
            _emit(self._out, f"event add failed [fd={slot.fd}], events[{events}]\n")
            return
        slot.active = True
        _emit(self._out, f"event add OK [fd={slot.fd}], op={op}, events[{events:X}]\n")

    def _del(self, slot: EventSlot) -> None:
        if not slot.active:
            return
        slot.active = False
        try:
            self._selector.unregister(slot.sock)
        except (KeyError, ValueError):
            pass

    @staticmethod
    def _close_sock(slot: EventSlot) -> None:
        if slot.sock is not None:
            slot.sock.close()
            slot.sock = None

    def _accept(self, slot: EventSlot) -> None:
        try:
            conn, address = self._listener.accept()
        except OSError as exc:
            _emit(self._out, f"acceptconn: accept, {exc}\n")
            return

        free = next((s for s in self.slots[: self.max_events] if not s.active), None)
        if free is None:
            _emit(self._out, f"acceptconn: max connect limit[{self.max_events}]\n")
            conn.close()
            return
        try:
            conn.setblocking(False)
        except OSError as exc:
            _emit(self._out, f"acceptconn: fcntl nonblocking failed, {exc}\n")
            conn.close()
            return

        self._set(free, conn, self._recv)
        self._add(free, READ)
        _emit(
            self._out,
            f"new connect [{address[0]}:{address[1]}][time:{int(free.last_active)}], "
            f"pos[{free.index}]\n",
        )

    def _recv(self, slot: EventSlot) -> None:
        fd = slot.fd
        error: Optional[OSError] = None
        try:
            data = slot.sock.recv(BUFLEN)
        except OSError as exc:
            data, error = b"", exc
        self._del(slot)

        if error is not None:
            self._close_sock(slot)
            _emit(self._out, f"recv[fd={fd}] error:{error}\n")
        elif data:
            slot.data = data
            _emit(self._out, f"C[{fd}]:{data.decode('utf-8', 'replace')}\n")
            self._set(slot, slot.sock, self._send)
            self._add(slot, WRITE)
        else:
            self._close_sock(slot)
            _emit(self._out, f"[fd={fd}] pos[{slot.index}], closed\n")

    def _send(self, slot: EventSlot) -> None:
        fd = slot.fd
        try:
            sent = slot.sock.send(slot.data)
            error = None
        except OSError as exc:
            sent, error = 0, exc

        if sent > 0:
            _emit(self._out, f"send[fd={fd}], [{sent}]{slot.data.decode('utf-8', 'replace')}")
            self._del(slot)
            self._set(slot, slot.sock, self._recv)
            self._add(slot, READ)
        else:
            self._del(slot)
            self._close_sock(slot)
            reason = error if error is not None else "nothing sent"
            _emit(self._out, f"send[fd={fd}] error {reason}\n")

    def check_timeouts(self) -> list[int]:
        """Check the next batch of client slots and close idle ones; return their indices."""
        now = self._clock()
        expired: list[int] = []
        for _ in range(CHECKS_PER_ROUND):
            if self._checkpos == self.max_events:
                self._checkpos = 0
            slot = self.slots[self._checkpos]
            self._checkpos += 1
            if not slot.active:
                continue
            if now - slot.last_active >= self.idle_timeout:
                fd = slot.fd
                self._del(slot)
                self._close_sock(slot)
                _emit(self._out, f"[fd={fd}] timeout\n")
                expired.append(slot.index)
        return expired

    def run_once(self, timeout: Optional[float] = _WAIT_TIMEOUT) -> int:
        """Expire idle clients, wait for readiness, dispatch; return the number of ready sockets."""
        self.check_timeouts()
        ready = self._selector.select(timeout)
        for key, mask in ready:
            slot: EventSlot = key.data
            if mask & READ and slot.active and slot.events & READ:
                slot.handler(slot)
            if mask & WRITE and slot.active and slot.events & WRITE:
                slot.handler(slot)
        return len(ready)

    def run(self, stop: Optional[threading.Event] = None) -> None:
        """Dispatch events until ``stop`` is set or waiting fails."""
        while stop is None or not stop.is_set():
            try:
                self.run_once(_WAIT_TIMEOUT)
            except OSError:
                _emit(self._out, "epoll_wait error, exit\n")
                break

    def close(self) -> None:
        """Close every client connection and stop watching the listener."""
        if self._closed:
            return
        self._closed = True
        for slot in self.slots[: self.max_events]:
            self._del(slot)
            self._close_sock(slot)
        self._del(self.slots[self.max_events])
        self._selector.close()


def main(argv: Optional[list[str]] = None) -> int:
    """Run the event-driven echo server."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("port", nargs="?", type=int, default=SERV_PORT)
    args = parser.parse_args(argv)

    try:
        listener = create_listener(args.port, 20)
    except OSError as exc:
        print(f"bind error: {exc}", file=sys.stderr)
        return 1

    with listener:
        with Reactor(listener) as reactor:
            print(f"server running:port[{args.port}]", flush=True)
            try:
                reactor.run()
            except KeyboardInterrupt:
                pass
    return 0