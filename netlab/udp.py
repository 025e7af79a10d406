"""UDP demos: an upper-casing echo server and client, plus broadcast and multicast senders and receivers."""

from __future__ import annotations

import argparse
import ipaddress
import itertools
import select
import socket
import struct
import sys
import threading
import time
from typing import Iterable, Iterator, Optional, TextIO, Union

from netlab.echo import format_peer, to_upper

BUFSIZ = 8192
MAXLINE = 4096
SERV_PORT = 8000
SERVER_PORT = 8000
CLIENT_PORT = 9000
BROADCAST_IP = "192.168.42.255"
GROUP = "239.0.0.2"
_POLL_INTERVAL = 0.1


def _emit(out: TextIO, text: str) -> None:
    out.write(text)
    flush = getattr(out, "flush", None)
    if flush is not None:
        flush()


def _stopped(stop: Optional[threading.Event]) -> bool:
    return stop is not None and stop.is_set()


def udp_echo_server(
    sock: socket.socket,
    out: Optional[TextIO] = None,
    stop: Optional[threading.Event] = None,
) -> int:
    """Answer every datagram with its upper-cased copy until ``stop`` is set.

    Returns the number of datagrams answered.
    """
    if out is None:
        out = sys.stdout
    _emit(out, "Accepting connections ...\n")
    answered = 0
    while not _stopped(stop):
        ready, _, _ = select.select([sock], [], [], _POLL_INTERVAL)
        if not ready:
            continue
        try:
            data, address = sock.recvfrom(BUFSIZ)
        except OSError as exc:
            _emit(out, f"recvfrom error: {exc}\n")
            continue
        _emit(out, format_peer(address) + "\n")
        try:
            sock.sendto(to_upper(data), address)
        except OSError as exc:
            _emit(out, f"sendto error: {exc}\n")
            continue
        answered += 1
    return answered


def udp_client(
    sock: socket.socket,
    server,
    lines: Iterable[Union[bytes, str]],
    out: Optional[TextIO] = None,
) -> list[bytes]:
    """Send each line to ``server``, write each reply to ``out`` and return the replies."""
    if out is None:
        out = sys.stdout
    replies: list[bytes] = []
    for line in lines:
        data = line.encode("utf-8") if isinstance(line, str) else bytes(line)
        try:
            sock.sendto(data, server)
        except OSError as exc:
            _emit(out, f"sendto error: {exc}\n")
            continue
        try:
            reply, _address = sock.recvfrom(BUFSIZ)
        except OSError as exc:
            _emit(out, f"recvfrom error: {exc}\n")
            continue
        _emit(out, reply.decode("utf-8", "replace"))
        replies.append(reply)
    return replies


def broadcast_messages(start: int = 0) -> Iterator[bytes]:
    """Yield the numbered messages the broadcast sender transmits."""
    for number in itertools.count(start):
        yield f"Drink {number} glasses of water\n".encode("ascii")


def multicast_messages(start: int = 0) -> Iterator[bytes]:
    """Yield the numbered messages the multicast sender transmits."""
    for number in itertools.count(start):
        yield f"itcast {number}\n".encode("ascii")


def send_periodic(
    sock: socket.socket,
    address,
    messages: Iterable[bytes],
    interval: float = 1.0,
    count: Optional[int] = None,
) -> int:
    """Send messages to ``address`` one per ``interval`` seconds; return how many were sent.

    Sends until ``messages`` runs out, or ``count`` messages when it is given.
    """
    if count is not None and count < 0:
        raise ValueError("count must not be negative")
    if interval < 0:
        raise ValueError("interval must not be negative")
    selected = messages if count is None else itertools.islice(messages, count)
    sent = 0
    for message in selected:
        if sent:
            time.sleep(interval)
        sock.sendto(message, address)
        sent += 1
    return sent


def receive_datagrams(
    sock: socket.socket,
    out: Optional[TextIO] = None,
    count: Optional[int] = None,
) -> list[bytes]:
    """Receive datagrams and copy them to ``out``; stop after ``count`` when it is given."""
    if count is not None and count < 0:
        raise ValueError("count must not be negative")
    if out is None:
        out = sys.stdout
    received: list[bytes] = []
    while count is None or len(received) < count:
        data, _address = sock.recvfrom(MAXLINE)
        _emit(out, data.decode("utf-8", "replace"))
        received.append(data)
    return received


def _membership_request(group: str, interface: Optional[str]) -> bytes:
    try:
        address = ipaddress.IPv4Address(group)
    except ValueError as exc:
        raise ValueError(f"not an IPv4 address: {group!r}") from exc
    if not address.is_multicast:
        raise ValueError(f"not a multicast group: {group}")
    any_address = socket.inet_aton("0.0.0.0")
    if interface is None:
        return address.packed + any_address
    index = socket.if_nametoindex(interface)
    return struct.pack("=4s4si", address.packed, any_address, index)


def join_multicast(
    sock: socket.socket, group: str = GROUP, interface: Optional[str] = None
) -> bytes:
    """Make ``sock`` a member of ``group``, optionally on a named interface.

    Returns the membership request that was applied.
    """
    request = _membership_request(group, interface)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, request)
    return request


def _udp_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_DGRAM)


def main(argv: Optional[list[str]] = None) -> int:
    """Run one of the UDP demos."""
    parser = argparse.ArgumentParser(description=__doc__)
    commands = parser.add_subparsers(dest="command", required=True)

    server = commands.add_parser("server", help="upper-casing echo server")
    server.add_argument("--port", type=int, default=SERV_PORT)

    client = commands.add_parser("client", help="send standard input to the echo server")
    client.add_argument("host", nargs="?", default="127.0.0.1")
    client.add_argument("--port", type=int, default=SERV_PORT)

    bsend = commands.add_parser("broadcast-server", help="broadcast numbered messages")
    bsend.add_argument("--address", default=BROADCAST_IP)
    bsend.add_argument("--port", type=int, default=CLIENT_PORT)
    bsend.add_argument("--interval", type=float, default=1.0)

    brecv = commands.add_parser("broadcast-client", help="print broadcast messages")
    brecv.add_argument("--port", type=int, default=CLIENT_PORT)

    msend = commands.add_parser("multicast-server", help="send numbered messages to a group")
    msend.add_argument("--group", default=GROUP)
    msend.add_argument("--port", type=int, default=CLIENT_PORT)
    msend.add_argument("--interface", default=None)
    msend.add_argument("--interval", type=float, default=1.0)

    mrecv = commands.add_parser("multicast-client", help="join a group and print its messages")
    mrecv.add_argument("--group", default=GROUP)
    mrecv.add_argument("--port", type=int, default=CLIENT_PORT)
    mrecv.add_argument("--interface", default=None)

    args = parser.parse_args(argv)

    try:
        with _udp_socket() as sock:
            if args.command == "server":
                sock.bind(("", args.port))
                udp_echo_server(sock)
            elif args.command == "client":
                udp_client(sock, (args.host, args.port), sys.stdin.buffer)
            elif args.command == "broadcast-server":
                sock.bind(("", SERVER_PORT))
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
                send_periodic(
                    sock, (args.address, args.port), broadcast_messages(), args.interval
                )
            elif args.command == "broadcast-client":
                sock.bind(("0.0.0.0", args.port))
                print("...bind ok...", flush=True)
                receive_datagrams(sock)
            elif args.command == "multicast-server":
                sock.bind(("", SERVER_PORT))
                request = _membership_request(args.group, args.interface)
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, request)
                send_periodic(
                    sock, (args.group, args.port), multicast_messages(), args.interval
                )
            else:
                sock.bind(("0.0.0.0", args.port))
                join_multicast(sock, args.group, args.interface)
                receive_datagrams(sock)
    except KeyboardInterrupt:
        pass
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0