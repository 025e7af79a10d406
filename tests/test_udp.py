import io
import itertools
import socket
import threading

import pytest

from netlab.udp import (
    broadcast_messages,
    join_multicast,
    multicast_messages,
    receive_datagrams,
    send_periodic,
    udp_client,
    udp_echo_server,
)


@pytest.fixture
def udp_pair():
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    receiver.settimeout(5)
    sender.settimeout(5)
    yield sender, receiver
    sender.close()
    receiver.close()


def test_broadcast_messages_start_at_zero():
    first = list(itertools.islice(broadcast_messages(), 2))
    assert first == [b"Drink 0 glasses of water\n", b"Drink 1 glasses of water\n"]


def test_broadcast_messages_custom_start():
    assert next(broadcast_messages(7)) == b"Drink 7 glasses of water\n"


def test_multicast_messages_sequence():
    first = list(itertools.islice(multicast_messages(), 3))
    assert first == [b"itcast 0\n", b"itcast 1\n", b"itcast 2\n"]


@pytest.mark.timeout(10)
def test_send_and_receive_round_trip(udp_pair):
    sender, receiver = udp_pair
    address = receiver.getsockname()
    sent = send_periodic(sender, address, multicast_messages(), interval=0, count=3)
    assert sent == 3
    out = io.StringIO()
    received = receive_datagrams(receiver, out, count=3)
    expected = list(itertools.islice(multicast_messages(), 3))
    assert received == expected
    assert out.getvalue() == b"".join(expected).decode()


@pytest.mark.timeout(10)
def test_send_periodic_stops_when_messages_run_out(udp_pair):
    sender, receiver = udp_pair
    messages = [b"one\n", b"two\n"]
    assert send_periodic(sender, receiver.getsockname(), messages, interval=0) == 2
    assert receive_datagrams(receiver, io.StringIO(), count=2) == messages


def test_send_periodic_rejects_negative_count(udp_pair):
    sender, receiver = udp_pair
    with pytest.raises(ValueError):
        send_periodic(sender, receiver.getsockname(), broadcast_messages(), 0, -1)


def test_receive_zero_datagrams(udp_pair):
    _sender, receiver = udp_pair
    out = io.StringIO()
    assert receive_datagrams(receiver, out, count=0) == []
    assert out.getvalue() == ""


@pytest.mark.timeout(15)
def test_echo_server_upper_cases_replies():
    server_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    server_sock.bind(("127.0.0.1", 0))
    stop = threading.Event()
    server_out = io.StringIO()
    result = {}

    def run():
        result["count"] = udp_echo_server(server_sock, server_out, stop)

    worker = threading.Thread(target=run)
    worker.start()
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as client_sock:
            client_sock.settimeout(5)
            client_out = io.StringIO()
            replies = udp_client(
                client_sock, server_sock.getsockname(), ["hello\n", b"Mixed 1\n"], client_out
            )
    finally:
        stop.set()
        worker.join(5)
        server_sock.close()

    assert replies == [b"HELLO\n", b"MIXED 1\n"]
    assert client_out.getvalue() == "HELLO\nMIXED 1\n"
    assert result["count"] == 2
    text = server_out.getvalue()
    assert text.startswith("Accepting connections ...\n")
    assert text.count("received from 127.0.0.1 at PORT") == 2


def test_join_multicast_rejects_unicast_address():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        with pytest.raises(ValueError):
            join_multicast(sock, "192.168.1.1")


def test_join_multicast_rejects_malformed_group():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        with pytest.raises(ValueError):
            join_multicast(sock, "not-an-address")


def test_join_multicast_unknown_interface():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        with pytest.raises(OSError):
            join_multicast(sock, "239.0.0.2", "no-such-interface0")