import io
import re
import socket
import threading
from contextlib import contextmanager
from types import SimpleNamespace

import pytest

from netlab.multiplex import (
    TooManyClients,
    main,
    serve_poll,
    serve_select,
    serve_selector,
)
from netlab.sockio import create_listener, readn

pytestmark = pytest.mark.timeout(20)

SERVERS = [serve_select, serve_poll, serve_selector]


@contextmanager
def running(server, **kwargs):
    listener = create_listener(0, host="127.0.0.1")
    out = io.StringIO()
    stop = threading.Event()
    errors = []

    def target():
        try:
            server(listener, out, stop, **kwargs)
        except BaseException as exc:
            errors.append(exc)

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    state = SimpleNamespace(
        port=listener.getsockname()[1], out=out, errors=errors, thread=thread
    )
    try:
        yield state
    finally:
        stop.set()
        thread.join(5)
        listener.close()


def connect(port):
    return socket.create_connection(("127.0.0.1", port), timeout=5)


def exchange(sock, data):
    sock.sendall(data)
    return readn(sock, len(data))


def visit_and_leave(server, message, visits=2):
    """Connect ``visits`` times, exchange ``message`` and close; return the log."""
    with running(server) as state:
        for _ in range(visits):
            with connect(state.port) as client:
                exchange(client, message)
                client.shutdown(socket.SHUT_WR)
                assert client.recv(16) == b""
    return state.out.getvalue()


@pytest.mark.parametrize("server", SERVERS)
def test_reply_is_upper_cased(server):
    with running(server) as state:
        with connect(state.port) as client:
            assert exchange(client, b"hello\n") == b"HELLO\n"


@pytest.mark.parametrize("server", SERVERS)
def test_interleaved_clients_get_their_own_replies(server):
    messages = [b"first client line\n", b"second one\n", b"third, with 42 digits\n"]
    with running(server) as state:
        clients = [connect(state.port) for _ in messages]
        try:
            for _round in range(2):
                for client, message in zip(clients, messages):
                    reply = exchange(client, message)
                    assert len(reply) == len(message)
                    assert reply.lower() == message.lower()
                    assert not any(97 <= byte <= 122 for byte in reply)
        finally:
            for client in clients:
                client.close()


@pytest.mark.parametrize("server", SERVERS)
def test_server_closes_connection_when_peer_closes(server):
    log = visit_and_leave(server, b"bye\n", visits=1)
    assert "bye" not in log or "BYE" in log


@pytest.mark.parametrize("server", SERVERS)
def test_stop_event_ends_server(server):
    with running(server) as state:
        with connect(state.port) as client:
            exchange(client, b"x\n")
    assert state.thread.is_alive() is False
    assert state.errors == []


def test_select_reports_peer_and_data():
    with running(serve_select) as state:
        with connect(state.port) as client:
            local_port = client.getsockname()[1]
            exchange(client, b"select me\n")
    output = state.out.getvalue()
    assert f"received from 127.0.0.1 at PORT {local_port}\n" in output
    assert "SELECT ME\n" in output


@pytest.mark.parametrize("server", [serve_select, serve_poll])
def test_too_many_clients_raises_and_closes_others(server):
    with running(server, max_clients=1) as state:
        with connect(state.port) as first:
            exchange(first, b"one\n")
            with connect(state.port):
                state.thread.join(5)
            assert len(state.errors) == 1
            assert isinstance(state.errors[0], TooManyClients)
            assert first.recv(16) == b""


def test_poll_reuses_freed_slot():
    output = visit_and_leave(serve_poll, b"again\n")
    assert output.count("client[1] closed connection\n") == 2
    assert "client[2]" not in output


def test_selector_counts_clients_and_reports_close():
    output = visit_and_leave(serve_selector, b"count\n")
    accepted = re.findall(r"cfd (\d+)---client (\d+)\n", output)
    assert [number for _fd, number in accepted] == ["1", "2"]
    closed = re.findall(r"client\[(\d+)\] closed connection\n", output)
    assert closed == [fd for fd, _number in accepted]


def test_main_reports_bind_failure():
    with create_listener(0) as occupied:
        port = occupied.getsockname()[1]
        assert main(["--mode", "poll", "--port", str(port)]) == 1


def test_main_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        main(["--mode", "kqueue"])