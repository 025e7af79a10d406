import io
import socket
import sys
import threading

import pytest

from netlab.client import CLOSED_MESSAGE, main, run_client
from netlab.echo import handle_connection, serve_single
from netlab.sockio import create_listener

pytestmark = pytest.mark.timeout(10)


@pytest.mark.parametrize(
    "lines, expected",
    [
        ([b"hi\n", b"there\n"], [b"HI\n", b"THERE\n"]),
        (["mixed Case\n"], [b"MIXED CASE\n"]),
    ],
)
def test_run_client_collects_upper_cased_replies(lines, expected):
    server, client = socket.socketpair()
    worker = threading.Thread(
        target=handle_connection, args=(server, ("127.0.0.1", 1), io.StringIO())
    )
    worker.start()
    out = io.StringIO()
    with client:
        replies = run_client(client, lines, out)
    worker.join(5)
    assert replies == expected
    assert out.getvalue() == b"".join(expected).decode()


def test_run_client_reports_closed_server():
    server, client = socket.socketpair()
    server.shutdown(socket.SHUT_WR)
    out = io.StringIO()
    with server, client:
        replies = run_client(client, [b"one\n", b"two\n"], out)
    assert replies == []
    assert out.getvalue() == CLOSED_MESSAGE + "\n"


def test_main_relays_stdin(monkeypatch, capsys):
    with create_listener(0, host="127.0.0.1") as listener:
        worker = threading.Thread(target=serve_single, args=(listener, io.StringIO()))
        worker.start()
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"hello\n")))
        status = main(["127.0.0.1", "--port", str(listener.getsockname()[1])])
        worker.join(5)
    assert status == 0
    assert capsys.readouterr().out == "HELLO\n"


def test_main_reports_refused_connection():
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]
    assert main(["127.0.0.1", "--port", str(port)]) == 1