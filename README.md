# netlab

Small, self-contained network programs built on the standard library's
`socket`, `select` and `selectors` modules. Each shows a different way of
serving clients over TCP or UDP; they can be run as commands or imported as
building blocks. No third-party libraries are needed at run time.

## What is inside

| Module | Command | What it does |
| --- | --- | --- |
| `netlab.sockio` | – | Stream socket helpers: `readn`, `writen`, `accept_connection`, `create_listener` and a buffered `LineReader`. |
| `netlab.byteorder` | `netlab-byteorder` | Reports whether network byte order puts the high or the low byte of a 16-bit value first. |
| `netlab.echo` | `netlab-echo` | Upper-casing TCP echo server: one client only, or a worker thread per client. |
| `netlab.client` | `netlab-client` | Line-oriented TCP client: sends each line of standard input and prints the reply. |
| `netlab.multiplex` | `netlab-multiplex` | The same echo service on a single thread, using `select`, `poll` or the platform's default selector. |
| `netlab.reactor` | `netlab-reactor` | Callback-driven echo server with a fixed table of slots (`EventSlot`) and an idle timeout. |
| `netlab.edge` | `netlab-edge` | Writes a repeating `aaaa\nbbbb\n` pattern and reads it back in 5-byte pieces, one per wake-up or draining. |
| `netlab.udp` | `netlab-udp` | UDP echo server and client, periodic broadcast and multicast senders, and datagram receivers. |

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Trying it out

Start an echo server in one terminal (threaded mode, port 8000 by default):

```
netlab-echo
```

and talk to it from another (connects to 127.0.0.1 port 8000 by default):

```
netlab-client
```

Every line you type comes back in upper case. `netlab-echo --mode single`
serves one client on port 9527 and returns when it leaves; `--port` and
`--host` override the address.

The single-threaded servers look the same to a client:

```
netlab-multiplex
netlab-multiplex --mode poll
netlab-multiplex --mode select --port 8000
netlab-reactor 8000
```

`netlab-multiplex` defaults to the selector mode on port 8000 (`select` mode
defaults to port 6666); `netlab-reactor` listens on port 8080 unless given a
port. The reactor echoes each chunk back unchanged rather than upper-cased,
and drops clients that stay silent for 60 seconds.

Check the byte order used on the wire:

```
netlab-byteorder
netlab-byteorder 0xABCD --where
```

Compare a reader that takes one 5-byte piece per readiness event with one that
drains the socket (edge-triggered with `epoll` where it exists, level-triggered
otherwise):

```
netlab-edge pipe --interval 1
netlab-edge pipe --drain --interval 1
netlab-edge server
netlab-edge client
```

Send and receive datagrams:

```
netlab-udp server
netlab-udp client
netlab-udp broadcast-server --address 192.168.1.255
netlab-udp broadcast-client
netlab-udp multicast-server
netlab-udp multicast-client
```

Broadcast and multicast senders send a numbered message every second to port
9000; the multicast group is 239.0.0.2 and `--interface` picks a network
interface by name. Every command accepts `--help`.

## Using the pieces in your own code

```python
from netlab.sockio import LineReader, accept_connection, create_listener, writen

listener = create_listener(9527, 64, "127.0.0.1", True)
conn, address = accept_connection(listener)
reader = LineReader(conn)
line = reader.readline(8192)
writen(conn, line.upper())
conn.close()
listener.close()
```

`readn` reads until it has the requested number of bytes or the peer closes;
`writen` keeps sending until all the data has gone out; `accept_connection`
retries when the accept is interrupted or the pending connection was aborted.
`LineReader.readline(maxlen)` returns at most `maxlen - 1` bytes, newline
included, and iterating a `LineReader` yields lines until the stream ends.

The servers `serve_threaded`, `serve_select`, `serve_poll`, `serve_selector`,
`udp_echo_server` and `Reactor.run` accept a `threading.Event` and stop once
it is set, which makes them easy to run in a background thread.
`serve_select` and `serve_poll` raise `TooManyClients` when all client slots
are taken. `netlab.echo.to_upper` upper-cases bytes and
`netlab.echo.handle_connection` serves one client until it disconnects.

## What it does not do

- No separate processes are started: `netlab-echo --mode forking` hands each
  client to its own worker thread, just as the threaded mode does.
- `poll` mode needs a platform with `select.poll`; it is not available on
  Windows.
- There is no configuration file, logging setup, TLS or authentication; all
  output goes to standard output or standard error.