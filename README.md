# sionet

A Socket.IO (Engine.IO v4) client that runs over WebSockets, together with a
small helper for plain TCP text connections.

## Install

```
pip install sionet
```

To run the tests:

```
pip install "sionet[test]"
pytest
```

## Socket.IO client

```python
from sionet.client import Client
from sionet.message import MessageList, StringMessage

client = Client()
client.open_listener = lambda: print("connected")
client.close_listener = lambda reason: print("closed:", reason)

client.connect("http://localhost:3000", {"room": "lobby"}, {}, None)

chat = client.socket("/chat")
chat.on("reply", lambda event: print(event.name, list(event.messages)))
chat.emit("say", MessageList([StringMessage("hello")]), lambda ack: print("acked", ack))

client.sync_close()
```

`Client.connect` starts the connection on a background thread and returns at
once. Packets emitted on a namespace socket before it has joined are queued and
sent when the server confirms the namespace. `Client` can also be used as a
context manager; leaving the block calls `sync_close`.

Connection events are reported through attributes that take a callable or
`None`: `open_listener`, `fail_listener`, `reconnecting_listener`,
`reconnect_listener` (called with the attempt number and the delay in
milliseconds), `close_listener` (called with a `CloseReason`), and
`socket_open_listener` / `socket_close_listener` (called with the namespace).
`clear_con_listeners` and `clear_socket_listeners` reset them.

After a dropped connection the client reconnects with a growing delay (factor
1.5 per attempt, capped by the maximum delay). Tune this with
`set_reconnect_attempts`, `set_reconnect_delay` and `set_reconnect_delay_max`
(delays in milliseconds), and change how much is logged with `set_logs_quiet`,
`set_logs_default` or `set_logs_verbose`. Set `client.path` to use a server
path other than `socket.io`, and pass `verify_tls=False` to `Client` to skip
certificate checks on `https`/`wss` URLs.

Incoming events reach listeners as `sionet.nsp_socket.Event` objects; when the
server asked for an acknowledgement, `event.put_ack_message(...)` sets what is
sent back.

Payloads are built from the classes in `sionet.message`: `NullMessage`,
`BoolMessage`, `IntMessage`, `DoubleMessage`, `StringMessage`, `BinaryMessage`,
`ArrayMessage`, `ObjectMessage` and the argument list `MessageList`. Binary
values are sent as separate attachments, as the Socket.IO protocol requires.

The wire format lives in `sionet.packet`: `Packet` encodes and parses single
packets, and `PacketManager` reassembles binary events from their attachments.
`sionet.engine.Engine` holds the connection itself and can be given a custom
transport factory.

## TCP

```python
from sionet.tcp import connect

with connect("localhost", 9000) as conn:
    conn.send_message("ping")
    if conn.has_pending_data():
        print(conn.get_message())
```

`connect` raises `ConnectionError` when the host cannot be resolved or reached.
`get_message` returns `None` when nothing is waiting.

## What it does not do

The package is a client only: it has no Socket.IO server, no HTTP
long-polling transport (only WebSockets), no UDP helper and no command-line
tool.