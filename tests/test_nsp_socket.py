import pytest

from sionet.message import (
    ArrayMessage,
    IntMessage,
    MessageList,
    ObjectMessage,
    StringMessage,
)
from sionet.nsp_socket import CLOSE_TIMEOUT, CONNECT_TIMEOUT, Event, Socket
from sionet.packet import Packet, PacketType


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class FakeClient:
    def __init__(self, is_open=True):
        self.is_open = is_open
        self.sent = []
        self.timers = []
        self.opened_nsps = []
        self.closed_nsps = []
        self.removed = []

    def opened(self):
        return self.is_open

    def send(self, packet):
        self.sent.append(packet)

    def schedule(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    def on_socket_opened(self, nsp):
        self.opened_nsps.append(nsp)

    def on_socket_closed(self, nsp):
        self.closed_nsps.append(nsp)

    def remove_socket(self, nsp):
        self.removed.append(nsp)


def connected_socket(nsp="/"):
    client = FakeClient()
    sock = Socket(client, nsp)
    sock.on_connected()
    client.sent.clear()
    return client, sock


def test_open_client_sends_connect_with_auth():
    client = FakeClient()
    auth = ObjectMessage({"token": StringMessage("token")})
    Socket(client, "/chat", auth)
    assert len(client.sent) == 1
    packet = client.sent[0]
    assert packet.type is PacketType.CONNECT
    assert packet.nsp == "/chat"
    assert packet.message == auth
    assert client.timers[0].delay == CONNECT_TIMEOUT


def test_closed_client_sends_nothing():
    client = FakeClient(is_open=False)
    Socket(client, "/")
    assert client.sent == []
    assert client.timers == []


def test_emit_before_connect_is_queued_then_flushed():
    client = FakeClient()
    sock = Socket(client, "/")
    client.sent.clear()
    sock.emit("first", "a")
    sock.emit("second", "b")
    assert client.sent == []
    sock.on_connected()
    names = [p.message[0] for p in client.sent]
    assert names == [StringMessage("first"), StringMessage("second")]
    assert client.timers[0].cancelled
    assert client.opened_nsps == ["/"]
    assert sock.connected


def test_emit_builds_event_array():
    client, sock = connected_socket()
    sock.emit("chat", MessageList(["hi", IntMessage(3)]))
    packet = client.sent[0]
    assert packet.type is PacketType.EVENT
    assert packet.pack_id == -1
    assert packet.message == ArrayMessage(
        [StringMessage("chat"), StringMessage("hi"), IntMessage(3)]
    )


def test_emit_with_ack_gets_increasing_ids_and_callback():
    client, sock = connected_socket()
    received = []
    sock.emit("q1", None, received.append)
    sock.emit("q2", None, received.append)
    first, second = client.sent[0].pack_id, client.sent[1].pack_id
    assert first >= 1
    assert second > first
    reply = ArrayMessage([StringMessage("ok")])
    sock.on_message_packet(Packet(type=PacketType.ACK, nsp="/", message=reply, pack_id=first))
    assert received == [MessageList(StringMessage("ok"))]
    sock.on_message_packet(Packet(type=PacketType.ACK, nsp="/", message=reply, pack_id=first))
    assert len(received) == 1


def test_connect_packet_sets_socket_id():
    client = FakeClient()
    sock = Socket(client, "/")
    sock.on_message_packet(
        Packet(type=PacketType.CONNECT, nsp="/", message=ObjectMessage({"sid": StringMessage("abc")}))
    )
    assert sock.socket_id == "abc"
    assert sock.connected


def test_event_dispatch_and_ack_reply():
    client, sock = connected_socket()
    seen = []

    def listener(event):
        seen.append((event.name, event.message, event.need_ack))
        event.put_ack_message("done")

    sock.on("greet", listener)
    incoming = ArrayMessage([StringMessage("greet"), IntMessage(5)])
    sock.on_message_packet(Packet(type=PacketType.EVENT, nsp="/", message=incoming, pack_id=7))
    assert seen == [("greet", IntMessage(5), True)]
    ack = client.sent[0]
    assert ack.type is PacketType.ACK
    assert ack.pack_id == 7
    assert ack.message == ArrayMessage([StringMessage("done")])


def test_event_without_listener_still_acks_empty():
    client, sock = connected_socket()
    incoming = ArrayMessage([StringMessage("nobody")])
    sock.on_message_packet(Packet(type=PacketType.EVENT, nsp="/", message=incoming, pack_id=2))
    assert client.sent[0].message == ArrayMessage()


def test_off_and_off_all_remove_bindings():
    client, sock = connected_socket()
    seen = []
    sock.on("a", seen.append)
    sock.on("b", seen.append)
    sock.off("a")
    packet_a = Packet(type=PacketType.EVENT, nsp="/", message=ArrayMessage([StringMessage("a")]))
    packet_b = Packet(type=PacketType.EVENT, nsp="/", message=ArrayMessage([StringMessage("b")]))
    sock.on_message_packet(packet_a)
    sock.on_message_packet(packet_b)
    assert [e.name for e in seen] == ["b"]
    sock.off_all()
    sock.on_message_packet(packet_b)
    assert len(seen) == 1


def test_other_namespace_is_ignored():
    client, sock = connected_socket("/chat")
    seen = []
    sock.on("x", seen.append)
    sock.on_message_packet(
        Packet(type=PacketType.EVENT, nsp="/", message=ArrayMessage([StringMessage("x")]))
    )
    assert seen == []


def test_error_listener():
    client, sock = connected_socket()
    errors = []
    sock.on_error(errors.append)
    sock.on_message_packet(Packet(type=PacketType.ERROR, nsp="/", message=StringMessage("bad")))
    sock.off_error()
    sock.on_message_packet(Packet(type=PacketType.ERROR, nsp="/", message=StringMessage("again")))
    assert errors == [StringMessage("bad")]


def test_disconnect_packet_closes_socket():
    client, sock = connected_socket("/room")
    sock.on_message_packet(Packet(type=PacketType.DISCONNECT, nsp="/room"))
    assert not sock.connected
    assert client.closed_nsps == ["/room"]
    assert client.removed == ["/room"]
    sock.emit("late", "x")
    assert client.sent == []


def test_close_sends_disconnect_and_closes_after_timer():
    client, sock = connected_socket()
    sock.close()
    assert client.sent[0].type is PacketType.DISCONNECT
    timer = client.timers[-1]
    assert timer.delay == CLOSE_TIMEOUT
    timer.fire()
    assert client.removed == ["/"]


def test_close_when_not_connected_does_nothing():
    client = FakeClient(is_open=False)
    sock = Socket(client, "/")
    sock.close()
    assert client.sent == []
    assert client.timers == []


def test_connect_timeout_closes_socket():
    client = FakeClient()
    sock = Socket(client, "/slow")
    client.timers[0].fire()
    assert client.closed_nsps == ["/slow"]
    assert not sock.connected


def test_disconnect_drops_queue_and_reopen_reconnects():
    client, sock = connected_socket()
    sock.on_disconnect()
    assert not sock.connected
    sock.emit("queued", "x")
    sock.on_disconnect()
    sock.on_open()
    assert client.sent[-1].type is PacketType.CONNECT
    sock.on_connected()
    assert client.sent[-1].message[0] == StringMessage("queued")


def test_event_put_ack_ignored_without_ack():
    event = Event("/", "e", MessageList("x"), need_ack=False)
    event.put_ack_message("reply")
    assert len(event.ack_message) == 0
    assert event.message == StringMessage("x")


def test_event_message_none_when_empty():
    event = Event("/", "e", MessageList(), need_ack=True)
    event.put_ack_message(MessageList(["a", "b"]))
    assert event.message is None
    assert event.ack_message == MessageList(["a", "b"])


def test_emit_rejects_unsupported_argument():
    client, sock = connected_socket()
    with pytest.raises(TypeError):
        sock.emit("bad", object())