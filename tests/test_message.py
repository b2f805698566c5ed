import pytest

from sionet.message import (
    ArrayMessage,
    BinaryMessage,
    BoolMessage,
    DoubleMessage,
    Flag,
    IntMessage,
    MessageList,
    NullMessage,
    ObjectMessage,
    StringMessage,
)


def test_flags_of_each_message_kind():
    assert IntMessage(1).flag is Flag.INTEGER
    assert DoubleMessage(1.5).flag is Flag.DOUBLE
    assert StringMessage("a").flag is Flag.STRING
    assert BinaryMessage(b"x").flag is Flag.BINARY
    assert ArrayMessage().flag is Flag.ARRAY
    assert ObjectMessage().flag is Flag.OBJECT
    assert BoolMessage(True).flag is Flag.BOOLEAN
    assert NullMessage().flag is Flag.NULL


def test_int_message_reads_as_float():
    message = IntMessage(7)
    assert float(message) == 7.0
    assert int(message) == 7


def test_null_message_value_is_none():
    assert NullMessage().value is None
    assert NullMessage() == NullMessage()


def test_binary_message_normalises_bytearray():
    message = BinaryMessage(bytearray(b"abc"))
    assert message.value == b"abc"
    assert bytes(message) == b"abc"


def test_array_push_coerces_text_and_bytes():
    array = ArrayMessage()
    array.push("hello")
    array.push(b"\x00\x01")
    array.push(IntMessage(3))
    assert list(array) == [StringMessage("hello"), BinaryMessage(b"\x00\x01"), IntMessage(3)]


def test_array_push_ignores_none():
    array = ArrayMessage()
    array.push(None)
    assert len(array) == 0


def test_array_insert_positions():
    array = ArrayMessage()
    array.push("b")
    array.insert(0, "a")
    array.insert(2, "c")
    assert [m.value for m in array] == ["a", "b", "c"]


def test_push_rejects_unsupported_type():
    with pytest.raises(TypeError):
        ArrayMessage().push(3.5)
    with pytest.raises(TypeError):
        MessageList().push(object())


def test_object_insert_has_and_get():
    obj = ObjectMessage()
    obj.insert("name", "value")
    obj.insert("blob", b"raw")
    assert obj.has("name")
    assert "blob" in obj
    assert obj.get("name") == StringMessage("value")
    assert obj.get("missing") is None
    assert not obj.has("missing")


def test_object_insert_replaces_and_ignores_none():
    obj = ObjectMessage()
    obj.insert("k", "first")
    obj.insert("k", "second")
    obj.insert("other", None)
    assert obj.get("k") == StringMessage("second")
    assert len(obj) == 1


def test_object_iterates_keys_in_order():
    obj = ObjectMessage()
    for key in ["zeta", "alpha", "mid"]:
        obj.insert(key, key)
    assert list(obj) == sorted(["zeta", "alpha", "mid"])
    assert [k for k, _ in obj.items()] == list(obj)


def test_object_getitem_missing_raises():
    with pytest.raises(KeyError):
        ObjectMessage()["nothing"]


def test_list_from_single_values():
    assert list(MessageList("text")) == [StringMessage("text")]
    assert list(MessageList(b"data")) == [BinaryMessage(b"data")]
    assert list(MessageList(IntMessage(4))) == [IntMessage(4)]
    assert len(MessageList()) == 0
    assert len(MessageList(None)) == 0


def test_list_from_sequence_is_a_copy():
    source = [IntMessage(1), IntMessage(2)]
    messages = MessageList(source)
    source.append(IntMessage(3))
    assert len(messages) == 2
    assert messages[1] == IntMessage(2)


def test_list_insert_and_push():
    messages = MessageList()
    messages.push("second")
    messages.insert(0, "first")
    messages.push(None)
    assert [m.value for m in messages] == ["first", "second"]


def test_to_array_message_with_event_name():
    messages = MessageList(["a", IntMessage(2)])
    array = messages.to_array_message("chat")
    assert array.value == [StringMessage("chat"), StringMessage("a"), IntMessage(2)]


def test_to_array_message_without_event_name():
    messages = MessageList([BoolMessage(False)])
    array = messages.to_array_message()
    assert array.value == [BoolMessage(False)]


def test_to_array_message_does_not_alias_list():
    messages = MessageList(["x"])
    array = messages.to_array_message("ev")
    array.push("y")
    assert len(messages) == 1


def test_list_equality():
    assert MessageList(["a", "b"]) == MessageList([StringMessage("a"), StringMessage("b")])
    assert not (MessageList(["a"]) == MessageList(["b"]))