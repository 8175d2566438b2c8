"""Wire envelope parsing: tolerant readers, and the title/ordering helpers."""

import pytest
from chatclient.envelope import as_bool, as_double, as_string, decode_document, encode_fields
from chatclient.models import Message, sort_key, truncate_title
from relay.formatters import truncate_title as relay_truncate_title
from relay.schemas import TaggedValue


class TestTaggedValues:
    @pytest.mark.parametrize("value,expected", [
        ({"stringValue": "hi"}, "hi"),
        ({"integerValue": "7"}, "7"),
        ({}, ""),
        (None, ""),
        ("bare", ""),
    ])
    def test_as_string(self, value, expected):
        assert as_string(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ({"doubleValue": 1.5}, 1.5),
        ({"integerValue": "3"}, 3.0),
        ({"stringValue": "2.25"}, 2.25),
        ({"stringValue": "soon"}, 0.0),
        (None, 0.0),
    ])
    def test_as_double(self, value, expected):
        assert as_double(value) == expected

    def test_as_bool(self):
        assert as_bool({"booleanValue": True}) is True
        assert as_bool({}) is False
        assert as_bool(None) is False

    def test_relay_side_reader(self):
        assert TaggedValue(integerValue="12").as_double() == 12.0
        assert TaggedValue(stringValue="x").as_double() is None
        assert TaggedValue().as_string() == ""


class TestDocuments:
    def test_decode(self):
        doc = {
            "name": "MSG-1",
            "fields": encode_fields("blob", True, 10.0, "alice@example.com", "chat-1", image_base64="img"),
        }
        msg = decode_document(doc)
        assert msg == Message(
            id="MSG-1", text="blob", is_operator=True, timestamp=10.0,
            room="alice@example.com", chat_id="chat-1", image_base64="img",
        )

    def test_encode_omits_missing_image(self):
        assert "imageBase64" not in encode_fields("t", False, 1.0, "r", "")

    def test_decode_without_fields(self):
        assert decode_document({"name": "x"}) is None
        assert decode_document("nope") is None

    def test_decode_missing_name_gets_id(self):
        msg = decode_document({"fields": {"text": {"stringValue": "hi"}}})
        assert msg.id
        assert msg.room == ""
        assert msg.image_base64 is None


class TestHelpers:
    def test_sort_key_breaks_ties_by_id(self):
        a = Message(id="B", text="", is_operator=False, timestamp=1.0, room="r")
        b = Message(id="A", text="", is_operator=False, timestamp=1.0, room="r")
        assert sorted([a, b], key=sort_key) == [b, a]

    @pytest.mark.parametrize("truncate", [truncate_title, relay_truncate_title])
    def test_truncate_title(self, truncate):
        assert truncate("short") == "short"
        assert truncate("x" * 28) == "x" * 28
        assert truncate("x" * 29) == "x" * 25 + "..."
        assert truncate("a\nb") == "a b"

    def test_relay_placeholder_for_blank(self):
        assert relay_truncate_title("  \n ") == "New Chat"
