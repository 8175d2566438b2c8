"""
Field-tagged wire envelope.

The relay speaks `{"fields": {"text": {"stringValue": ...}, ...}}`. This module
is the only place that knows about the tagging; everything else uses
`chatclient.models.Message`.
"""

import uuid
from typing import Any, Dict

from .models import Message


def as_string(value: Any) -> str:
    if not isinstance(value, dict):
        return ""
    if value.get("stringValue") is not None:
        return str(value["stringValue"])
    if value.get("integerValue") is not None:
        return str(value["integerValue"])
    return ""


def as_bool(value: Any) -> bool:
    return bool(value.get("booleanValue")) if isinstance(value, dict) else False


def as_double(value: Any) -> float:
    if not isinstance(value, dict):
        return 0.0
    for tag in ("doubleValue", "integerValue", "stringValue"):
        raw = value.get(tag)
        if raw is None:
            continue
        try:
            return float(raw)
        except (TypeError, ValueError):
            return 0.0
    return 0.0


def encode_fields(
    text: str,
    is_operator: bool,
    timestamp: float,
    room: str,
    chat_id: str,
    image_base64: str | None = None,
) -> Dict[str, Any]:
    """Build the `fields` object for POST /messages from already-sealed (or plain) values."""
    fields: Dict[str, Any] = {
        "text": {"stringValue": text},
        "isKyle": {"booleanValue": is_operator},
        "timestamp": {"doubleValue": timestamp},
        "room": {"stringValue": room},
        "chatId": {"stringValue": chat_id},
    }
    if image_base64 is not None:
        fields["imageBase64"] = {"stringValue": image_base64}
    return fields


def decode_document(doc: Dict[str, Any]) -> Message | None:
    """Parse one relay document; returns None when it carries no fields."""
    fields = doc.get("fields") if isinstance(doc, dict) else None
    if not isinstance(fields, dict):
        return None
    image = as_string(fields.get("imageBase64")) or None
    return Message(
        id=doc.get("name") or str(uuid.uuid4()),
        text=as_string(fields.get("text")),
        is_operator=as_bool(fields.get("isKyle")),
        timestamp=as_double(fields.get("timestamp")),
        room=as_string(fields.get("room")),
        chat_id=as_string(fields.get("chatId")),
        image_base64=image,
    )
