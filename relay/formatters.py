"""Conversion between the field-tagged wire envelope and plain relay types."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from .config import DISPLAY_TITLE_LEN, PLACEHOLDER_TITLE
from .models import Message
from .schemas import MessageFields


@dataclass
class MessageDraft:
    text: str
    is_operator: bool
    timestamp: float | None
    room: str
    chat_id: str
    image_base64: str | None


def truncate_title(text: str | None) -> str:
    if not text:
        return PLACEHOLDER_TITLE
    cleaned = text.replace("\n", " ").strip()
    if not cleaned:
        return PLACEHOLDER_TITLE
    if len(cleaned) <= DISPLAY_TITLE_LEN:
        return cleaned
    return cleaned[:DISPLAY_TITLE_LEN - 3] + "..."


def draft_from_fields(fields: MessageFields) -> MessageDraft:
    image = fields.imageBase64.as_string() if fields.imageBase64 else None
    return MessageDraft(
        text=fields.text.as_string() if fields.text else "",
        is_operator=fields.isKyle.as_bool() if fields.isKyle else False,
        timestamp=fields.timestamp.as_double() if fields.timestamp else None,
        room=fields.room.as_string() if fields.room else "",
        chat_id=fields.chatId.as_string() if fields.chatId else "",
        image_base64=image or None,
    )


def format_message(row: Message) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "text": {"stringValue": row.text},
        "isKyle": {"booleanValue": bool(row.is_operator)},
        "timestamp": {"doubleValue": row.timestamp},
        "room": {"stringValue": row.room},
        "chatId": {"stringValue": row.chat_id or ""},
    }
    if row.image_base64:
        fields["imageBase64"] = {"stringValue": row.image_base64}
    return {"name": row.id, "fields": fields}


def format_messages(rows: Iterable[Message]) -> List[Dict[str, Any]]:
    return [format_message(r) for r in rows]
