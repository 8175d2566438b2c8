from dataclasses import dataclass


@dataclass(frozen=True)
class Message:
    id: str
    text: str
    is_operator: bool
    timestamp: float
    room: str
    chat_id: str = ""
    image_base64: str | None = None
    pending: bool = False  # local only: shown before the relay confirmed it


@dataclass(frozen=True)
class ChatSummary:
    chat_id: str
    owner: str
    title: str
    created_at: float
    deleted_by_user: bool = False
    is_unread: bool = False
    message_count: int = 0


def sort_key(m: Message) -> tuple[float, str]:
    return (m.timestamp, m.id)


def truncate_title(text: str, limit: int = 28) -> str:
    cleaned = text.replace("\n", " ").strip()
    if len(cleaned) <= limit:
        return cleaned
    return cleaned[:limit - 3] + "..."
