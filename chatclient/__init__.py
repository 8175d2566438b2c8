"""Client-side chat orchestration on top of the relay and the e2ee stack."""

from .api import RelayClient, RelayUnavailable, build_http_client
from .context import ClientContext
from .envelope import encode_fields, decode_document
from .models import Message, ChatSummary, truncate_title
from .scheduler import RecurringTask
from .session import ChatSession, merge_messages

__all__ = [
    "RelayClient",
    "RelayUnavailable",
    "build_http_client",
    "ClientContext",
    "encode_fields",
    "decode_document",
    "Message",
    "ChatSummary",
    "truncate_title",
    "RecurringTask",
    "ChatSession",
    "merge_messages",
]
