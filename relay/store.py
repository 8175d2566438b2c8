"""
Relay store: persistence and consistency rules for chats and opaque messages.

Every chat-scoped operation goes through `verify_chat_ownership` first. Message
rows are append-only; once inserted their id, timestamp and payload never
change. Functions flush but leave committing to the caller.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Dict, List

from sqlalchemy import select, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from e2ee.primitive import X25519_RAW_LEN, b64d

from . import config
from .auth import is_operator
from .errors import Conflict, NotFound, OwnershipDenied, ValidationFailed
from .formatters import MessageDraft, truncate_title
from .models import Chat, Message, PublicKeyRecord, DeviceToken, UserProfile, Status

logger = logging.getLogger(__name__)

USER_PARTY = "user"
OPERATOR_PARTY = "operator"


@dataclass
class ChatSummary:
    chat: Chat
    message_count: int
    latest_message_ts: float
    is_unread: bool


# ---- ownership gate ----

def may_access(owner: str, identity: str) -> bool:
    return owner == identity or is_operator(identity) or is_operator(owner)

async def verify_chat_ownership(session: AsyncSession, chat_id: str, identity: str) -> Chat:
    chat = await session.get(Chat, chat_id)
    # unknown chats are reported exactly like foreign ones
    if chat is None or not may_access(chat.owner, identity):
        raise OwnershipDenied("Access denied")
    return chat


# ---- chats ----

async def create_chat(session: AsyncSession, owner: str) -> Chat:
    chat = Chat(
        chat_id=str(uuid.uuid4()),
        owner=owner,
        title=config.PLACEHOLDER_TITLE,
        created_at=time.time(),
        deleted_by_user=False,
        user_last_read=0.0,
        operator_last_read=0.0,
    )
    session.add(chat)
    await session.flush()
    logger.info("New chat created: %s for %s", chat.chat_id, owner)
    return chat

async def soft_delete_chat(session: AsyncSession, chat_id: str, identity: str) -> Chat:
    chat = await verify_chat_ownership(session, chat_id, identity)
    if not chat.deleted_by_user:
        chat.deleted_by_user = True
        await session.flush()
        logger.info("Chat soft-deleted: %s", chat_id)
    return chat

async def mark_read(session: AsyncSession, chat_id: str, identity: str, party: str) -> Chat:
    chat = await verify_chat_ownership(session, chat_id, identity)
    now = time.time()
    if party == OPERATOR_PARTY:
        chat.operator_last_read = max(chat.operator_last_read or 0.0, now)
    else:
        chat.user_last_read = max(chat.user_last_read or 0.0, now)
    await session.flush()
    return chat

async def rename_chat(session: AsyncSession, chat_id: str, identity: str, title) -> Chat:
    if not title or not isinstance(title, str):
        raise ValidationFailed("Missing or invalid title", reason="invalid_title")
    if len(title) > config.MAX_TITLE_LEN:
        raise ValidationFailed(f"Title too long (max {config.MAX_TITLE_LEN} chars)", reason="title_too_long")

    chat = await verify_chat_ownership(session, chat_id, identity)
    chat.title = truncate_title(title)
    await session.flush()
    return chat

def _message_stats():
    return (
        select(
            Message.chat_id.label("chat_id"),
            func.count(Message.id).label("message_count"),
            func.max(Message.timestamp).label("latest_ts"),
        )
        .group_by(Message.chat_id)
        .subquery()
    )

def _latest_from(operator_side: bool):
    return (
        select(Message.chat_id.label("chat_id"), func.max(Message.timestamp).label("latest_ts"))
        .where(Message.is_operator.is_(operator_side))
        .group_by(Message.chat_id)
        .subquery()
    )

async def list_chats_for_user(session: AsyncSession, identity: str) -> List[ChatSummary]:
    """Non-deleted chats owned by `identity` with at least one message, newest activity first."""
    stats = _message_stats()
    from_operator = _latest_from(True)
    res = await session.execute(
        select(Chat, stats.c.message_count, stats.c.latest_ts, from_operator.c.latest_ts)
        .join(stats, stats.c.chat_id == Chat.chat_id)
        .outerjoin(from_operator, from_operator.c.chat_id == Chat.chat_id)
        .where(Chat.owner == identity, Chat.deleted_by_user.is_(False))
        .order_by(stats.c.latest_ts.desc())
    )
    return [
        ChatSummary(
            chat=chat,
            message_count=count,
            latest_message_ts=latest or 0.0,
            is_unread=(latest_operator or 0.0) > (chat.user_last_read or 0.0),
        )
        for chat, count, latest, latest_operator in res.all()
    ]

async def list_all_chats(session: AsyncSession) -> List[Dict]:
    """Operator dashboard: every chat, soft-deleted included, grouped by owner."""
    stats = _message_stats()
    from_user = _latest_from(False)
    res = await session.execute(
        select(Chat, stats.c.message_count, stats.c.latest_ts, from_user.c.latest_ts, UserProfile.nickname)
        .outerjoin(stats, stats.c.chat_id == Chat.chat_id)
        .outerjoin(from_user, from_user.c.chat_id == Chat.chat_id)
        .outerjoin(UserProfile, UserProfile.identity == Chat.owner)
        .order_by(func.coalesce(stats.c.latest_ts, Chat.created_at).desc())
    )

    grouped: Dict[str, Dict] = {}
    for chat, count, latest, latest_user, nickname in res.all():
        group = grouped.setdefault(chat.owner, {
            "userEmail": chat.owner,
            "nickname": nickname or "Unknown",
            "latestActivity": 0.0,
            "chats": [],
        })
        activity = latest or chat.created_at
        if activity > group["latestActivity"]:
            group["latestActivity"] = activity
        group["chats"].append(ChatSummary(
            chat=chat,
            message_count=count or 0,
            latest_message_ts=latest or 0.0,
            is_unread=(latest_user or 0.0) > (chat.operator_last_read or 0.0),
        ))
    return sorted(grouped.values(), key=lambda g: g["latestActivity"], reverse=True)

async def collect_empty_chats(session: AsyncSession) -> int:
    """Delete placeholder-titled chats that never received a message."""
    has_messages = select(Message.id).where(Message.chat_id == Chat.chat_id).exists()
    res = await session.execute(
        delete(Chat)
        .where(Chat.title == config.PLACEHOLDER_TITLE, ~has_messages)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount:
        logger.info("Cleaned up %s empty chats", res.rowcount)
    return res.rowcount or 0


# ---- messages ----

def validate_draft(draft: MessageDraft, identity: str) -> None:
    if not draft.text and not draft.image_base64:
        raise ValidationFailed("Message cannot be empty", reason="empty_message")
    if len(draft.text) > config.MAX_TEXT_LEN:
        raise ValidationFailed("Message too long (max 10,000 chars)", reason="text_too_long")
    if draft.image_base64 and len(draft.image_base64) > config.MAX_IMAGE_LEN:
        raise ValidationFailed("Image too large (max ~2MB)", reason="image_too_large")
    if not draft.timestamp or not draft.room:
        raise ValidationFailed("Missing required fields", reason="missing_fields")

    if draft.is_operator and not is_operator(identity):
        raise OwnershipDenied("Only the operator can send as operator", reason="operator_only")
    if not draft.is_operator and draft.room != identity:
        raise OwnershipDenied("Cannot send messages to another user's room")

async def append_message(
    session: AsyncSession,
    identity: str,
    draft: MessageDraft,
    message_id: str | None = None,
) -> Message:
    """
    Validate and store one message.

    Without a chat id a new chat owned by the room is created first. A message
    id that already exists is rejected; the stored row is left untouched.
    """
    validate_draft(draft, identity)

    if draft.chat_id:
        chat = await verify_chat_ownership(session, draft.chat_id, identity)
    else:
        chat = await create_chat(session, owner=draft.room)

    message_id = message_id or uuid.uuid4().hex
    if await session.get(Message, message_id) is not None:
        raise Conflict(f"Message id {message_id} already exists")

    msg = Message(
        id=message_id,
        chat_id=chat.chat_id,
        text=draft.text,
        is_operator=draft.is_operator,
        timestamp=draft.timestamp,
        room=draft.room,
        image_base64=draft.image_base64,
    )
    session.add(msg)
    try:
        await session.flush()
    except IntegrityError:
        # lost a race against a concurrent insert with the same id
        await session.rollback()
        raise Conflict(f"Message id {message_id} already exists")
    return msg

def clamp_page_size(page_size: int | None) -> int:
    if not page_size or page_size <= 0:
        return config.DEFAULT_PAGE_SIZE
    return min(page_size, config.MAX_PAGE_SIZE)

async def list_messages(
    session: AsyncSession,
    identity: str,
    chat_id: str | None = None,
    room: str | None = None,
    limit: int | None = None,
) -> List[Message]:
    """Newest first, at most `limit` rows."""
    limit = clamp_page_size(limit)
    stmt = select(Message)

    if chat_id:
        await verify_chat_ownership(session, chat_id, identity)
        stmt = stmt.where(Message.chat_id == chat_id)
    elif is_operator(identity):
        if room:
            stmt = stmt.where(Message.room == room)
    elif room:
        if room != identity:
            raise OwnershipDenied("Access denied")
        stmt = stmt.where(Message.room == room)
    else:
        raise ValidationFailed("chatId is required", reason="chat_id_required")

    res = await session.execute(stmt.order_by(Message.timestamp.desc(), Message.id.desc()).limit(limit))
    return list(res.scalars().all())

async def export_messages(session: AsyncSession) -> List[Message]:
    res = await session.execute(select(Message).order_by(Message.timestamp.asc(), Message.id.asc()))
    return list(res.scalars().all())


# ---- key directory ----

async def upsert_public_key(session: AsyncSession, identity: str, public_key) -> PublicKeyRecord:
    if not public_key or not isinstance(public_key, str):
        raise ValidationFailed("Missing publicKey", reason="invalid_key")
    if len(public_key) > config.MAX_PUBLIC_KEY_LEN:
        raise ValidationFailed("Invalid key format", reason="invalid_key")
    try:
        raw = b64d(public_key)
    except ValueError:
        raise ValidationFailed("Invalid key format", reason="invalid_key")
    if len(raw) != X25519_RAW_LEN:
        raise ValidationFailed(f"Public key must be {X25519_RAW_LEN} bytes", reason="invalid_key")

    record = await session.merge(PublicKeyRecord(identity=identity, public_key=public_key, updated_at=time.time()))
    await session.flush()
    logger.info("Public key stored for: %s", identity)
    return record

async def get_public_key(session: AsyncSession, requester: str, target: str) -> PublicKeyRecord:
    if not (is_operator(requester) or is_operator(target) or requester == target):
        raise OwnershipDenied("Unauthorized")
    record = await session.get(PublicKeyRecord, target)
    if record is None:
        raise NotFound("No public key found for this user")
    return record


# ---- ancillary records ----

async def upsert_device_token(session: AsyncSession, identity: str, token) -> None:
    if not token or not isinstance(token, str):
        raise ValidationFailed("Missing device token", reason="missing_token")
    await session.merge(DeviceToken(identity=identity, token=token))
    await session.flush()

async def get_device_token(session: AsyncSession, identity: str) -> str | None:
    row = await session.get(DeviceToken, identity)
    return row.token if row else None

async def set_nickname(session: AsyncSession, identity: str, nickname: str | None) -> None:
    if not nickname:
        raise ValidationFailed("Nickname is required", reason="missing_nickname")
    await session.merge(UserProfile(identity=identity, nickname=nickname))
    await session.flush()

async def upsert_status(session: AsyncSession, room: str, last_active: float | None) -> None:
    if last_active is None:
        raise ValidationFailed("Missing lastActive", reason="missing_fields")
    await session.merge(Status(room=room, last_active=last_active))
    await session.flush()

async def get_status(session: AsyncSession, room: str) -> float | None:
    row = await session.get(Status, room)
    return row.last_active if row else None

async def erase_account(session: AsyncSession, identity: str) -> None:
    """Hard delete everything stored for `identity`."""
    owned = select(Chat.chat_id).where(Chat.owner == identity)
    await session.execute(
        delete(Message)
        .where(or_(Message.room == identity, Message.chat_id.in_(owned)))
        .execution_options(synchronize_session=False)
    )
    await session.execute(delete(Chat).where(Chat.owner == identity).execution_options(synchronize_session=False))
    await session.execute(delete(DeviceToken).where(DeviceToken.identity == identity))
    await session.execute(delete(PublicKeyRecord).where(PublicKeyRecord.identity == identity))
    await session.execute(delete(UserProfile).where(UserProfile.identity == identity))
    logger.info("Account data erased for %s", identity)
