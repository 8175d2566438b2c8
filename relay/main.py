import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Query, BackgroundTasks, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, db
from .auth import create_access_token, get_current_identity, require_operator, new_guest_identity
from .errors import RelayError, ValidationFailed
from .formatters import draft_from_fields, format_messages
from .push import notify_counterparty
from .schemas import (
    MessageDocumentIn, StatusDocumentIn,
    TitleIn, PublicKeyIn, DeviceTokenIn, NicknameIn,
    SendOut, ChatCreatedOut, ChatOut, ChatListOut,
    DashboardOut, DashboardUserOut, PublicKeyOut, GuestOut,
)
from . import store

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await db.init_models()
    if config.EMPTY_CHAT_GC_ON_STARTUP:
        async with db.SessionLocal() as session:
            await store.collect_empty_chats(session)
            await session.commit()
    logger.info("Relay ready (operator: %s)", config.OPERATOR_IDENTITY)
    yield
    await db.engine.dispose()


app = FastAPI(title="Sealed Relay (opaque E2EE message relay)", lifespan=lifespan)

# ---- CORS ----
if config.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "reason": exc.reason})


def chat_out(summary: store.ChatSummary) -> ChatOut:
    chat = summary.chat
    return ChatOut(
        chatId=chat.chat_id,
        userEmail=chat.owner,
        title=chat.title,
        createdAt=chat.created_at,
        deletedByUser=chat.deleted_by_user,
        messageCount=summary.message_count,
        latestMessageTimestamp=summary.latest_message_ts,
        isUnread=summary.is_unread,
    )


@app.get("/health")
async def health():
    return {"status": "ok"}

# ---- AUTH ----

@app.post("/auth/guest", response_model=GuestOut)
async def guest_login():
    identity = new_guest_identity()
    return GuestOut(access_token=create_access_token(identity), identity=identity)

@app.post("/register-device")
async def register_device(
    data: DeviceTokenIn,
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    await store.upsert_device_token(session, identity, data.token)
    await session.commit()
    return {"status": "Registered"}

@app.post("/user/nickname")
async def update_nickname(
    data: NicknameIn,
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    await store.set_nickname(session, identity, data.nickname)
    await session.commit()
    return {"status": "Nickname updated"}

@app.delete("/account")
async def delete_account(
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    await store.erase_account(session, identity)
    await session.commit()
    return {"status": "Account deleted"}

# ---- KEYS ----

@app.put("/keys")
async def upload_public_key(
    data: PublicKeyIn,
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    await store.upsert_public_key(session, identity, data.publicKey)
    await session.commit()
    return {"status": "Key stored"}

@app.get("/keys/{email}", response_model=PublicKeyOut)
async def get_public_key(
    email: str,
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    target = email.strip().lower()
    record = await store.get_public_key(session, identity, target)
    return PublicKeyOut(email=target, publicKey=record.public_key)

# ---- MESSAGES ----

@app.post("/messages", response_model=SendOut)
async def send_message(
    data: MessageDocumentIn,
    background: BackgroundTasks,
    documentId: str | None = Query(default=None, max_length=128),
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    if data.fields is None:
        raise ValidationFailed("Invalid data", reason="missing_fields")

    draft = draft_from_fields(data.fields)
    msg = await store.append_message(session, identity, draft, message_id=documentId)
    await session.commit()

    background.add_task(notify_counterparty, msg.is_operator, msg.room)

    return SendOut(id=msg.id, chatId=msg.chat_id)

@app.get("/messages")
async def get_messages(
    chatId: str | None = Query(default=None),
    room: str | None = Query(default=None),
    pageSize: int | None = Query(default=None),
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    rows = await store.list_messages(session, identity, chat_id=chatId, room=room, limit=pageSize)
    return {"documents": format_messages(rows)}

# ---- CHATS ----

@app.post("/chats", response_model=ChatCreatedOut)
async def create_chat(
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    chat = await store.create_chat(session, owner=identity)
    await session.commit()
    return ChatCreatedOut(chatId=chat.chat_id, title=chat.title, userEmail=chat.owner, createdAt=chat.created_at)

@app.get("/chats", response_model=ChatListOut)
async def list_chats(
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    summaries = await store.list_chats_for_user(session, identity)
    return ChatListOut(chats=[chat_out(s) for s in summaries])

@app.get("/chats/all", response_model=DashboardOut)
async def list_all_chats(
    _operator: str = Depends(require_operator),
    session: AsyncSession = Depends(db.get_session),
):
    groups = await store.list_all_chats(session)
    return DashboardOut(users=[
        DashboardUserOut(
            userEmail=g["userEmail"],
            nickname=g["nickname"],
            latestActivity=g["latestActivity"],
            chats=[chat_out(s) for s in g["chats"]],
        )
        for g in groups
    ])

@app.patch("/chats/{chat_id}/delete")
async def soft_delete_chat(
    chat_id: str,
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    await store.soft_delete_chat(session, chat_id, identity)
    await session.commit()
    return {"status": "Deleted"}

@app.patch("/chats/{chat_id}/user-read")
async def user_read_chat(
    chat_id: str,
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    await store.mark_read(session, chat_id, identity, store.USER_PARTY)
    await session.commit()
    return {"status": "User marked as read"}

@app.patch("/chats/{chat_id}/read")
async def operator_read_chat(
    chat_id: str,
    identity: str = Depends(require_operator),
    session: AsyncSession = Depends(db.get_session),
):
    await store.mark_read(session, chat_id, identity, store.OPERATOR_PARTY)
    await session.commit()
    return {"status": "Marked as read"}

@app.patch("/chats/{chat_id}/title")
async def update_chat_title(
    chat_id: str,
    data: TitleIn,
    identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    chat = await store.rename_chat(session, chat_id, identity, data.title)
    await session.commit()
    return {"status": "Title updated", "title": chat.title}

# ---- OPERATOR ----

@app.get("/export")
async def export_messages(
    _operator: str = Depends(require_operator),
    session: AsyncSession = Depends(db.get_session),
):
    rows = await store.export_messages(session)
    return {"documents": format_messages(rows)}

@app.patch("/status")
async def update_status(
    data: StatusDocumentIn,
    room: str = Query(default=config.DEFAULT_STATUS_ROOM),
    _operator: str = Depends(require_operator),
    session: AsyncSession = Depends(db.get_session),
):
    last_active = data.fields.lastActive.as_double() if data.fields and data.fields.lastActive else None
    await store.upsert_status(session, room, last_active)
    await session.commit()
    return {"status": "Heartbeat Updated"}

@app.get("/status")
async def get_status(
    room: str = Query(default=config.DEFAULT_STATUS_ROOM),
    _identity: str = Depends(get_current_identity),
    session: AsyncSession = Depends(db.get_session),
):
    last_active = await store.get_status(session, room)
    if last_active is None:
        return {}
    return {"fields": {"lastActive": {"doubleValue": last_active}}}
