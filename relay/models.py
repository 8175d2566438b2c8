from sqlalchemy import String, Boolean, Float, ForeignKey, Text, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .config import PLACEHOLDER_TITLE

# All timestamps are float seconds since the epoch, as clients send them.

class Base(DeclarativeBase):
    pass

# one chat per conversation between an owner and the operator
class Chat(Base):
    __tablename__ = "chats"
    chat_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner: Mapped[str] = mapped_column(String(320), index=True)
    title: Mapped[str] = mapped_column(String(100), default=PLACEHOLDER_TITLE)
    created_at: Mapped[float] = mapped_column(Float)
    deleted_by_user: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    user_last_read: Mapped[float] = mapped_column(Float, default=0.0)
    operator_last_read: Mapped[float] = mapped_column(Float, default=0.0)

    messages: Mapped[list["Message"]] = relationship(back_populates="chat", cascade="all, delete-orphan")

# opaque payloads: text/image are ciphertext whenever the clients had a shared secret
class Message(Base):
    __tablename__ = "messages"
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    chat_id: Mapped[str] = mapped_column(String(36), ForeignKey("chats.chat_id"), index=True)
    text: Mapped[str] = mapped_column(Text, default="")
    is_operator: Mapped[bool] = mapped_column(Boolean, default=False)
    timestamp: Mapped[float] = mapped_column(Float, index=True)
    room: Mapped[str] = mapped_column(String(320), index=True)
    image_base64: Mapped[str | None] = mapped_column(Text, nullable=True)

    chat: Mapped["Chat"] = relationship(back_populates="messages")

Index("ix_messages_chat_ts", Message.chat_id, Message.timestamp)

# last-write-wins records keyed by identity, no history
class PublicKeyRecord(Base):
    __tablename__ = "public_keys"
    identity: Mapped[str] = mapped_column(String(320), primary_key=True)
    public_key: Mapped[str] = mapped_column(String(200))
    updated_at: Mapped[float] = mapped_column(Float)

class DeviceToken(Base):
    __tablename__ = "device_tokens"
    identity: Mapped[str] = mapped_column(String(320), primary_key=True)
    token: Mapped[str] = mapped_column(Text)

class UserProfile(Base):
    __tablename__ = "user_profiles"
    identity: Mapped[str] = mapped_column(String(320), primary_key=True)
    nickname: Mapped[str | None] = mapped_column(String(64), nullable=True)

# operator presence heartbeat, one row per status room
class Status(Base):
    __tablename__ = "status"
    room: Mapped[str] = mapped_column(String(320), primary_key=True)
    last_active: Mapped[float] = mapped_column(Float)
