"""
Chat session orchestrator.

Sequences key resolution before any cryptographic work, seals outbound fields,
opens inbound ones, and merges relay-confirmed messages with locally pending
ones.

Fallback contract:
- Key exchange outcome is recorded once per session, as either
  `encryption_ready` or `encryption_failed`. Neither is ever reset.
- When it failed, messages are sent in plaintext and inbound payloads are
  shown as received. `encryption_warning` is set and a warning is logged.
- When a single field cannot be sealed, that field goes out in plaintext and
  `encryption_warning` is set; the send itself still happens.
- When a single field cannot be opened, its raw payload is displayed; other
  messages are unaffected.
- Until the outcome is known, fetched messages are held back, so the visible
  list never mixes decrypted and undecrypted entries.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import replace
from typing import Callable, Iterable, List

from e2ee import E2EEService, E2EEError

from .api import RelayClient, RelayUnavailable
from .envelope import encode_fields
from .models import Message, sort_key, truncate_title
from .scheduler import RecurringTask

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0
ERROR_TTL = 4.0
PRESENCE_WINDOW = 10.0


def merge_messages(confirmed: Iterable[Message], local: Iterable[Message]) -> List[Message]:
    """
    Relay copies win over local ones with the same id; local messages still
    pending confirmation are kept. Result is ordered by timestamp, then id.
    """
    confirmed = list(confirmed)
    confirmed_ids = {m.id for m in confirmed}
    pending = [m for m in local if m.pending and m.id not in confirmed_ids]
    return sorted(confirmed + pending, key=sort_key)


class ChatSession:
    def __init__(
        self,
        e2ee: E2EEService,
        relay: RelayClient,
        identity: str,
        operator_identity: str,
        room: str | None = None,
        chat_id: str = "",
        poll_interval: float = POLL_INTERVAL,
        error_ttl: float = ERROR_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self._e2ee = e2ee
        self._relay = relay
        self._clock = clock

        self.identity = identity.strip().lower()
        self.operator_identity = operator_identity.strip().lower()
        self.is_operator = self.identity == self.operator_identity
        if self.is_operator and not room:
            raise ValueError("operator sessions must name the user's room")
        self.room = room or self.identity
        # every user chat is with the operator; the operator's peer is the room owner
        self.peer = self.room if self.is_operator else self.operator_identity
        self.chat_id = chat_id

        self.messages: List[Message] = []
        self._confirmed: List[Message] = []

        self.encryption_ready = False
        self.encryption_failed = False
        self.encryption_warning: str | None = None
        self.operator_present = False

        self.error_ttl = error_ttl
        self._error: str | None = None
        self._error_at = 0.0

        self._titled = False
        self._entered = False
        self._resolving: asyncio.Future | None = None
        self._creating_chat: asyncio.Future | None = None
        self._poller = RecurringTask(self.poll, poll_interval, name=f"poll:{self.room}")

    # ---- state ----

    @property
    def encryption_pending(self) -> bool:
        return not (self.encryption_ready or self.encryption_failed)

    @property
    def polling(self) -> bool:
        return self._poller.running

    @property
    def error_message(self) -> str | None:
        """Last network error, cleared automatically after `error_ttl` seconds."""
        if self._error is not None and self._clock() - self._error_at >= self.error_ttl:
            self._error = None
        return self._error

    def _set_error(self, message: str) -> None:
        logger.warning("Chat %s: %s", self.chat_id or "<new>", message)
        self._error = message
        self._error_at = self._clock()

    def _warn_unencrypted(self, message: str) -> None:
        logger.warning("E2EE: %s", message)
        self.encryption_warning = message

    # ---- lifecycle ----

    async def enter(self) -> None:
        """Resolve the peer key and load history concurrently, then start polling."""
        self._entered = True
        self._resolving = asyncio.ensure_future(self.resolve_encryption())
        if self.chat_id:
            await self.fetch_messages()
            await self._mark_read()
            self._poller.start()
        await self._resolving

    async def leave(self) -> None:
        self._entered = False
        await self._poller.cancel()
        if self._resolving is not None and not self._resolving.done():
            self._resolving.cancel()

    async def resolve_encryption(self) -> bool:
        if not self.encryption_pending:
            return self.encryption_ready

        ok = await self._e2ee.resolve(self.peer)
        if self.encryption_pending:
            if ok:
                self.encryption_ready = True
            else:
                self.encryption_failed = True
                self._warn_unencrypted(
                    f"key exchange with {self.peer} failed, messages in this chat are NOT end-to-end encrypted"
                )
            self._publish()
        return self.encryption_ready

    # ---- receive path ----

    async def poll(self) -> None:
        await self.fetch_messages()
        await self._refresh_presence()

    async def fetch_messages(self) -> None:
        if not self.chat_id:
            return
        try:
            confirmed = await self._relay.list_messages(chat_id=self.chat_id)
        except RelayUnavailable as exc:
            self._set_error(f"Failed to load messages: {exc}")
            return
        self._confirmed = confirmed
        self._publish()

    def _publish(self) -> None:
        if self.encryption_pending:
            return
        opened = [self._open(m) for m in self._confirmed]
        if any(not m.is_operator for m in opened):
            self._titled = True
        # single assignment: observers never see a partially merged list
        self.messages = merge_messages(opened, self.messages)

    def _open(self, message: Message) -> Message:
        if not self.encryption_ready:
            return message
        return replace(
            message,
            text=self._open_field(message.text, message.id),
            image_base64=self._open_field(message.image_base64, message.id, image=True),
        )

    def _open_field(self, value: str | None, message_id: str, image: bool = False) -> str | None:
        if not value:
            return value
        try:
            if image:
                return self._e2ee.decrypt_image(value, self.peer)
            return self._e2ee.decrypt(value, self.peer)
        except E2EEError as exc:
            logger.debug("E2EE: message %s shown undecrypted: %s", message_id, exc)
            return value

    # ---- send path ----

    def _seal_field(self, value: str, image: bool = False) -> str:
        if not self.encryption_ready:
            return value
        try:
            if image:
                return self._e2ee.encrypt_image(value, self.peer)
            return self._e2ee.encrypt(value, self.peer)
        except E2EEError as exc:
            self._warn_unencrypted(f"could not encrypt outgoing {'image' if image else 'text'}, sent as plaintext: {exc}")
            return value

    async def send(self, text: str, image_base64: str | None = None) -> Message | None:
        """
        Show the message as pending immediately, then deliver it.

        Without a chat id the relay creates the chat and this session adopts it.
        Only one send at a time may create the chat; concurrent sends wait for
        its id and post into the same chat. Delivery failures set
        `error_message`; the pending entry stays visible.
        """
        text = (text or "").strip()
        if not text and not image_base64:
            return None

        if self.encryption_pending:
            await self.resolve_encryption()

        msg = Message(
            id=str(uuid.uuid4()).upper(),
            text=text,
            is_operator=self.is_operator,
            timestamp=self._clock(),
            room=self.room,
            chat_id=self.chat_id,
            image_base64=image_base64,
            pending=True,
        )
        self.messages = sorted(self.messages + [msg], key=sort_key)

        await self._await_chat()
        creating = not self.chat_id
        if creating:
            self._creating_chat = asyncio.get_running_loop().create_future()
        try:
            fields = encode_fields(
                text=self._seal_field(text) if text else "",
                is_operator=msg.is_operator,
                timestamp=msg.timestamp,
                room=msg.room,
                chat_id=self.chat_id,
                image_base64=self._seal_field(image_base64, image=True) if image_base64 else None,
            )
            try:
                result = await self._relay.send_message(msg.id, fields)
            except RelayUnavailable as exc:
                self._set_error(f"Failed to send: {exc}")
                return replace(msg, chat_id=self.chat_id)

            if creating and result.get("chatId"):
                self._adopt_chat(result["chatId"])
        finally:
            if creating:
                self._creating_chat.set_result(None)
                self._creating_chat = None

        if text and not self.is_operator and not self._titled:
            self._titled = True
            await self._set_title(text)
        return replace(msg, chat_id=self.chat_id)

    async def _await_chat(self) -> None:
        # if the creating send fails, the next waiter to wake becomes the creator
        while not self.chat_id and self._creating_chat is not None:
            await asyncio.shield(self._creating_chat)

    def _adopt_chat(self, chat_id: str) -> None:
        self.chat_id = chat_id
        self.messages = [replace(m, chat_id=chat_id) if not m.chat_id else m for m in self.messages]
        if self._entered:
            self._poller.start()

    async def _set_title(self, text: str) -> None:
        try:
            await self._relay.rename_chat(self.chat_id, truncate_title(text))
        except RelayUnavailable as exc:
            self._set_error(f"Failed to set chat title: {exc}")

    async def _mark_read(self) -> None:
        try:
            await self._relay.mark_read(self.chat_id, as_operator=self.is_operator)
        except RelayUnavailable as exc:
            self._set_error(f"Failed to mark chat as read: {exc}")

    async def _refresh_presence(self) -> None:
        now = self._clock()
        try:
            if self.is_operator:
                await self._relay.heartbeat(now)
                return
            last = await self._relay.last_active()
        except RelayUnavailable as exc:
            logger.debug("presence check failed: %s", exc)
            self.operator_present = False
            return
        self.operator_present = last is not None and now - last < PRESENCE_WINDOW
