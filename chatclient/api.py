"""
HTTP client for the relay.

Every call has a bounded timeout. Transport errors and non-2xx responses are
raised as `RelayUnavailable`; retrying is left to the caller.
"""

import logging
from typing import Any, Dict, List
from urllib.parse import quote

import httpx

from .envelope import decode_document
from .models import ChatSummary, Message

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class RelayUnavailable(Exception):
    def __init__(self, message: str, status_code: int | None = None, reason: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


def build_http_client(base_url: str, token: str, timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        timeout=timeout,
    )


class RelayClient:
    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            resp = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise RelayUnavailable(f"{method} {url} failed: {exc}") from exc

        if resp.status_code >= 400:
            reason = None
            try:
                body = resp.json()
                reason = body.get("reason") if isinstance(body, dict) else None
            except ValueError:
                pass
            raise RelayUnavailable(f"Server error: {resp.status_code}", status_code=resp.status_code, reason=reason)

        try:
            return resp.json()
        except ValueError:
            return {}

    # ---- messages ----

    async def send_message(self, message_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/messages", params={"documentId": message_id}, json={"fields": fields})

    async def list_messages(self, chat_id: str | None = None, room: str | None = None,
                            page_size: int | None = None) -> List[Message]:
        params: Dict[str, Any] = {}
        if chat_id:
            params["chatId"] = chat_id
        if room:
            params["room"] = room
        if page_size:
            params["pageSize"] = page_size
        body = await self._request("GET", "/messages", params=params)
        docs = body.get("documents") or []
        return [m for m in (decode_document(d) for d in docs) if m is not None]

    # ---- chats ----

    async def create_chat(self) -> str:
        body = await self._request("POST", "/chats", json={})
        return body["chatId"]

    async def list_chats(self) -> List[ChatSummary]:
        body = await self._request("GET", "/chats")
        return [
            ChatSummary(
                chat_id=c["chatId"],
                owner=c["userEmail"],
                title=c["title"],
                created_at=c["createdAt"],
                deleted_by_user=bool(c.get("deletedByUser")),
                is_unread=bool(c.get("isUnread")),
                message_count=int(c.get("messageCount", 0)),
            )
            for c in body.get("chats", [])
        ]

    async def rename_chat(self, chat_id: str, title: str) -> str:
        body = await self._request("PATCH", f"/chats/{quote(chat_id)}/title", json={"title": title})
        return body.get("title", title)

    async def soft_delete_chat(self, chat_id: str) -> None:
        await self._request("PATCH", f"/chats/{quote(chat_id)}/delete", json={})

    async def mark_read(self, chat_id: str, as_operator: bool = False) -> None:
        endpoint = "read" if as_operator else "user-read"
        await self._request("PATCH", f"/chats/{quote(chat_id)}/{endpoint}", json={})

    # ---- presence ----

    async def heartbeat(self, last_active: float, room: str | None = None) -> None:
        params = {"room": room} if room else None
        await self._request("PATCH", "/status", params=params,
                            json={"fields": {"lastActive": {"doubleValue": last_active}}})

    async def last_active(self, room: str | None = None) -> float | None:
        params = {"room": room} if room else None
        body = await self._request("GET", "/status", params=params)
        value = (body.get("fields") or {}).get("lastActive") or {}
        return value.get("doubleValue")

    async def register_device(self, token: str) -> None:
        await self._request("POST", "/register-device", json={"token": token})
