"""
Per-sign-in client context.

Owns the HTTP client, the encryption service and the relay API for one
identity, and hands them to every chat session it opens. `sign_in` and
`sign_out` are the explicit setup/teardown points for key material.
"""

import logging
import os

import httpx

from e2ee import E2EEService, IdentityKeystore, KeyDirectoryClient

from .api import DEFAULT_TIMEOUT, RelayClient, build_http_client
from .session import ChatSession

logger = logging.getLogger(__name__)


class ClientContext:
    def __init__(
        self,
        base_url: str,
        token: str,
        identity: str,
        operator_identity: str,
        keystore_path: str | os.PathLike | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http: httpx.AsyncClient | None = None,
    ):
        self.identity = identity.strip().lower()
        self.operator_identity = operator_identity.strip().lower()
        self.http = http if http is not None else build_http_client(base_url, token, timeout)
        self.relay = RelayClient(self.http)
        self.e2ee = E2EEService(IdentityKeystore(keystore_path), KeyDirectoryClient(self.http))

    async def sign_in(self) -> bool:
        """Make sure this device has a keypair and the directory knows its public key."""
        ok = await self.e2ee.publish_public_key()
        if not ok:
            logger.warning("E2EE: public key not published, peers will fall back to plaintext")
        return ok

    def open_chat(self, chat_id: str = "", room: str | None = None, **kwargs) -> ChatSession:
        return ChatSession(
            self.e2ee,
            self.relay,
            identity=self.identity,
            operator_identity=self.operator_identity,
            room=room,
            chat_id=chat_id,
            **kwargs,
        )

    async def sign_out(self, delete_keys: bool = True) -> None:
        if delete_keys:
            self.e2ee.delete_key_pair()
        await self.http.aclose()
