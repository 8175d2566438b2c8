"""
Key directory client.

Talks to the relay's `/keys` endpoints: publishes the local public key and
fetches peer public keys. The caller supplies an `httpx.AsyncClient` that is
already configured with the relay base URL, bearer token and timeouts.
"""

import logging
from urllib.parse import quote

import httpx

from .errors import PeerKeyNotFound

logger = logging.getLogger(__name__)

MAX_ENCODED_KEY_LEN = 200


class KeyDirectoryClient:
    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def publish(self, public_key_b64: str) -> bool:
        """
        Best-effort upsert of our public key. Failures are logged, never raised.

        Returns:
            True if the relay acknowledged the key.
        """
        try:
            resp = await self._http.put("/keys", json={"publicKey": public_key_b64})
        except httpx.HTTPError as exc:
            logger.warning("E2EE: public key upload failed: %s", exc)
            return False
        if resp.status_code >= 400:
            logger.warning("E2EE: public key upload rejected with HTTP %s", resp.status_code)
            return False
        logger.info("E2EE: public key uploaded")
        return True

    async def fetch(self, peer_identity: str) -> str:
        """
        Fetch the published public key of `peer_identity`.

        Timeouts, transport errors, 403 and 404 are all reported the same way;
        no retry happens here.

        Raises:
            PeerKeyNotFound: if no usable key could be obtained.
        """
        try:
            resp = await self._http.get(f"/keys/{quote(peer_identity, safe='@')}")
        except httpx.HTTPError as exc:
            raise PeerKeyNotFound(f"key fetch for {peer_identity} failed: {exc}") from exc

        if resp.status_code != 200:
            raise PeerKeyNotFound(f"key fetch for {peer_identity} returned HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise PeerKeyNotFound(f"key directory returned a non-JSON body for {peer_identity}") from exc

        public_key = body.get("publicKey") if isinstance(body, dict) else None
        if not isinstance(public_key, str) or not public_key or len(public_key) > MAX_ENCODED_KEY_LEN:
            raise PeerKeyNotFound(f"key directory has no usable key for {peer_identity}")
        return public_key
