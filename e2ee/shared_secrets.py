"""
Per-peer shared-secret cache.

Derivation is two-stage: X25519 agreement between our identity key and the
peer's published key, then HKDF-SHA256 with a fixed application salt to turn
the raw agreement output into a 32-byte AES key. Both sides compute the same
value; the secret itself is never transmitted.

At most one directory fetch / derivation is in flight per peer. Concurrent
`resolve()` calls for the same peer await the same task and share its result.
A secret is cached only after a derivation fully succeeds.
"""

import asyncio
import logging
from typing import Dict

from .directory import KeyDirectoryClient
from .errors import E2EEError, AgreementFailure
from .keystore import IdentityKeystore
from .primitive import KEY_LEN, dh, hkdf_sha256, x25519_pub_from_b64

logger = logging.getLogger(__name__)

HKDF_SALT = b"sealed-relay-e2ee-v1"
HKDF_INFO = b""


def derive_shared_key(keystore: IdentityKeystore, peer_public_key_b64: str) -> bytes:
    """
    Derive the symmetric key shared with the owner of `peer_public_key_b64`.

    Raises:
        KeyUnavailable: if this device has no identity keypair
        AgreementFailure: if the peer key is malformed or the agreement fails
    """
    priv = keystore.private_key()
    try:
        peer_pub = x25519_pub_from_b64(peer_public_key_b64)
        shared = dh(priv, peer_pub)
    except ValueError as exc:
        # also raised by cryptography for low-order points (all-zero output)
        raise AgreementFailure(str(exc)) from exc
    return hkdf_sha256(ikm=shared, salt=HKDF_SALT, info=HKDF_INFO, length=KEY_LEN)


class SharedSecretCache:
    def __init__(self, keystore: IdentityKeystore, directory: KeyDirectoryClient):
        self._keystore = keystore
        self._directory = directory
        self._secrets: Dict[str, bytes] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    def has(self, peer_identity: str) -> bool:
        return peer_identity in self._secrets

    def get(self, peer_identity: str) -> bytes | None:
        return self._secrets.get(peer_identity)

    def clear(self) -> None:
        self._secrets.clear()
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()

    async def resolve(self, peer_identity: str) -> bool:
        """
        Make sure a shared secret for `peer_identity` is cached.

        Returns:
            True if a secret is available, False if key exchange failed.
            Nothing is cached on failure.
        """
        if peer_identity in self._secrets:
            return True

        task = self._inflight.get(peer_identity)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_derive(peer_identity))
            self._inflight[peer_identity] = task
            task.add_done_callback(lambda t, peer=peer_identity: self._forget(peer, t))

        # a cancelled waiter (e.g. a closed chat screen) must not cancel the shared task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return False
            raise

    def _forget(self, peer_identity: str, task: asyncio.Task) -> None:
        if self._inflight.get(peer_identity) is task:
            del self._inflight[peer_identity]

    async def _fetch_and_derive(self, peer_identity: str) -> bool:
        try:
            peer_key = await self._directory.fetch(peer_identity)
            # recheck after the await: a concurrent path may have filled the cache
            if peer_identity in self._secrets:
                return True
            key = derive_shared_key(self._keystore, peer_key)
        except E2EEError as exc:
            logger.warning("E2EE: key exchange with %s failed (%s): %s",
                           peer_identity, type(exc).__name__, exc)
            return False

        self._secrets[peer_identity] = key
        logger.info("E2EE: shared secret derived for %s", peer_identity)
        return True
