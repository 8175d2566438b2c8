"""
Encryption service owned by a client context.

Bundles the identity keystore, key directory client and shared-secret cache
behind one object with explicit setup (`ensure_key_pair`) and teardown
(`delete_key_pair`). Sessions receive an instance instead of reaching for
module-level state.
"""

import logging

from .cipher import seal_text, unseal_text
from .directory import KeyDirectoryClient
from .errors import KeyUnavailable
from .keystore import IdentityKeystore
from .shared_secrets import SharedSecretCache

logger = logging.getLogger(__name__)


class E2EEService:
    def __init__(self, keystore: IdentityKeystore, directory: KeyDirectoryClient):
        self.keystore = keystore
        self.directory = directory
        self.secrets = SharedSecretCache(keystore, directory)

    def ensure_key_pair(self) -> bool:
        return self.keystore.ensure_key_pair()

    def public_key_encoded(self) -> str | None:
        return self.keystore.public_key_encoded()

    async def publish_public_key(self) -> bool:
        """Create the keypair if needed and upload its public half (best effort)."""
        if not self.ensure_key_pair():
            return False
        public_key = self.public_key_encoded()
        if public_key is None:
            return False
        return await self.directory.publish(public_key)

    def delete_key_pair(self) -> None:
        """Destroy the identity key and every secret derived from it."""
        self.keystore.delete_key_pair()
        self.secrets.clear()

    async def resolve(self, peer_identity: str) -> bool:
        return await self.secrets.resolve(peer_identity)

    def has_shared_secret(self, peer_identity: str) -> bool:
        return self.secrets.has(peer_identity)

    def _key_for(self, peer_identity: str) -> bytes:
        key = self.secrets.get(peer_identity)
        if key is None:
            raise KeyUnavailable(f"no shared secret for {peer_identity}")
        return key

    def encrypt(self, plaintext: str, peer_identity: str) -> str:
        return seal_text(plaintext, self._key_for(peer_identity))

    def decrypt(self, blob: str, peer_identity: str) -> str:
        return unseal_text(blob, self._key_for(peer_identity))

    # Images travel as their base64 text, sealed exactly like message text.
    def encrypt_image(self, image_b64: str, peer_identity: str) -> str:
        return self.encrypt(image_b64, peer_identity)

    def decrypt_image(self, blob: str, peer_identity: str) -> str:
        return self.decrypt(blob, peer_identity)
