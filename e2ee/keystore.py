"""
Identity keystore.

Holds the single long-lived X25519 keypair of this device. The private key is
persisted as a JSON blob in a file only the current OS user can read; the
public key is derived from it on demand.

Persistence failures never propagate to callers: they are logged and the
keystore reports "no key available", which the session layer treats as
"encryption unavailable".
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict

from cryptography.hazmat.primitives.asymmetric import x25519

from .errors import KeyUnavailable
from .primitive import (
    x25519_keypair,
    x25519_pub_to_b64,
    x25519_priv_to_b64,
    x25519_priv_from_b64,
)

logger = logging.getLogger(__name__)

DEFAULT_KEYSTORE_PATH = Path.home() / ".sealed-relay" / "identity.json"


class IdentityKeystore:
    def __init__(self, path: str | os.PathLike | None = None):
        self.path = Path(path) if path is not None else DEFAULT_KEYSTORE_PATH
        self._cached: x25519.X25519PrivateKey | None = None

    # ---- file I/O ----

    def _load_blob(self) -> Dict[str, Any] | None:
        if not self.path.exists():
            return None
        return json.loads(self.path.read_text(encoding="utf-8"))

    def _save_blob(self, blob: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # replace any previous file, readable by the owning user only
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(json.dumps(blob, indent=2))

    def _load_private_key(self) -> x25519.X25519PrivateKey | None:
        try:
            blob = self._load_blob()
            if not blob:
                return None
            return x25519_priv_from_b64(blob["identity_dh"]["priv"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("E2EE: stored identity key is unreadable: %s", exc)
            return None

    # ---- public API ----

    def ensure_key_pair(self) -> bool:
        """
        Create and persist a keypair unless one already exists.

        Returns:
            True if a usable keypair is available afterwards.
        """
        if self.private_key_or_none() is not None:
            return True

        priv, pub = x25519_keypair()
        blob = {
            "identity_dh": {
                "priv": x25519_priv_to_b64(priv),
                "pub": x25519_pub_to_b64(pub),
            },
            "created_at": time.time(),
        }
        try:
            self._save_blob(blob)
        except OSError as exc:
            logger.error("E2EE: failed to persist identity key at %s: %s", self.path, exc)
            return False

        self._cached = priv
        logger.info("E2EE: generated new identity keypair")
        return True

    def private_key_or_none(self) -> x25519.X25519PrivateKey | None:
        if self._cached is None:
            self._cached = self._load_private_key()
        return self._cached

    def private_key(self) -> x25519.X25519PrivateKey:
        priv = self.private_key_or_none()
        if priv is None:
            raise KeyUnavailable("no identity keypair on this device")
        return priv

    def public_key_encoded(self) -> str | None:
        """Standard base64 of the raw 32-byte public key, or None without a keypair."""
        priv = self.private_key_or_none()
        if priv is None:
            return None
        return x25519_pub_to_b64(priv.public_key())

    def delete_key_pair(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("E2EE: failed to delete identity key at %s: %s", self.path, exc)
        self._cached = None
        logger.info("E2EE: identity keypair deleted")
