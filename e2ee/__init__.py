"""Client-side end-to-end encryption: identity keys, key exchange and sealing."""

from .primitive import (
    b64e,
    b64d,
    rand_nonce,
    x25519_keypair,
    x25519_pub_to_b64,
    x25519_pub_from_b64,
    x25519_priv_to_b64,
    x25519_priv_from_b64,
    dh,
    hkdf_sha256,
    aead_encrypt,
    aead_decrypt,
)

from .errors import (
    E2EEError,
    KeyUnavailable,
    PeerKeyNotFound,
    AgreementFailure,
    AuthenticationFailure,
)

from .cipher import seal, unseal, seal_text, unseal_text
from .keystore import IdentityKeystore
from .directory import KeyDirectoryClient
from .shared_secrets import SharedSecretCache, derive_shared_key
from .service import E2EEService

__all__ = [
    # Primitives
    "b64e",
    "b64d",
    "rand_nonce",
    "x25519_keypair",
    "x25519_pub_to_b64",
    "x25519_pub_from_b64",
    "x25519_priv_to_b64",
    "x25519_priv_from_b64",
    "dh",
    "hkdf_sha256",
    "aead_encrypt",
    "aead_decrypt",
    # Errors
    "E2EEError",
    "KeyUnavailable",
    "PeerKeyNotFound",
    "AgreementFailure",
    "AuthenticationFailure",
    # Cipher engine
    "seal",
    "unseal",
    "seal_text",
    "unseal_text",
    # Key management
    "IdentityKeystore",
    "KeyDirectoryClient",
    "SharedSecretCache",
    "derive_shared_key",
    "E2EEService",
]
