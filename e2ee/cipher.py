"""
Cipher engine: AES-256-GCM over arbitrary payloads.

Wire layout of a sealed blob, before base64:

    nonce (12 bytes) || ciphertext (len(plaintext) bytes) || tag (16 bytes)

A fresh random nonce is drawn for every call to `seal`.
"""

from cryptography.exceptions import InvalidTag

from .errors import AuthenticationFailure
from .primitive import (
    KEY_LEN,
    NONCE_LEN,
    TAG_LEN,
    b64e,
    b64d,
    aead_encrypt,
    aead_decrypt,
)


def _check_key(key: bytes) -> None:
    if len(key) != KEY_LEN:
        raise ValueError(f"symmetric key must be {KEY_LEN} bytes")


def seal(plaintext: bytes, key: bytes) -> str:
    """
    Encrypt and authenticate `plaintext`.

    Args:
        plaintext: Arbitrary bytes
        key: 32-byte symmetric key

    Returns:
        base64(nonce || ciphertext || tag)
    """
    _check_key(key)
    nonce, ct_and_tag = aead_encrypt(key, plaintext)
    return b64e(nonce + ct_and_tag)


def unseal(blob: str, key: bytes) -> bytes:
    """
    Verify and decrypt a blob produced by `seal`.

    Fails closed: nothing is returned unless the tag verifies.

    Raises:
        AuthenticationFailure: on malformed encoding, truncation, tampering or wrong key.
    """
    _check_key(key)
    try:
        raw = b64d(blob)
    except ValueError as exc:
        raise AuthenticationFailure("payload is not valid base64") from exc

    if len(raw) < NONCE_LEN + TAG_LEN:
        raise AuthenticationFailure("payload too short to be a sealed box")

    try:
        return aead_decrypt(key, raw[:NONCE_LEN], raw[NONCE_LEN:])
    except InvalidTag as exc:
        raise AuthenticationFailure("authentication tag mismatch") from exc


def seal_text(text: str, key: bytes) -> str:
    return seal(text.encode("utf-8"), key)


def unseal_text(blob: str, key: bytes) -> str:
    data = unseal(blob, key)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise AuthenticationFailure("decrypted payload is not UTF-8 text") from exc
