import base64
import binascii
import os
from typing import Tuple

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_LEN = 12
TAG_LEN = 16
KEY_LEN = 32
X25519_RAW_LEN = 32


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("utf-8")

def b64d(s: str) -> bytes:
    # strict: reject non-alphabet characters instead of silently dropping them
    try:
        return base64.b64decode(s.encode("utf-8"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError("invalid base64") from exc

def rand_nonce(n: int = NONCE_LEN) -> bytes:
    return os.urandom(n)

def x25519_keypair() -> Tuple[x25519.X25519PrivateKey, x25519.X25519PublicKey]:
    priv = x25519.X25519PrivateKey.generate()
    return priv, priv.public_key()

def x25519_pub_to_b64(pub: x25519.X25519PublicKey) -> str:
    raw = pub.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
    return b64e(raw)

def x25519_pub_from_b64(s: str) -> x25519.X25519PublicKey:
    raw = b64d(s)
    if len(raw) != X25519_RAW_LEN:
        raise ValueError("X25519 public key must be 32 bytes")
    return x25519.X25519PublicKey.from_public_bytes(raw)

def x25519_priv_to_b64(priv: x25519.X25519PrivateKey) -> str:
    raw = priv.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption()
    )
    return b64e(raw)

def x25519_priv_from_b64(s: str) -> x25519.X25519PrivateKey:
    raw = b64d(s)
    if len(raw) != X25519_RAW_LEN:
        raise ValueError("X25519 private key must be 32 bytes")
    return x25519.X25519PrivateKey.from_private_bytes(raw)

def dh(priv: x25519.X25519PrivateKey, pub: x25519.X25519PublicKey) -> bytes:
    return priv.exchange(pub)

def hkdf_sha256(ikm: bytes, salt: bytes | None, info: bytes, length: int) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(ikm)

def aead_encrypt(key32: bytes, plaintext: bytes, aad: bytes | None = None) -> tuple[bytes, bytes]:
    nonce = rand_nonce(NONCE_LEN)
    ct = AESGCM(key32).encrypt(nonce, plaintext, aad)
    return nonce, ct

def aead_decrypt(key32: bytes, nonce: bytes, ciphertext: bytes, aad: bytes | None = None) -> bytes:
    return AESGCM(key32).decrypt(nonce, ciphertext, aad)
