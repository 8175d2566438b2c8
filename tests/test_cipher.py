"""
Cipher engine tests

1. Round trip for text, binary and empty payloads
2. Fresh nonce on every seal
3. Fail-closed opening: wrong key, truncation, bit flips, garbage
"""

import base64
import os

import pytest
from e2ee.cipher import seal, unseal, seal_text, unseal_text
from e2ee.errors import AuthenticationFailure
from e2ee.primitive import NONCE_LEN, TAG_LEN


@pytest.fixture
def key():
    return os.urandom(32)


class TestRoundTrip:
    """seal/unseal with the same key returns the original bytes."""

    @pytest.mark.parametrize("plaintext", [b"", b"hello", os.urandom(4096), "héllo ✓".encode("utf-8")])
    def test_bytes(self, key, plaintext):
        assert unseal(seal(plaintext, key), key) == plaintext

    def test_text_helpers(self, key):
        assert unseal_text(seal_text("Where is my order?", key), key) == "Where is my order?"

    def test_image_base64_as_text(self, key):
        image_b64 = base64.b64encode(os.urandom(2048)).decode()
        assert unseal_text(seal_text(image_b64, key), key) == image_b64

    def test_blob_layout(self, key):
        """Blob is base64(nonce || ciphertext || tag)."""
        raw = base64.b64decode(seal(b"abcdef", key))
        assert len(raw) == NONCE_LEN + 6 + TAG_LEN


class TestNonceFreshness:
    def test_same_plaintext_different_blobs(self, key):
        blobs = {seal(b"same message", key) for _ in range(50)}
        assert len(blobs) == 50

    def test_nonces_differ(self, key):
        n1 = base64.b64decode(seal(b"x", key))[:NONCE_LEN]
        n2 = base64.b64decode(seal(b"x", key))[:NONCE_LEN]
        assert n1 != n2


class TestFailClosed:
    def test_wrong_key(self, key):
        blob = seal(b"secret", key)
        with pytest.raises(AuthenticationFailure):
            unseal(blob, os.urandom(32))

    @pytest.mark.parametrize("cut", [1, 5, TAG_LEN, TAG_LEN + 3])
    def test_truncated(self, key, cut):
        raw = base64.b64decode(seal(b"secret message", key))
        with pytest.raises(AuthenticationFailure):
            unseal(base64.b64encode(raw[:-cut]).decode(), key)

    def test_every_single_bit_flip_detected(self, key):
        raw = bytearray(base64.b64decode(seal(b"tamper me", key)))
        for i in range(len(raw) * 8):
            flipped = bytearray(raw)
            flipped[i // 8] ^= 1 << (i % 8)
            with pytest.raises(AuthenticationFailure):
                unseal(base64.b64encode(bytes(flipped)).decode(), key)

    def test_not_base64(self, key):
        with pytest.raises(AuthenticationFailure):
            unseal("this is plain text, not a sealed box!", key)

    def test_too_short(self, key):
        with pytest.raises(AuthenticationFailure):
            unseal(base64.b64encode(b"\x00" * (NONCE_LEN + TAG_LEN - 1)).decode(), key)

    def test_bad_key_length_rejected(self):
        with pytest.raises(ValueError):
            seal(b"x", b"short")
