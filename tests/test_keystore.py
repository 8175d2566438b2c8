"""Identity keystore tests: lazy creation, idempotence, encoding and teardown."""

import base64
import json
import os
import stat
import sys

import pytest
from e2ee.errors import KeyUnavailable
from e2ee.keystore import IdentityKeystore


@pytest.fixture
def keystore(tmp_path):
    return IdentityKeystore(tmp_path / "keys" / "identity.json")


class TestEnsureKeyPair:
    def test_no_key_before_ensure(self, keystore):
        assert keystore.public_key_encoded() is None
        with pytest.raises(KeyUnavailable):
            keystore.private_key()

    def test_creates_once(self, keystore):
        assert keystore.ensure_key_pair() is True
        first = keystore.public_key_encoded()
        assert keystore.ensure_key_pair() is True
        assert keystore.public_key_encoded() == first

    def test_persisted_across_instances(self, keystore):
        keystore.ensure_key_pair()
        reloaded = IdentityKeystore(keystore.path)
        assert reloaded.public_key_encoded() == keystore.public_key_encoded()

    def test_public_key_is_base64_of_32_raw_bytes(self, keystore):
        keystore.ensure_key_pair()
        raw = base64.b64decode(keystore.public_key_encoded(), validate=True)
        assert len(raw) == 32

    @pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX permissions")
    def test_file_private_to_owner(self, keystore):
        keystore.ensure_key_pair()
        mode = stat.S_IMODE(os.stat(keystore.path).st_mode)
        assert mode & 0o077 == 0


class TestFailures:
    def test_corrupt_file_reads_as_no_key(self, keystore):
        keystore.path.parent.mkdir(parents=True)
        keystore.path.write_text("{not json", encoding="utf-8")
        assert keystore.public_key_encoded() is None

    def test_malformed_key_reads_as_no_key(self, keystore):
        keystore.path.parent.mkdir(parents=True)
        keystore.path.write_text(json.dumps({"identity_dh": {"priv": "AAAA"}}), encoding="utf-8")
        assert keystore.private_key_or_none() is None

    def test_unwritable_location_is_not_fatal(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file where a directory should be")
        keystore = IdentityKeystore(blocker / "identity.json")
        assert keystore.ensure_key_pair() is False
        assert keystore.public_key_encoded() is None


class TestDelete:
    def test_delete_then_regenerate(self, keystore):
        keystore.ensure_key_pair()
        old = keystore.public_key_encoded()
        keystore.delete_key_pair()
        assert not keystore.path.exists()
        assert keystore.public_key_encoded() is None
        keystore.ensure_key_pair()
        assert keystore.public_key_encoded() != old

    def test_delete_without_key(self, keystore):
        keystore.delete_key_pair()
        assert keystore.public_key_encoded() is None
