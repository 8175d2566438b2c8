"""
Key exchange tests

1. Both sides derive the same 32-byte key (ECDH symmetry)
2. A resolved peer is never fetched or derived again
3. Concurrent resolves share one directory fetch
4. Failures cache nothing
5. Directory client maps HTTP outcomes onto PeerKeyNotFound
"""

import asyncio
import base64

import httpx
import pytest
from conftest import FakeDirectory
from e2ee.directory import KeyDirectoryClient
from e2ee.errors import PeerKeyNotFound, AgreementFailure
from e2ee.keystore import IdentityKeystore
from e2ee.service import E2EEService
from e2ee.shared_secrets import SharedSecretCache, derive_shared_key


@pytest.fixture
def alice(tmp_path):
    ks = IdentityKeystore(tmp_path / "alice.json")
    ks.ensure_key_pair()
    return ks


@pytest.fixture
def bob(tmp_path):
    ks = IdentityKeystore(tmp_path / "bob.json")
    ks.ensure_key_pair()
    return ks


class TestDerivation:
    def test_symmetric(self, alice, bob):
        k_ab = derive_shared_key(alice, bob.public_key_encoded())
        k_ba = derive_shared_key(bob, alice.public_key_encoded())
        assert k_ab == k_ba
        assert len(k_ab) == 32

    def test_differs_per_peer(self, alice, bob, tmp_path):
        carol = IdentityKeystore(tmp_path / "carol.json")
        carol.ensure_key_pair()
        assert derive_shared_key(alice, bob.public_key_encoded()) != derive_shared_key(alice, carol.public_key_encoded())

    def test_not_raw_ecdh_output(self, alice, bob):
        from e2ee.primitive import dh, x25519_pub_from_b64
        raw = dh(alice.private_key(), x25519_pub_from_b64(bob.public_key_encoded()))
        assert derive_shared_key(alice, bob.public_key_encoded()) != raw

    @pytest.mark.parametrize("bad", ["", "not-base64!!", base64.b64encode(b"short").decode(), base64.b64encode(b"\x00" * 32).decode()])
    def test_malformed_peer_key(self, alice, bad):
        with pytest.raises(AgreementFailure):
            derive_shared_key(alice, bad)


class TestResolve:
    def test_resolve_is_symmetric_across_devices(self, alice, bob):
        async def run():
            a = SharedSecretCache(alice, FakeDirectory({"bob": bob.public_key_encoded()}))
            b = SharedSecretCache(bob, FakeDirectory({"alice": alice.public_key_encoded()}))
            assert await a.resolve("bob")
            assert await b.resolve("alice")
            return a.get("bob"), b.get("alice")

        k1, k2 = asyncio.run(run())
        assert k1 == k2

    def test_second_resolve_uses_cache(self, alice, bob):
        directory = FakeDirectory({"bob": bob.public_key_encoded()})
        cache = SharedSecretCache(alice, directory)

        async def run():
            assert await cache.resolve("bob")
            first = cache.get("bob")
            assert await cache.resolve("bob")
            return first

        first = asyncio.run(run())
        assert directory.fetches == ["bob"]
        assert cache.get("bob") == first
        assert cache.has("bob")

    def test_concurrent_resolves_single_fetch(self, alice, bob):
        directory = FakeDirectory({"bob": bob.public_key_encoded()}, delay=0.05)
        cache = SharedSecretCache(alice, directory)

        async def run():
            return await asyncio.gather(*(cache.resolve("bob") for _ in range(10)))

        assert asyncio.run(run()) == [True] * 10
        assert directory.fetches == ["bob"]

    def test_concurrent_failure_shared(self, alice):
        directory = FakeDirectory({}, delay=0.05)
        cache = SharedSecretCache(alice, directory)

        async def run():
            return await asyncio.gather(*(cache.resolve("ghost") for _ in range(5)))

        assert asyncio.run(run()) == [False] * 5
        assert directory.fetches == ["ghost"]
        assert not cache.has("ghost")

    def test_failure_caches_nothing_and_later_call_refetches(self, alice, bob):
        directory = FakeDirectory({})
        cache = SharedSecretCache(alice, directory)

        async def run():
            assert await cache.resolve("bob") is False
            directory.keys["bob"] = bob.public_key_encoded()
            return await cache.resolve("bob")

        assert asyncio.run(run()) is True
        assert directory.fetches == ["bob", "bob"]

    def test_malformed_directory_key(self, alice):
        cache = SharedSecretCache(alice, FakeDirectory({"bob": "@@@"}))
        assert asyncio.run(cache.resolve("bob")) is False
        assert not cache.has("bob")

    def test_no_local_key(self, tmp_path, bob):
        empty = IdentityKeystore(tmp_path / "missing.json")
        cache = SharedSecretCache(empty, FakeDirectory({"bob": bob.public_key_encoded()}))
        assert asyncio.run(cache.resolve("bob")) is False

    def test_cancelled_waiter_leaves_cache_consistent(self, alice, bob):
        directory = FakeDirectory({"bob": bob.public_key_encoded()}, delay=0.05)
        cache = SharedSecretCache(alice, directory)

        async def run():
            waiter = asyncio.ensure_future(cache.resolve("bob"))
            await asyncio.sleep(0.01)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            # the shared derivation still completes and is reused
            return await cache.resolve("bob")

        assert asyncio.run(run()) is True
        assert directory.fetches == ["bob"]


class TestServiceTeardown:
    def test_delete_key_pair_clears_secrets(self, alice, bob):
        service = E2EEService(alice, FakeDirectory({"bob": bob.public_key_encoded()}))
        assert asyncio.run(service.resolve("bob"))
        assert service.has_shared_secret("bob")

        service.delete_key_pair()
        assert not service.has_shared_secret("bob")
        assert service.public_key_encoded() is None

    def test_encrypt_decrypt_between_services(self, alice, bob):
        a = E2EEService(alice, FakeDirectory({"bob": bob.public_key_encoded()}))
        b = E2EEService(bob, FakeDirectory({"alice": alice.public_key_encoded()}))

        async def run():
            await a.resolve("bob")
            await b.resolve("alice")

        asyncio.run(run())
        blob = a.encrypt("hi bob", "bob")
        assert b.decrypt(blob, "alice") == "hi bob"


def _directory(handler) -> KeyDirectoryClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://relay")
    return KeyDirectoryClient(http)


class TestDirectoryClient:
    def test_fetch_ok(self):
        def handler(request):
            assert request.url.path == "/keys/bob@example.com"
            return httpx.Response(200, json={"email": "bob@example.com", "publicKey": "QUJD"})

        assert asyncio.run(_directory(handler).fetch("bob@example.com")) == "QUJD"

    @pytest.mark.parametrize("status", [403, 404, 500])
    def test_fetch_http_errors(self, status):
        directory = _directory(lambda request: httpx.Response(status, json={"error": "x"}))
        with pytest.raises(PeerKeyNotFound):
            asyncio.run(directory.fetch("bob"))

    def test_fetch_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(PeerKeyNotFound):
            asyncio.run(_directory(handler).fetch("bob"))

    def test_fetch_oversized_key(self):
        directory = _directory(lambda request: httpx.Response(200, json={"publicKey": "A" * 500}))
        with pytest.raises(PeerKeyNotFound):
            asyncio.run(directory.fetch("bob"))

    def test_publish_best_effort(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert asyncio.run(_directory(handler).publish("QUJD")) is False

    def test_publish_sends_key(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = request.content
            return httpx.Response(200, json={"status": "Key stored"})

        assert asyncio.run(_directory(handler).publish("QUJD")) is True
        assert seen["method"] == "PUT"
        assert b'"publicKey"' in seen["body"]
