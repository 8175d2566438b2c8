import asyncio

import pytest
from fastapi.testclient import TestClient

from e2ee.errors import PeerKeyNotFound
from relay import config, db
from relay.auth import create_access_token
from relay.main import app

OPERATOR = config.OPERATOR_IDENTITY


def auth(identity: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(identity)}"}


class FakeDirectory:
    """In-memory key directory that counts fetches."""

    def __init__(self, keys=None, delay: float = 0.0):
        self.keys = dict(keys or {})
        self.delay = delay
        self.fetches = []

    async def fetch(self, peer_identity: str) -> str:
        self.fetches.append(peer_identity)
        if self.delay:
            await asyncio.sleep(self.delay)
        if peer_identity not in self.keys:
            raise PeerKeyNotFound(peer_identity)
        return self.keys[peer_identity]

    async def publish(self, public_key_b64: str) -> bool:
        return True


@pytest.fixture
def database_url(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}"
    db.configure(url)
    return url


@pytest.fixture
def client(database_url):
    with TestClient(app) as c:
        yield c
