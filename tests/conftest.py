"""
Pytest configuration and shared fixtures for the StreamHub API tests.

The app talks to Motor; tests hand it an in-memory mongomock database wrapped
so that every call Motor would await can be awaited.
"""

import os

# Settings are read at import time
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("SECRET_KEY", "test-access-secret")
os.environ.setdefault("REFRESH_SECRET_KEY", "test-refresh-secret")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["COOKIE_SECURE"] = "false"

import asyncio
import io
from typing import Dict, List, Optional

import mongomock
import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.database import ensure_indexes, get_database
from app.utils.deletion_queue import get_deletion_queue
from app.utils.storage import get_storage

API = "/api/v1"


class AsyncCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    async def to_list(self, length: Optional[int] = None) -> List[dict]:
        items = list(self._cursor)
        return items if length is None else items[:length]


class AsyncCollection:
    """Awaitable facade over a mongomock collection, shaped like Motor's"""

    def __init__(self, collection):
        self._collection = collection

    def find(self, *args, **kwargs) -> AsyncCursor:
        return AsyncCursor(self._collection.find(*args, **kwargs))

    def aggregate(self, pipeline, **kwargs) -> AsyncCursor:
        return AsyncCursor(self._collection.aggregate(pipeline, **kwargs))

    def __getattr__(self, name):
        method = getattr(self._collection, name)

        async def call(*args, **kwargs):
            return method(*args, **kwargs)

        return call


class AsyncDatabase:
    def __init__(self, database):
        self._database = database

    def __getitem__(self, name) -> AsyncCollection:
        return AsyncCollection(self._database[name])

    def __getattr__(self, name) -> AsyncCollection:
        return self[name]

    async def command(self, command, **kwargs):
        return self._database.command(command, **kwargs)


class FakeStorage:
    """Records uploads and deletions instead of talking to S3"""

    def __init__(self):
        self.uploads: List[str] = []
        self.deleted: List[str] = []
        self.fail_uploads = False

    async def upload_file(self, file_data: bytes, filename: str, content_type: str) -> Optional[str]:
        if not file_data or self.fail_uploads:
            return None
        url = f"https://cdn.test/{len(self.uploads)}_{filename}"
        self.uploads.append(url)
        return url

    async def delete_file(self, file_url: str) -> bool:
        self.deleted.append(file_url)
        return True


class RecordingQueue:
    def __init__(self):
        self.queued: List[str] = []

    async def add_to_queue(self, file_url: Optional[str]):
        if file_url:
            self.queued.append(file_url)


@pytest.fixture
def mongo_db() -> AsyncDatabase:
    database = AsyncDatabase(mongomock.MongoClient().db)
    asyncio.run(ensure_indexes(database))
    return database


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def client(mongo_db: AsyncDatabase, storage: FakeStorage, queue: RecordingQueue) -> TestClient:
    """
    Test client with the database, storage and deletion queue swapped out.
    Used without its context manager so the real lifespan never connects.
    """
    app.dependency_overrides[get_database] = lambda: mongo_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_deletion_queue] = lambda: queue

    yield TestClient(app)

    app.dependency_overrides.clear()


def image_file(name: str = "avatar.png"):
    return (name, io.BytesIO(b"\x89PNG fake image"), "image/png")


def video_file(name: str = "clip.mp4"):
    return (name, io.BytesIO(b"\x00\x00\x00 fake video"), "video/mp4")


def register(client: TestClient, username: str, password: str = "secret123", **extra):
    data = {
        "username": username,
        "email": f"{username}@example.com",
        "full_name": f"{username.title()} Tester",
        "password": password,
    }
    data.update(extra)
    return client.post(f"{API}/users/register", data=data, files={"avatar": image_file()})


def login(client: TestClient, username: str, password: str = "secret123"):
    response = client.post(f"{API}/users/login", json={"username": username, "password": password})
    # Keep callers on explicit Bearer headers
    client.cookies.clear()
    return response


def auth_headers(client: TestClient, username: str, password: str = "secret123") -> Dict[str, str]:
    token = login(client, username, password).json()["data"]["accessToken"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice(client: TestClient) -> dict:
    """Registered user with auth headers and id"""
    user = register(client, "alice").json()["data"]
    return {"id": user["_id"], "headers": auth_headers(client, "alice")}


@pytest.fixture
def bob(client: TestClient) -> dict:
    user = register(client, "bob").json()["data"]
    return {"id": user["_id"], "headers": auth_headers(client, "bob")}


def publish_video(client: TestClient, headers: dict, title: str = "My first video", **fields) -> dict:
    data = {"title": title, "description": f"About {title}", "duration": "12.5"}
    data.update(fields)
    response = client.post(
        f"{API}/videos/",
        data=data,
        files={"video_file": video_file(), "thumbnail": image_file("thumb.png")},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]
