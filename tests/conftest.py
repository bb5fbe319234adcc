"""Shared fixtures: an in-memory stand-in for the motor collection and an API client.

The fake implements only the collection methods the service layer calls
(``insert_one``, ``insert_many``, ``find``, ``delete_many``) with the same
async shapes motor exposes, so tests run without a MongoDB server.
"""

from __future__ import annotations

import copy
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from routes import get_transactions_collection


class _Cursor:
    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self._docs = docs

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield doc


class FakeCollection:
    """Async in-memory collection. ``fail_after`` makes insert_many break part way."""

    def __init__(self, name: str = "transactions") -> None:
        self.name = name
        self.docs: list[dict[str, Any]] = []
        self.fail_after: int | None = None
        self.fail_all = False
        self.calls: list[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_all:
            raise RuntimeError(f"connection refused during {op}")

    async def insert_one(self, doc: dict[str, Any]):
        self._check("insert_one")
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def insert_many(self, docs: list[dict[str, Any]], ordered: bool = True):
        self._check("insert_many")
        inserted = []
        for i, doc in enumerate(docs):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("batch op errors occurred")
            self.docs.append(copy.deepcopy(doc))
            inserted.append(doc["_id"])
        return SimpleNamespace(inserted_ids=inserted)

    def find(self, filter: dict[str, Any] | None = None):
        self._check("find")
        return _Cursor([copy.deepcopy(d) for d in self.docs])

    async def delete_many(self, filter: dict[str, Any]):
        self.calls.append("delete_many")
        if self.fail_all:
            raise RuntimeError("connection refused during delete_many")
        if not filter:
            removed = len(self.docs)
            self.docs = []
        else:
            ids = set(filter["_id"]["$in"])
            kept = [d for d in self.docs if d["_id"] not in ids]
            removed = len(self.docs) - len(kept)
            self.docs = kept
        return SimpleNamespace(deleted_count=removed)


@pytest.fixture
def collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def settings() -> Settings:
    return Settings(mongodb_uri="mongodb://unused:27017", max_upload_size=64 * 1024)


@pytest.fixture
def client(collection: FakeCollection, settings: Settings) -> TestClient:
    app = create_app(settings)
    app.dependency_overrides[get_transactions_collection] = lambda: collection
    # Not entered as a context manager, so the lifespan never dials MongoDB
    return TestClient(app)
