"""
Shared fixtures and fakes for the aftercare test suite.

Run from project root:
    pytest tests/ -v
"""

import fnmatch
from datetime import datetime, timedelta, timezone

import pytest
import redis

from client.storage import MemoryStorage


class StepClock:
    """Deterministic clock: each call returns a time one step later."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.current = start or datetime(2025, 1, 25, 10, 0, 0, tzinfo=timezone.utc)
        self.step = step
        self.calls = 0

    def __call__(self):
        value = self.current
        self.current = self.current + self.step
        self.calls += 1
        return value


class CountingStorage(MemoryStorage):
    """MemoryStorage that records every write."""

    def __init__(self, quota_bytes=None):
        super().__init__(quota_bytes=quota_bytes)
        self.writes = []

    def set_item(self, key, value):
        self.writes.append(key)
        super().set_item(key, value)


class FakeRedis:
    """Just enough of redis.Redis for ResponseCache."""

    def __init__(self, fail=False):
        self.store = {}
        self.ttls = {}
        self.fail = fail
        self.closed = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("Connection refused")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match='*'):
        self._check()
        return [key for key in list(self.store) if fnmatch.fnmatch(key, match)]

    def close(self):
        self.closed = True


class FakeInsertResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


class FakeCursor:
    def __init__(self, documents):
        self.documents = list(documents)

    def sort(self, key, direction):
        self.documents.sort(key=lambda doc: doc[key], reverse=direction < 0)
        return self

    def skip(self, count):
        self.documents = self.documents[count:]
        return self

    def limit(self, count):
        if count:
            self.documents = self.documents[:count]
        return self

    def __iter__(self):
        return iter(self.documents)


class FakeCollection:
    """Just enough of a pymongo Collection for TrackerRepository."""

    def __init__(self):
        self.documents = []
        self.indexes = []
        self._next_id = 1

    def create_index(self, keys):
        self.indexes.append(keys)
        return '_'.join(f"{name}_{direction}" for name, direction in keys)

    def insert_one(self, document):
        document = dict(document)
        document['_id'] = f"id-{self._next_id}"
        self._next_id += 1
        self.documents.append(document)
        return FakeInsertResult(document['_id'])

    def find(self, query):
        return FakeCursor(
            doc for doc in self.documents
            if all(doc.get(key) == value for key, value in query.items())
        )


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def storage():
    return CountingStorage()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_collection():
    return FakeCollection()
