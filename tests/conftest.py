# SPDX-License-Identifier: MIT
# Copyright (c) 2025 docquery contributors

"""Shared fixtures for query engine tests."""

import threading
from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from docquery.storage import InMemoryQueryStore, QueryStore


class RecordingStore(QueryStore):
    """Store stub that records calls and returns canned results."""

    def __init__(self, records=None, total=0, error=None):
        self.records = records or []
        self.total = total
        self.error = error
        self.calls = []

    def _record(self, name, **kwargs):
        self.calls.append((name, threading.current_thread().name, kwargs))
        if self.error is not None:
            raise self.error

    def connect(self):
        pass

    def disconnect(self):
        pass

    def insert_document(self, collection, doc):
        return "id"

    def find(self, collection, filter_expr, sort=None, projection=None, skip=0, limit=None, session=None):
        self._record(
            "find", collection=collection, filter=filter_expr, sort=sort,
            projection=projection, skip=skip, limit=limit, session=session,
        )
        return list(self.records)

    def count(self, collection, filter_expr, session=None):
        self._record("count", collection=collection, filter=filter_expr, session=session)
        return self.total

    def run_pipeline(self, collection, stages, session=None):
        self._record("run_pipeline", collection=collection, stages=tuple(stages), session=session)
        return list(self.records)

    def start_session(self):
        return object()

    def call(self, name):
        return next(call for call in self.calls if call[0] == name)


@pytest.fixture
def recording_store():
    return RecordingStore()


USER_IDS = [ObjectId() for _ in range(3)]


@pytest.fixture
def seeded_store():
    """In-memory store with 12 active/pending orders, 3 closed ones and users."""
    store = InMemoryQueryStore()
    store.connect()

    store.insert_document("users", {"_id": USER_IDS[0], "email": "ada@example.com", "role": "admin"})
    store.insert_document("users", {"_id": USER_IDS[1], "email": "bob@example.com", "role": "member"})

    start = datetime(2024, 1, 1)
    for i in range(15):
        status = ("active", "pending", "closed")[i % 3] if i < 9 else ("active", "pending")[i % 2]
        store.insert_document("orders", {
            "_id": f"order-{i:02d}",
            "status": status,
            "userId": USER_IDS[i % 3],
            "total": 10 * (i + 1),
            "createdAt": start + timedelta(days=i),
        })
    return store


@pytest.fixture
def user_ids():
    return list(USER_IDS)


@pytest.fixture
def make_recording_store():
    return RecordingStore
