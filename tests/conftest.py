"""Shared fixtures: a controllable clock and in-memory stores."""

from datetime import datetime, timedelta, timezone

import pytest

from exam_prep.auth.identity import Identity
from exam_prep.errors import TransientWriteError
from exam_prep.storage.documents import InMemoryDocumentStore
from exam_prep.users.provisioning import ensure_user_record

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FlakyStore(InMemoryDocumentStore):
    """In-memory store whose next ``fail_writes`` writes raise."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = 0
        self.write_attempts = 0

    def set_document(self, collection, doc_id, data, merge=False):
        self.write_attempts += 1
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise TransientWriteError(collection, doc_id)
        super().set_document(collection, doc_id, data, merge=merge)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def make_user(clock):
    """Provision a user in the given store and return its uid."""

    def _make_user(target_store, uid="alice", email="alice@example.com"):
        ensure_user_record(target_store, Identity(uid=uid, email=email), now=clock())
        return uid

    return _make_user
