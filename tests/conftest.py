# tests/conftest.py
import logging
from typing import Any, Dict, List, Optional, Tuple

import pytest

from docquery.base.interfaces import Collection
from docquery.config import settings

# Silence verbose loggers
logging.getLogger("pymongo").setLevel(logging.ERROR)
logging.getLogger("motor").setLevel(logging.ERROR)


# --- Test doubles ---


class RecordingCollection(Collection):
    """Async Collection that records every call and returns canned results."""

    def __init__(self, name: str = "things", results: Optional[Dict[str, Any]] = None, error: Exception = None):
        self._name = name
        self.results = results or {}
        self.error = error
        self.calls: List[Tuple[str, tuple]] = []

    @property
    def name(self) -> str:
        return self._name

    async def _record(self, method: str, *args):
        self.calls.append((method, args))
        if self.error is not None:
            raise self.error
        return self.results.get(method)

    async def find(self, filter, options):
        return await self._record("find", filter, options)

    def find_cursor(self, filter, options):
        self.calls.append(("find_cursor", (filter, options)))
        return iter(self.results.get("find_cursor", []))

    async def find_one(self, filter, options):
        return await self._record("find_one", filter, options)

    async def count(self, filter, options):
        return await self._record("count", filter, options)

    async def distinct(self, field, filter, options):
        return await self._record("distinct", field, filter, options)

    async def update_one(self, filter, update, options):
        return await self._record("update_one", filter, update, options)

    async def update_many(self, filter, update, options):
        return await self._record("update_many", filter, update, options)

    async def replace_one(self, filter, replacement, options):
        return await self._record("replace_one", filter, replacement, options)

    async def delete_one(self, filter, options):
        return await self._record("delete_one", filter, options)

    async def delete_many(self, filter, options):
        return await self._record("delete_many", filter, options)

    async def find_one_and_update(self, filter, update, options):
        return await self._record("find_one_and_update", filter, update, options)

    async def find_one_and_delete(self, filter, options):
        return await self._record("find_one_and_delete", filter, options)


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def __iter__(self):
        return iter(self._docs)


class FakeAsyncCursor(FakeCursor):
    async def to_list(self, length):
        return list(self._docs)


class FakeDriverCollection:
    """
    Stands in for a pymongo Collection: records the driver calls made by
    MongoCollection. ``asynchronous=True`` makes every method return a
    coroutine and cursors expose an async ``to_list`` like Motor.
    """

    def __init__(self, name="things", docs=None, asynchronous=False, error=None, derived_with=None, calls=None):
        self.name = name
        self.docs = docs if docs is not None else [{"_id": 1}, {"_id": 2}]
        self.asynchronous = asynchronous
        self.error = error
        self.derived_with = derived_with or {}
        self.calls = calls if calls is not None else []

    def with_options(self, **kwargs):
        return FakeDriverCollection(
            self.name, self.docs, self.asynchronous, self.error, kwargs, self.calls
        )

    def _result(self, method, args, kwargs, value):
        self.calls.append((method, args, kwargs, self.derived_with))
        if self.error is not None:
            if self.asynchronous:
                return self._raise_async()
            raise self.error
        if self.asynchronous:
            return self._wrap(value)
        return value

    async def _wrap(self, value):
        return value

    async def _raise_async(self):
        raise self.error

    def find(self, *args, **kwargs):
        self.calls.append(("find", args, kwargs, self.derived_with))
        if self.error is not None:
            raise self.error
        return FakeAsyncCursor(self.docs) if self.asynchronous else FakeCursor(self.docs)

    def find_one(self, *args, **kwargs):
        return self._result("find_one", args, kwargs, self.docs[0] if self.docs else None)

    def count_documents(self, *args, **kwargs):
        return self._result("count_documents", args, kwargs, len(self.docs))

    def distinct(self, *args, **kwargs):
        return self._result("distinct", args, kwargs, [d["_id"] for d in self.docs])

    def update_one(self, *args, **kwargs):
        return self._result("update_one", args, kwargs, "updated-one")

    def update_many(self, *args, **kwargs):
        return self._result("update_many", args, kwargs, "updated-many")

    def replace_one(self, *args, **kwargs):
        return self._result("replace_one", args, kwargs, "replaced")

    def delete_one(self, *args, **kwargs):
        return self._result("delete_one", args, kwargs, "deleted-one")

    def delete_many(self, *args, **kwargs):
        return self._result("delete_many", args, kwargs, "deleted-many")

    def find_one_and_update(self, *args, **kwargs):
        return self._result("find_one_and_update", args, kwargs, {"_id": 1, "updated": True})

    def find_one_and_delete(self, *args, **kwargs):
        return self._result("find_one_and_delete", args, kwargs, {"_id": 1})


# --- Fixtures ---


@pytest.fixture(autouse=True)
def restore_settings():
    """Global settings are process-wide; put them back after every test."""
    saved = (settings.use_geo_within, settings.trace_function)
    yield settings
    settings.use_geo_within, settings.trace_function = saved


@pytest.fixture
def recording_collection() -> RecordingCollection:
    return RecordingCollection()


@pytest.fixture
def driver_collection() -> FakeDriverCollection:
    return FakeDriverCollection()


@pytest.fixture
def async_driver_collection() -> FakeDriverCollection:
    return FakeDriverCollection(asynchronous=True)


@pytest.fixture
def make_recording_collection():
    return RecordingCollection


@pytest.fixture
def make_driver_collection():
    return FakeDriverCollection
