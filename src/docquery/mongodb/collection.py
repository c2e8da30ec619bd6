# src/docquery/mongodb/collection.py

import inspect
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple

# --- Motor / PyMongo Driver Imports ---
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import CursorType, ReadPreference, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

# --- Framework Imports ---
from docquery.base.exceptions import InvalidArgumentError
from docquery.base.interfaces import Collection, Document, Options
from docquery.base.options import expand_read_preference
from docquery.base.shapes import looks_like_collection

_READ_PREFERENCES = {
    "primary": ReadPreference.PRIMARY,
    "primaryPreferred": ReadPreference.PRIMARY_PREFERRED,
    "secondary": ReadPreference.SECONDARY,
    "secondaryPreferred": ReadPreference.SECONDARY_PREFERRED,
    "nearest": ReadPreference.NEAREST,
}

# Query option name -> driver keyword, per driver method.
_FIND_KWARGS = {
    "limit": "limit",
    "skip": "skip",
    "sort": "sort",
    "batch_size": "batch_size",
    "hint": "hint",
    "max_time_ms": "max_time_ms",
    "collation": "collation",
    "comment": "comment",
    "allow_disk_use": "allow_disk_use",
    "no_cursor_timeout": "no_cursor_timeout",
}
_COUNT_KWARGS = {
    "skip": "skip",
    "limit": "limit",
    "hint": "hint",
    "max_time_ms": "maxTimeMS",
    "collation": "collation",
    "comment": "comment",
}
_DISTINCT_KWARGS = {
    "max_time_ms": "maxTimeMS",
    "collation": "collation",
    "comment": "comment",
}
_UPDATE_KWARGS = {
    "upsert": "upsert",
    "collation": "collation",
    "array_filters": "array_filters",
    "hint": "hint",
    "comment": "comment",
    "bypass_document_validation": "bypass_document_validation",
}
_REPLACE_KWARGS = {k: v for k, v in _UPDATE_KWARGS.items() if k != "array_filters"}
_DELETE_KWARGS = {
    "collation": "collation",
    "hint": "hint",
    "comment": "comment",
}
_FIND_AND_MODIFY_KWARGS = {
    "sort": "sort",
    "hint": "hint",
    "collation": "collation",
    "comment": "comment",
    "max_time_ms": "maxTimeMS",
}
_FIND_AND_UPDATE_KWARGS = {
    **_FIND_AND_MODIFY_KWARGS,
    "upsert": "upsert",
    "array_filters": "array_filters",
}

# Server-side features removed from current MongoDB releases.
_UNSUPPORTED = ("snapshot", "max_scan")


def resolve_read_preference(pref: Any) -> Any:
    """Maps a read preference name or alias to a pymongo read preference."""
    if isinstance(pref, str):
        mode = _READ_PREFERENCES.get(expand_read_preference(pref))
        if mode is None:
            raise InvalidArgumentError(f"Unknown read preference: {pref!r}")
        return mode
    return pref


def sort_list(sort: Any) -> List[Tuple[str, Any]]:
    """pymongo takes sort and hint specs as lists of (key, direction) pairs."""
    if isinstance(sort, Mapping):
        return list(sort.items())
    return [tuple(pair) for pair in sort]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class MongoCollection(Collection):
    """
    Executes queries against a Motor or PyMongo collection.

    Works with ``motor.motor_asyncio.AsyncIOMotorCollection``,
    ``pymongo.asynchronous.collection.AsyncCollection`` and the synchronous
    ``pymongo.collection.Collection`` (whose calls then block the loop).
    Read preference, read concern and write concern options are applied by
    deriving a collection with ``with_options``.
    """

    def __init__(self, collection: Any):
        if not looks_like_collection(collection):
            raise TypeError(
                "collection must provide find(), update_one() and delete_many()"
            )
        self._collection = collection
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}[{self.name}]")
        self._logger.debug(
            f"Bound {'Motor' if self.is_motor else type(collection).__name__} "
            f"collection '{self.name}'"
        )

    @classmethod
    def from_client(
        cls, client: AsyncIOMotorClient, database_name: str, collection_name: str
    ) -> "MongoCollection":
        if not isinstance(client, AsyncIOMotorClient):
            raise TypeError("client must be an instance of AsyncIOMotorClient")
        return cls(client[database_name][collection_name])

    @property
    def collection(self) -> Any:
        return self._collection

    @property
    def name(self) -> Optional[str]:
        return getattr(self._collection, "name", None)

    @property
    def is_motor(self) -> bool:
        return isinstance(self._collection, AsyncIOMotorCollection)

    # --- Option translation ---

    def _kwargs(self, options: Options, names: Dict[str, str]) -> Dict[str, Any]:
        for name in _UNSUPPORTED:
            if options.get(name):
                self._logger.warning(f"Ignoring unsupported option '{name}'")

        kwargs = {}
        for name, keyword in names.items():
            value = options.get(name)
            if value is None:
                continue
            if name in ("sort", "hint") and not isinstance(value, str):
                value = sort_list(value)
            kwargs[keyword] = value
        return kwargs

    def _target(self, options: Options) -> Any:
        """The bound collection, re-derived with any read/write settings."""
        derived = {}

        pref = options.get("read_preference")
        if pref is None and options.get("slave_ok"):
            pref = "secondaryPreferred"
        if pref is not None:
            derived["read_preference"] = resolve_read_preference(pref)

        read_concern = options.get("read_concern")
        if read_concern:
            level = read_concern.get("level") if isinstance(read_concern, Mapping) else read_concern
            derived["read_concern"] = ReadConcern(level)

        write_concern = {k: options[k] for k in ("w", "j", "wtimeout") if options.get(k) is not None}
        if write_concern:
            derived["write_concern"] = WriteConcern(**write_concern)

        if not derived:
            return self._collection
        if not callable(getattr(self._collection, "with_options", None)):
            self._logger.warning(
                f"Collection has no with_options(); ignoring {sorted(derived)}"
            )
            return self._collection
        return self._collection.with_options(**derived)

    def _find_kwargs(self, options: Options) -> Dict[str, Any]:
        kwargs = self._kwargs(options, _FIND_KWARGS)
        if options.get("tailable"):
            kwargs["cursor_type"] = CursorType.TAILABLE
        return kwargs

    @staticmethod
    def _return_document(options: Options) -> Optional[bool]:
        value = options.get("return_document")
        if isinstance(value, str):
            return ReturnDocument.AFTER if value.lower() == "after" else ReturnDocument.BEFORE
        if value is None and "new" in options:
            return ReturnDocument.AFTER if options["new"] else ReturnDocument.BEFORE
        return value

    # --- Error handling ---

    def _handle_db_error(self, error: Exception, context: str) -> None:
        if isinstance(error, DuplicateKeyError):
            self._logger.warning(f"Duplicate key during {context}: {error}")
        elif isinstance(error, PyMongoError):
            self._logger.error(f"MongoDB error during {context}: {error}", exc_info=True)
        else:
            self._logger.error(f"Unexpected error during {context}: {error}", exc_info=True)

    async def _call(self, context: str, method: str, options: Options, *args, **kwargs) -> Any:
        target = self._target(options)
        self._logger.debug(f"{method}{args!r} {kwargs!r}")
        try:
            return await _resolve(getattr(target, method)(*args, **kwargs))
        except Exception as error:
            self._handle_db_error(error, context)
            raise

    # --- Collection interface ---

    def find_cursor(self, filter: Document, options: Options) -> Any:
        target = self._target(options)
        return target.find(filter, options.get("projection"), **self._find_kwargs(options))

    async def find(self, filter: Document, options: Options) -> List[Document]:
        try:
            cursor = self.find_cursor(filter, options)
            to_list = getattr(cursor, "to_list", None)
            if callable(to_list):
                return await _resolve(to_list(None))
            return list(cursor)
        except Exception as error:
            self._handle_db_error(error, "find")
            raise

    async def find_one(self, filter: Document, options: Options) -> Optional[Document]:
        kwargs = self._find_kwargs(options)
        kwargs.pop("limit", None)
        return await self._call(
            "find_one", "find_one", options, filter, options.get("projection"), **kwargs
        )

    async def count(self, filter: Document, options: Options) -> int:
        kwargs = self._kwargs(options, _COUNT_KWARGS)
        # count_documents rejects $limit 0 and $skip 0 is meaningless
        for name in ("skip", "limit"):
            if not kwargs.get(name):
                kwargs.pop(name, None)
        return await self._call("count", "count_documents", options, filter, **kwargs)

    async def distinct(self, field: str, filter: Document, options: Options) -> List[Any]:
        kwargs = self._kwargs(options, _DISTINCT_KWARGS)
        return await self._call("distinct", "distinct", options, field, filter, **kwargs)

    async def update_one(self, filter: Document, update: Document, options: Options) -> Any:
        kwargs = self._kwargs(options, _UPDATE_KWARGS)
        return await self._call("update_one", "update_one", options, filter, update, **kwargs)

    async def update_many(self, filter: Document, update: Document, options: Options) -> Any:
        kwargs = self._kwargs(options, _UPDATE_KWARGS)
        return await self._call("update_many", "update_many", options, filter, update, **kwargs)

    async def replace_one(self, filter: Document, replacement: Document, options: Options) -> Any:
        kwargs = self._kwargs(options, _REPLACE_KWARGS)
        return await self._call(
            "replace_one", "replace_one", options, filter, replacement, **kwargs
        )

    async def delete_one(self, filter: Document, options: Options) -> Any:
        kwargs = self._kwargs(options, _DELETE_KWARGS)
        return await self._call("delete_one", "delete_one", options, filter, **kwargs)

    async def delete_many(self, filter: Document, options: Options) -> Any:
        kwargs = self._kwargs(options, _DELETE_KWARGS)
        return await self._call("delete_many", "delete_many", options, filter, **kwargs)

    async def find_one_and_update(
        self, filter: Document, update: Document, options: Options
    ) -> Optional[Document]:
        kwargs = self._kwargs(options, _FIND_AND_UPDATE_KWARGS)
        if options.get("projection") is not None:
            kwargs["projection"] = options["projection"]
        return_document = self._return_document(options)
        if return_document is not None:
            kwargs["return_document"] = return_document
        return await self._call(
            "find_one_and_update", "find_one_and_update", options, filter, update, **kwargs
        )

    async def find_one_and_delete(self, filter: Document, options: Options) -> Optional[Document]:
        kwargs = self._kwargs(options, _FIND_AND_MODIFY_KWARGS)
        if options.get("projection") is not None:
            kwargs["projection"] = options["projection"]
        return await self._call(
            "find_one_and_delete", "find_one_and_delete", options, filter, **kwargs
        )
