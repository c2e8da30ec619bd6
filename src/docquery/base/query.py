# src/docquery/base/query.py
import logging
from collections.abc import Mapping, MutableMapping
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

from docquery.config import settings
from docquery.mongodb.collection import MongoCollection

from .arguments import (
    ArgShape,
    CallArgs,
    classify_distinct,
    classify_elem_match,
    classify_exists,
    classify_mod,
    classify_operator,
    classify_update,
)
from .dispatch import dispatch
from .exceptions import InvalidArgumentError, UsageError
from .geo import GeoMixin
from .interfaces import Collection
from .merge import QueryFactory, check_mergeable, merge_state
from .options import OptionsMixin
from .permissions import check_permitted, validate
from .projection import ProjectionMixin, check_projection
from .shapes import is_sequence, looks_like_collection
from .spec import QuerySpec, compile_update
from .utils import clone, merge_clone, prepare_for_storage

# --- Setup Logging ---
log = logging.getLogger(__name__)

QUERY_OPS = (
    "find",
    "find_one",
    "count",
    "distinct",
    "update_one",
    "update_many",
    "replace_one",
    "remove",
    "delete_one",
    "delete_many",
    "find_one_and_update",
    "find_one_and_remove",
)

# set_options() key -> method called with the value
_OPTION_METHODS = {
    "collection": "collection",
    "select": "select",
    "slice": "slice",
    "sort": "sort",
    "limit": "limit",
    "skip": "skip",
    "batch_size": "batch_size",
    "max_scan": "max_scan",
    "comment": "comment",
    "max_time_ms": "max_time_ms",
    "max_time": "max_time_ms",
    "snapshot": "snapshot",
    "hint": "hint",
    "tailable": "tailable",
    "slave_ok": "slave_ok",
    "read": "read",
    "read_concern": "read_concern",
    "write_concern": "write_concern",
    "w": "write_concern",
    "j": "j",
    "wtimeout": "wtimeout",
    "collation": "collation",
    "trace_function": "set_trace_function",
}

# Builder state captured by to_constructor()
_STATE_ATTRS = (
    "_op",
    "_conditions",
    "_fields",
    "_update",
    "_options",
    "_path",
    "_distinct",
    "_geo_comparison",
)


class Query(GeoMixin, ProjectionMixin, OptionsMixin):
    """
    Fluent builder for MongoDB queries.

    Calls accumulate filter conditions, a projection, an update document
    and execution options. Nothing touches the database until the query is
    executed with ``await query`` or ``await query.exec()``::

        docs = await Query(collection).find().where("age").gte(21).sort("-age").limit(10)

    Args:
        criteria: A filter mapping or another Query to merge (binds the
            ``find`` operation), or a collection to bind.
        options: A mapping passed to ``set_options()``.
    """

    def __init__(self, criteria: Any = None, options: Optional[Mapping[str, Any]] = None):
        self._op: Optional[str] = None
        self._conditions: Dict[str, Any] = {}
        self._fields: Optional[Dict[str, Any]] = None
        self._update: Optional[Dict[str, Any]] = None
        self._options: Dict[str, Any] = {}
        self._path: Optional[str] = None
        self._distinct: Optional[str] = None
        self._geo_comparison: Optional[str] = None
        self._collection: Optional[Collection] = None
        self._trace_function: Optional[Callable[..., Any]] = None

        if options:
            self.set_options(options)
        self._apply_criteria(criteria)

    def _apply_criteria(self, criteria: Any) -> None:
        if criteria is None:
            return
        if isinstance(criteria, (Query, Mapping)):
            self.find(criteria)
        elif isinstance(criteria, Collection) or looks_like_collection(criteria):
            self.collection(criteria)
        else:
            raise InvalidArgumentError("criteria must be a Query, a mapping or a collection")

    def __repr__(self) -> str:
        parts = [f"op={self._op!r}", f"conditions={self._conditions!r}"]
        if self._fields is not None:
            parts.append(f"fields={self._fields!r}")
        if self._update is not None:
            parts.append(f"update={self._update!r}")
        if self._options:
            parts.append(f"options={self._options!r}")
        return f"{type(self).__name__}({', '.join(parts)})"

    # --- State accessors ---

    @property
    def op(self) -> Optional[str]:
        return self._op

    @property
    def conditions(self) -> Dict[str, Any]:
        return self._conditions

    @property
    def fields(self) -> Optional[Dict[str, Any]]:
        return self._fields

    @property
    def update(self) -> Optional[Dict[str, Any]]:
        return self._update

    @property
    def options(self) -> Dict[str, Any]:
        return self._options

    @property
    def path(self) -> Optional[str]:
        return self._path

    @property
    def distinct_field(self) -> Optional[str]:
        return self._distinct

    @property
    def geo_comparison(self) -> Optional[str]:
        return self._geo_comparison

    @property
    def bound_collection(self) -> Optional[Collection]:
        return self._collection

    @property
    def trace_function(self) -> Optional[Callable[..., Any]]:
        return self._trace_function

    # --- Internal helpers ---

    def _ensure_path(self, method: str) -> None:
        if not self._path:
            raise UsageError(
                f"{method}() must be used after where() when called with these arguments"
            )

    def _resolve_path(self, method: str, call: CallArgs) -> str:
        if call.shape is ArgShape.PATH_AND_VALUE:
            if not isinstance(call.path, str):
                raise InvalidArgumentError(f"{method}() path must be a string")
            return call.path
        self._ensure_path(method)
        return self._path

    def _path_conditions(self, path: str) -> MutableMapping:
        """The operator mapping stored at ``path``, created if needed."""
        conds = self._conditions.get(path)
        if not isinstance(conds, MutableMapping):
            conds = self._conditions[path] = {}
        return conds

    def _operator(self, method: str, key: str, args: tuple):
        call = classify_operator(method, args)
        path = self._resolve_path(method, call)
        self._path_conditions(path)[key] = call.value
        return self

    def _check_permitted(self, action: str) -> None:
        check_permitted(action, self._op)

    def _validate(self) -> None:
        validate(self._op, self._fields, self._options)

    def _ensure_fields(self) -> Dict[str, Any]:
        if self._fields is None:
            self._fields = {}
        return self._fields

    def _check_criteria(self, criteria: Any) -> None:
        if criteria is None:
            return
        if not isinstance(criteria, (Query, Mapping)):
            raise InvalidArgumentError("Invalid criteria. Expected a Query or mapping")
        if isinstance(criteria, Query):
            check_mergeable(self, criteria)

    def _bind_op(self, op: str, criteria: Any = None) -> None:
        """Validates ``op`` against the current state, then binds it and merges ``criteria``."""
        self._check_criteria(criteria)
        validate(op, self._fields, self._options)
        self._op = op
        if criteria is not None:
            self.merge(criteria)

    @staticmethod
    def _update_document(doc: Any) -> Optional[Mapping[str, Any]]:
        """The mapping an update argument contributes; raises for anything else."""
        if doc is None:
            return None
        if isinstance(doc, Query):
            return doc._update or {}
        if not isinstance(doc, Mapping):
            doc = prepare_for_storage(doc)
            if not isinstance(doc, Mapping):
                raise InvalidArgumentError("Invalid update document. Expected a Query or mapping")
        return doc

    def _merge_update(self, doc: Optional[Mapping[str, Any]]) -> None:
        if doc is None:
            return
        if self._update is None:
            self._update = {}
        merge_clone(self._update, doc)

    def _snapshot_state(self) -> Dict[str, Any]:
        return {attr.lstrip("_"): clone(getattr(self, attr)) for attr in _STATE_ATTRS}

    def _restore_state(self, state: Mapping[str, Any]) -> None:
        for attr in _STATE_ATTRS:
            key = attr.lstrip("_")
            if key in state:
                setattr(self, attr, state[key])

    @contextmanager
    def _unchanged_on_error(self):
        """Puts the builder state back if the block raises."""
        saved = self._snapshot_state()
        collection, trace_function = self._collection, self._trace_function
        try:
            yield
        except Exception:
            self._restore_state(saved)
            self._collection, self._trace_function = collection, trace_function
            raise

    # --- Paths and conditions ---

    def where(self, *args):
        """
        Sets the active path, or merges conditions.

        ``where("age")`` makes ``age`` the path used by following operator
        calls, ``where("name", "bob")`` also sets an equality condition and
        ``where({"name": "bob"})`` merges a filter mapping (or another
        Query). Binds the ``find`` operation if none is set.
        """
        if not args:
            return self

        first = args[0]
        if isinstance(first, str):
            if len(args) > 2:
                raise InvalidArgumentError("where() takes a path and an optional value")
            self._path = first
            if len(args) == 2:
                self._conditions[first] = args[1]
        elif isinstance(first, (Query, Mapping)):
            self.merge(first)
        else:
            raise InvalidArgumentError("path must be a string or mapping")

        if not self._op:
            self._op = "find"
        return self

    def equals(self, value):
        self._ensure_path("equals")
        self._conditions[self._path] = value
        return self

    eq = equals

    def where_js(self, expression):
        """Adds a ``$where`` clause; strings and callables are stored as given."""
        self._conditions["$where"] = expression
        return self

    def _push_logical(self, key: str, clauses: Any):
        existing = self._conditions.get(key)
        if not isinstance(existing, list):
            existing = self._conditions[key] = []
        if is_sequence(clauses):
            existing.extend(clone(list(clauses)))
        else:
            existing.append(clone(clauses))
        return self

    def or_(self, clauses):
        return self._push_logical("$or", clauses)

    def and_(self, clauses):
        return self._push_logical("$and", clauses)

    def nor(self, clauses):
        return self._push_logical("$nor", clauses)

    # --- Comparison operators ---

    def gt(self, *args):
        return self._operator("gt", "$gt", args)

    def gte(self, *args):
        return self._operator("gte", "$gte", args)

    def lt(self, *args):
        return self._operator("lt", "$lt", args)

    def lte(self, *args):
        return self._operator("lte", "$lte", args)

    def ne(self, *args):
        return self._operator("ne", "$ne", args)

    def in_(self, *args):
        return self._operator("in_", "$in", args)

    def nin(self, *args):
        return self._operator("nin", "$nin", args)

    def all_(self, *args):
        return self._operator("all_", "$all", args)

    def regex(self, *args):
        return self._operator("regex", "$regex", args)

    def size(self, *args):
        return self._operator("size", "$size", args)

    def max_distance(self, *args):
        return self._operator("max_distance", "$maxDistance", args)

    def min_distance(self, *args):
        return self._operator("min_distance", "$minDistance", args)

    def mod(self, *args):
        """``mod(4, 0)`` or ``mod("n", [4, 0])``: matches ``n % 4 == 0``."""
        call = classify_mod(args)
        path = self._resolve_path("mod", call)
        self._path_conditions(path)["$mod"] = call.value
        return self

    def exists(self, *args):
        call = classify_exists(args)
        path = self._resolve_path("exists", call)
        self._path_conditions(path)["$exists"] = call.value
        return self

    def elem_match(self, *args):
        """
        Adds an ``$elemMatch`` condition.

        The criteria may be a mapping or a function receiving a fresh Query
        whose conditions become the criteria::

            q.where("comments").elem_match(lambda e: e.where("author").equals("x"))
        """
        call = classify_elem_match(args)
        path = self._resolve_path("elem_match", call)
        criteria = call.value
        if not isinstance(criteria, Mapping):
            nested = type(self)()
            criteria(nested)
            criteria = nested._conditions
        self._path_conditions(path)["$elemMatch"] = clone(dict(criteria))
        return self

    # --- Operations ---

    def find(self, criteria: Any = None):
        self._bind_op("find", criteria)
        return self

    def find_one(self, criteria: Any = None):
        self._bind_op("find_one", criteria)
        return self

    def count(self, criteria: Any = None):
        self._bind_op("count", criteria)
        return self

    def distinct(self, *args):
        """``distinct(field)``, ``distinct(criteria)`` or ``distinct(criteria, field)``."""
        call = classify_distinct(args)
        self._bind_op("distinct", call.criteria)
        if call.field is not None:
            self._distinct = call.field
        return self

    def _update_op(self, op: str, args: tuple):
        call = classify_update(op, args)
        doc = self._update_document(call.doc)
        with self._unchanged_on_error():
            self._bind_op(op, call.criteria)
            self._merge_update(doc)
            if call.options is not None:
                self.set_options(call.options)
        return self

    def update_one(self, *args):
        """
        Binds an ``update_one``: ``(doc)``, ``(criteria, doc)`` or
        ``(criteria, doc, options)``.

        Plain keys in ``doc`` are sent inside ``$set`` unless the
        ``overwrite`` option is set.
        """
        return self._update_op("update_one", args)

    def update_many(self, *args):
        return self._update_op("update_many", args)

    def replace_one(self, *args):
        """Like ``update_one()`` but ``doc`` replaces the matched document."""
        return self._update_op("replace_one", args)

    def remove(self, criteria: Any = None):
        self._bind_op("remove", criteria)
        return self

    def delete_one(self, criteria: Any = None):
        self._bind_op("delete_one", criteria)
        return self

    def delete_many(self, criteria: Any = None):
        self._bind_op("delete_many", criteria)
        return self

    def find_one_and_update(self, *args):
        """``(doc)``, ``(criteria, doc)`` or ``(criteria, doc, options)``."""
        return self._update_op("find_one_and_update", args)

    def find_one_and_remove(self, criteria: Any = None, options: Optional[Mapping[str, Any]] = None):
        with self._unchanged_on_error():
            self._bind_op("find_one_and_remove", criteria)
            if options is not None:
                self.set_options(options)
        return self

    find_one_and_delete = find_one_and_remove

    # --- Options, bindings and composition ---

    def set_options(self, options: Any):
        """
        Applies a mapping of options.

        Known keys go through their setter (``{"sort": "-age"}`` calls
        ``sort("-age")``); unknown keys such as ``upsert`` or ``overwrite``
        are stored as given.
        """
        if not isinstance(options, Mapping):
            return self
        for key, value in options.items():
            method = _OPTION_METHODS.get(key)
            if method is None:
                self._options[key] = value
            else:
                getattr(self, method)(value)
        return self

    def collection(self, coll: Any):
        """Binds the collection the query executes against."""
        if isinstance(coll, Collection):
            self._collection = coll
        elif looks_like_collection(coll):
            self._collection = MongoCollection(coll)
        else:
            raise InvalidArgumentError("collection must be a Collection or a driver collection")
        return self

    def set_trace_function(self, fn: Optional[Callable[..., Any]]):
        if fn is not None and not callable(fn):
            raise InvalidArgumentError("trace function must be callable")
        self._trace_function = fn
        return self

    def merge(self, source: Any):
        """
        Merges another Query or a filter mapping into this one.

        A mapping is assigned key by key into the conditions, replacing
        existing keys. A Query contributes its conditions, fields, options,
        update and distinct field (deep-merged copies) and its collection
        if this query has none.
        """
        if isinstance(source, Query):
            merge_state(self, source)
            return self
        if isinstance(source, Mapping):
            for key, value in source.items():
                self._conditions[key] = clone(value)
            return self
        if not source and not is_sequence(source):
            return self
        raise InvalidArgumentError("Invalid argument. Expected a Query or mapping")

    def to_constructor(self) -> QueryFactory:
        """Returns a factory creating queries that start from this query's state."""
        return QueryFactory(type(self), self._snapshot_state(), self._collection, self._trace_function)

    # --- Finalizing and execution ---

    def build(self) -> QuerySpec:
        """
        Validates the accumulated state and returns it as a QuerySpec.

        The result is an independent copy; Pydantic models and dataclasses
        in conditions and update are converted to plain documents.
        """
        self._validate()
        check_projection(self._fields)
        update = compile_update(self._update, self._op, bool(self._options.get("overwrite")))
        return QuerySpec(
            op=self._op,
            conditions=prepare_for_storage(clone(self._conditions)),
            fields=clone(self._fields),
            update=prepare_for_storage(update),
            options=clone(self._options),
            distinct=self._distinct,
        )

    def _require_collection(self) -> Collection:
        if self._collection is None:
            raise UsageError("No collection bound. Pass one to Query() or call collection()")
        return self._collection

    async def exec(self, op: Optional[str] = None) -> Any:
        """
        Executes the query and returns the collection's result.

        ``op`` binds an operation first, e.g. ``await q.exec("count")``.
        """
        if op is not None and op not in QUERY_OPS:
            raise UsageError(f"Unknown query type: {op!r}")
        if op is None and not self._op:
            raise UsageError("Missing query type: (find, update, etc.)")

        collection = self._require_collection()
        if op is not None:
            getattr(self, op)()
        spec = self.build()
        trace = self._trace_function or settings.trace_function
        log.debug(f"Dispatching {spec!r}")
        return await dispatch(spec, collection, query=self, trace_function=trace)

    def __await__(self):
        return self.exec().__await__()

    def cursor(self, criteria: Any = None) -> Any:
        """Returns the driver cursor for a ``find`` without consuming it."""
        if self._op and self._op != "find":
            raise UsageError(f"cursor() is only available for find, not {self._op}")
        collection = self._require_collection()
        self.find(criteria)
        spec = self.build()
        return collection.find_cursor(spec.conditions, spec.driver_options())
