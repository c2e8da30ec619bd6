# src/docquery/base/dispatch.py
"""Hands a finalized QuerySpec to the matching Collection method."""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from .exceptions import UsageError
from .interfaces import Collection
from .spec import UPDATE_OPS, QuerySpec

log = logging.getLogger(__name__)

Handler = Callable[[Collection, QuerySpec], Awaitable[Any]]


async def _find(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.find(spec.conditions, spec.driver_options())


async def _find_one(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.find_one(spec.conditions, spec.driver_options())


async def _count(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.count(spec.conditions, spec.options)


async def _distinct(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.distinct(spec.distinct, spec.conditions, spec.options)


async def _update_one(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.update_one(spec.conditions, spec.update, spec.options)


async def _update_many(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.update_many(spec.conditions, spec.update, spec.options)


async def _replace_one(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.replace_one(spec.conditions, spec.update, spec.options)


async def _delete_one(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.delete_one(spec.conditions, spec.options)


async def _delete_many(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.delete_many(spec.conditions, spec.options)


async def _find_one_and_update(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.find_one_and_update(
        spec.conditions, spec.update or {}, spec.driver_options()
    )


async def _find_one_and_delete(collection: Collection, spec: QuerySpec) -> Any:
    return await collection.find_one_and_delete(spec.conditions, spec.driver_options())


HANDLERS: Dict[str, Handler] = {
    "find": _find,
    "find_one": _find_one,
    "count": _count,
    "distinct": _distinct,
    "update_one": _update_one,
    "update_many": _update_many,
    "replace_one": _replace_one,
    "remove": _delete_many,
    "delete_one": _delete_one,
    "delete_many": _delete_many,
    "find_one_and_update": _find_one_and_update,
    "find_one_and_remove": _find_one_and_delete,
}


async def dispatch(
    spec: QuerySpec,
    collection: Collection,
    query: Any = None,
    trace_function: Optional[Callable[..., Any]] = None,
) -> Any:
    """
    Runs ``spec`` against ``collection``.

    If a trace function is given it is called as
    ``trace_function(op, summary, query)`` before the collection call; a
    callable return value is then called with ``(error, result, elapsed_ms)``
    once the call completes. Errors from the collection are re-raised as is.
    """
    handler = HANDLERS.get(spec.op)
    if handler is None:
        raise UsageError(f"Unknown query type: {spec.op!r}")

    if spec.op == "distinct" and not spec.distinct:
        raise UsageError("No value for `distinct` has been declared")

    if spec.op in UPDATE_OPS and not spec.has_update:
        log.debug(f"Skipping {spec.op}: update document is empty")
        return 0

    name = collection.name
    on_complete = None
    if trace_function is not None:
        on_complete = trace_function(spec.op, spec.summary(name), query)

    log.info(f"Executing {spec.op} on collection '{name}'")
    started = time.monotonic()
    try:
        result = await handler(collection, spec)
    except Exception as error:
        elapsed_ms = (time.monotonic() - started) * 1000
        log.info(f"{spec.op} on '{name}' failed after {elapsed_ms:.1f}ms: {error}")
        if callable(on_complete):
            on_complete(error, None, elapsed_ms)
        raise

    elapsed_ms = (time.monotonic() - started) * 1000
    log.debug(f"{spec.op} on '{name}' finished in {elapsed_ms:.1f}ms")
    if callable(on_complete):
        on_complete(None, result, elapsed_ms)
    return result
