# tests/base/query/test_exec.py

from dataclasses import dataclass
from datetime import datetime

import pytest
from pydantic import BaseModel, Field

from docquery import Query, QuerySpec, set_global_trace_function
from docquery.base.exceptions import CompatibilityError, InvalidArgumentError, UsageError
from docquery.base.spec import compile_update
from docquery.config import settings


class Address(BaseModel):
    city: str
    zip_code: str = Field(alias="zip")


@dataclass
class Range:
    low: int
    high: int


# --- build ---


def test_build_returns_independent_spec():
    q = Query().where("a").gt(1).select("a").limit(2)
    spec = q.build()
    assert isinstance(spec, QuerySpec)
    assert spec.op == "find"
    assert spec.conditions == {"a": {"$gt": 1}}
    assert spec.fields == {"a": 1}
    assert spec.options == {"limit": 2}
    spec.conditions["a"]["$gt"] = 100
    spec.options["limit"] = 50
    assert q.conditions == {"a": {"$gt": 1}}
    assert q.options == {"limit": 2}


def test_build_serializes_models_and_dataclasses():
    spec = (
        Query()
        .where("address", Address(city="Oslo", zip="0150"))
        .where("range", Range(1, 5))
        .update_one({"$set": {"home": Address(city="Bergen", zip="5003")}})
        .build()
    )
    assert spec.conditions == {
        "address": {"city": "Oslo", "zip": "0150"},
        "range": {"low": 1, "high": 5},
    }
    assert spec.update == {"$set": {"home": {"city": "Bergen", "zip": "5003"}}}


def test_build_revalidates():
    q = Query().count()
    q._fields = {"a": 1}
    with pytest.raises(CompatibilityError):
        q.build()


def test_driver_options_include_projection():
    spec = Query().find().select("a").sort("-b").build()
    assert spec.driver_options() == {"sort": {"b": -1}, "projection": {"a": 1}}


def test_summary_is_read_only():
    summary = Query({"a": 1}).build().summary("things")
    assert summary["collection_name"] == "things"
    assert summary["conditions"] == {"a": 1}
    with pytest.raises(TypeError):
        summary["op"] = "count"


# --- Update compilation ---


def test_plain_keys_move_into_set_preserving_order():
    update = {"name": "x", "$inc": {"n": 1}, "$set": {"a": 1}, "age": 3}
    compiled = compile_update(update, "update_one")
    assert compiled == {"$inc": {"n": 1}, "$set": {"a": 1, "name": "x", "age": 3}}
    assert list(compiled) == ["$inc", "$set"]
    assert update == {"name": "x", "$inc": {"n": 1}, "$set": {"a": 1}, "age": 3}


def test_overwrite_and_replace_keep_document():
    assert compile_update({"name": "x"}, "update_one", overwrite=True) == {"name": "x"}
    assert compile_update({"name": "x"}, "replace_one") == {"name": "x"}
    assert compile_update(None, "update_one") is None


def test_update_with_query_document():
    source = Query().update_one({"$set": {"a": 1}})
    q = Query().update_many({"b": 2}, source)
    assert q.conditions == {"b": 2}
    assert q.update == {"$set": {"a": 1}}


def test_update_with_options():
    q = Query().update_one({"_id": 1}, {"a": 1}, {"upsert": True, "w": "m"})
    assert q.options == {"upsert": True, "w": "majority"}


def test_update_rejects_invalid_document():
    q = Query()
    with pytest.raises(InvalidArgumentError):
        q.update_one(5)
    assert q.update is None


def test_update_rejects_invalid_criteria():
    with pytest.raises(InvalidArgumentError):
        Query().update_one("name", {"a": 1})


# --- Failed calls leave the builder as it was ---


def test_invalid_update_document_keeps_criteria_out():
    q = Query()
    with pytest.raises(InvalidArgumentError):
        q.update_one({"a": 1}, 5)
    assert q.conditions == {}
    assert q.op is None
    assert q.update is None


def test_rejected_update_options_are_rolled_back():
    q = Query().where("b", 2)
    with pytest.raises(CompatibilityError, match="tailable cannot be used with update_one"):
        q.update_one({"a": 1}, {"c": 3}, {"upsert": True, "tailable": True})
    assert q.op == "find"
    assert q.conditions == {"b": 2}
    assert q.update is None
    assert q.options == {}


def test_rejected_find_one_and_remove_options_are_rolled_back():
    q = Query()
    with pytest.raises(CompatibilityError, match="limit cannot be used with find_one_and_remove"):
        q.find_one_and_remove({"a": 1}, {"sort": "b", "limit": 1})
    assert (q.op, q.conditions, q.options) == (None, {}, {})


def test_failed_count_keeps_previous_op():
    q = Query().find().select("x")
    with pytest.raises(CompatibilityError):
        q.count({"a": 1})
    assert q.op == "find"
    assert q.conditions == {}


def test_failed_distinct_keeps_previous_op():
    q = Query().find().limit(3)
    with pytest.raises(CompatibilityError, match="limit cannot be used with distinct"):
        q.distinct({"a": 1}, "name")
    assert (q.op, q.conditions, q.distinct_field) == ("find", {}, None)


def test_find_one_and_update_validates_before_binding():
    q = Query().find().skip(5)
    with pytest.raises(CompatibilityError):
        q.find_one_and_update({"a": 1}, {"b": 1})
    assert (q.op, q.conditions, q.update) == ("find", {}, None)


# --- distinct ---


def test_distinct_argument_forms():
    assert Query().distinct("name").distinct_field == "name"
    q = Query().distinct({"a": 1})
    assert q.conditions == {"a": 1}
    assert q.distinct_field is None
    q = Query().distinct({"a": 1}, "name")
    assert (q.conditions, q.distinct_field) == ({"a": 1}, "name")


def test_distinct_rejects_non_string_field():
    with pytest.raises(InvalidArgumentError):
        Query().distinct({"a": 1}, 5)


# --- exec ---


@pytest.mark.asyncio
async def test_exec_requires_op(recording_collection):
    with pytest.raises(UsageError, match="Missing query type"):
        await Query(recording_collection).exec()


@pytest.mark.asyncio
async def test_exec_requires_collection():
    with pytest.raises(UsageError, match="No collection bound"):
        await Query().find().exec()


@pytest.mark.asyncio
async def test_exec_rejects_unknown_op(recording_collection):
    with pytest.raises(UsageError, match="Unknown query type"):
        await Query(recording_collection).exec("aggregate")


@pytest.mark.asyncio
async def test_await_runs_find(make_recording_collection):
    coll = make_recording_collection(results={"find": [{"_id": 1}]})
    docs = await Query(coll).find().where("age").gte(21).select("name").sort("-age").limit(10)
    assert docs == [{"_id": 1}]
    assert coll.calls == [
        (
            "find",
            (
                {"age": {"$gte": 21}},
                {"sort": {"age": -1}, "limit": 10, "projection": {"name": 1}},
            ),
        )
    ]


@pytest.mark.asyncio
async def test_exec_with_op_binds_it(make_recording_collection):
    coll = make_recording_collection(results={"count": 7})
    assert await Query(coll).where("a", 1).exec("count") == 7
    assert coll.calls == [("count", ({"a": 1}, {}))]


@pytest.mark.asyncio
async def test_exec_with_op_validates(recording_collection):
    with pytest.raises(CompatibilityError):
        await Query(recording_collection).select("a").exec("count")


@pytest.mark.asyncio
async def test_exec_without_collection_keeps_bound_op():
    q = Query({"a": 1})
    with pytest.raises(UsageError, match="No collection bound"):
        await q.exec("count")
    assert q.op == "find"


@pytest.mark.asyncio
async def test_find_one(recording_collection):
    await Query(recording_collection).find_one({"a": 1}).select("-b")
    assert recording_collection.calls == [("find_one", ({"a": 1}, {"projection": {"b": 0}}))]


@pytest.mark.asyncio
async def test_distinct_requires_field(recording_collection):
    with pytest.raises(UsageError, match="No value for `distinct` has been declared"):
        await Query(recording_collection).distinct({"a": 1})
    assert recording_collection.calls == []


@pytest.mark.asyncio
async def test_distinct_dispatch(recording_collection):
    await Query(recording_collection).distinct({"a": 1}, "name")
    assert recording_collection.calls == [("distinct", ("name", {"a": 1}, {}))]


@pytest.mark.asyncio
async def test_update_sends_set_wrapped_document(recording_collection):
    await Query(recording_collection).update_many({"a": 1}, {"b": 2, "$inc": {"n": 1}})
    assert recording_collection.calls == [
        ("update_many", ({"a": 1}, {"$inc": {"n": 1}, "$set": {"b": 2}}, {}))
    ]


@pytest.mark.asyncio
async def test_replace_one_keeps_document(recording_collection):
    await Query(recording_collection).replace_one({"_id": 1}, {"name": "new"})
    assert recording_collection.calls == [("replace_one", ({"_id": 1}, {"name": "new"}, {}))]


@pytest.mark.asyncio
async def test_overwrite_option_sends_document_as_is(recording_collection):
    await Query(recording_collection).update_one({"_id": 1}, {"z": "renamed"}, {"overwrite": True})
    assert recording_collection.calls == [
        ("update_one", ({"_id": 1}, {"z": "renamed"}, {"overwrite": True}))
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "build",
    [
        lambda q: q.update_one(),
        lambda q: q.where({"a": 1}).update_many(),
        lambda q: q.update_one({"a": 1}, {}),
    ],
)
async def test_empty_update_resolves_to_zero(recording_collection, build):
    result = await build(Query(recording_collection))
    assert result == 0
    assert recording_collection.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "op, method",
    [("remove", "delete_many"), ("delete_many", "delete_many"), ("delete_one", "delete_one")],
)
async def test_remove_family(recording_collection, op, method):
    await getattr(Query(recording_collection), op)({"a": 1})
    assert recording_collection.calls == [(method, ({"a": 1}, {}))]


@pytest.mark.asyncio
async def test_find_one_and_update(make_recording_collection):
    coll = make_recording_collection(results={"find_one_and_update": {"_id": 1}})
    result = await (
        Query(coll)
        .find_one_and_update({"a": 1}, {"b": 2}, {"new": True})
        .sort("-c")
        .select("b")
    )
    assert result == {"_id": 1}
    assert coll.calls == [
        (
            "find_one_and_update",
            ({"a": 1}, {"$set": {"b": 2}}, {"new": True, "sort": {"c": -1}, "projection": {"b": 1}}),
        )
    ]


@pytest.mark.asyncio
async def test_find_one_and_update_with_query_document(recording_collection):
    doc = Query().where("ignored", 1).update_one({"$set": {"x": 1}})
    await Query(recording_collection).find_one_and_update(doc)
    assert recording_collection.calls == [("find_one_and_update", ({}, {"$set": {"x": 1}}, {}))]


@pytest.mark.asyncio
async def test_find_one_and_delete_alias(recording_collection):
    await Query(recording_collection).find_one_and_delete({"a": 1}, {"sort": "b"})
    assert recording_collection.calls == [("find_one_and_delete", ({"a": 1}, {"sort": {"b": 1}}))]


@pytest.mark.asyncio
async def test_collection_errors_propagate_unchanged(make_recording_collection):
    error = RuntimeError("boom")
    coll = make_recording_collection(error=error)
    with pytest.raises(RuntimeError) as excinfo:
        await Query(coll).find()
    assert excinfo.value is error


# --- cursor ---


def test_cursor_returns_collection_cursor(make_recording_collection):
    coll = make_recording_collection(results={"find_cursor": [{"_id": 1}]})
    cursor = Query(coll).where("a", 1).limit(1).cursor()
    assert list(cursor) == [{"_id": 1}]
    assert coll.calls == [("find_cursor", ({"a": 1}, {"limit": 1}))]


def test_cursor_merges_criteria(recording_collection):
    Query(recording_collection).cursor({"b": 2})
    assert recording_collection.calls == [("find_cursor", ({"b": 2}, {}))]


def test_cursor_rejects_other_ops(recording_collection):
    with pytest.raises(UsageError, match="cursor"):
        Query(recording_collection).count().cursor()


# --- tracing ---


@pytest.mark.asyncio
async def test_trace_function_receives_summary_and_completion(make_recording_collection):
    coll = make_recording_collection(results={"find": ["doc"]})
    seen = {}

    def trace(op, summary, query):
        seen["op"] = op
        seen["summary"] = dict(summary)
        seen["query"] = query

        def done(error, result, elapsed_ms):
            seen["done"] = (error, result, elapsed_ms >= 0)

        return done

    q = Query(coll).find().where("a", 1).set_trace_function(trace)
    await q
    assert seen["op"] == "find"
    assert seen["summary"]["conditions"] == {"a": 1}
    assert seen["summary"]["collection_name"] == "things"
    assert seen["query"] is q
    assert seen["done"] == (None, ["doc"], True)


@pytest.mark.asyncio
async def test_trace_completion_receives_error(make_recording_collection):
    error = ValueError("bad")
    coll = make_recording_collection(error=error)
    outcome = []

    def trace(op, summary, query):
        return lambda err, result, elapsed_ms: outcome.append((err, result))

    with pytest.raises(ValueError):
        await Query(coll).find().set_trace_function(trace)
    assert outcome == [(error, None)]


@pytest.mark.asyncio
async def test_global_trace_function_is_used(recording_collection):
    ops = []
    set_global_trace_function(lambda op, summary, query: ops.append(op))
    await Query(recording_collection).count()
    assert ops == ["count"]


def test_global_trace_function_must_be_callable():
    with pytest.raises(InvalidArgumentError, match="callable or None"):
        set_global_trace_function("nope")
    assert settings.trace_function is None


# --- Values that survive building ---


def test_datetimes_pass_through_build():
    when = datetime(2024, 1, 1)
    assert Query().where("at").lt(when).build().conditions == {"at": {"$lt": when}}
