# src/docquery/base/utils.py
import copy
import logging
from collections.abc import Mapping, MutableMapping
from dataclasses import asdict, is_dataclass
from typing import Any

from bson.son import SON

logger = logging.getLogger(__name__)


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses and containers into
    values the MongoDB driver can encode.

    It handles:
    - Pydantic BaseModel instances (dumped with field aliases)
    - Python dataclasses
    - Dictionaries and SON documents (processing values recursively)
    - Lists, tuples and sets (processing each item)

    Anything else (ObjectId, datetime, compiled regexes, bson types) is
    returned unchanged.

    Args:
        data: The data to convert

    Returns:
        The converted data
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    # Pydantic v2 models
    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        serialized = data.model_dump(by_alias=True)
        logger.debug(f"Serialized {type(data).__name__} via model_dump")
        return prepare_for_storage(serialized)

    if isinstance(data, SON):
        return SON((k, prepare_for_storage(v)) for k, v in data.items())

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, list):
        return [prepare_for_storage(item) for item in data]

    if isinstance(data, tuple):
        return tuple(prepare_for_storage(item) for item in data)

    if isinstance(data, (set, frozenset)):
        return [prepare_for_storage(item) for item in data]

    return data


def clone(value: Any) -> Any:
    """Deep copy preserving mapping key order."""
    return copy.deepcopy(value)


def merge_clone(to: MutableMapping, frm: Mapping) -> MutableMapping:
    """
    Deep-merge ``frm`` into ``to``.

    Nested mappings present on both sides are merged recursively; every
    other value from ``frm`` is deep-copied into ``to`` so the two never
    share mutable state.
    """
    for key, value in frm.items():
        existing = to.get(key)
        if isinstance(value, Mapping) and isinstance(existing, MutableMapping):
            merge_clone(existing, value)
        else:
            to[key] = clone(value)
    return to
