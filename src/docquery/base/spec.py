# src/docquery/base/spec.py
import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

UPDATE_OPS = ("update_one", "update_many", "replace_one")


def compile_update(
    update: Optional[Mapping[str, Any]], op: Optional[str], overwrite: bool = False
) -> Optional[Dict[str, Any]]:
    """
    Returns the update document sent to the driver.

    Top level keys without a ``$`` prefix are moved into ``$set`` (merged
    with an explicit ``$set`` if there is one) unless ``overwrite`` is set
    or the op is ``replace_one``, in which case the document is a
    replacement and is returned unchanged. Key order is preserved.
    """
    if update is None:
        return None
    update = copy.deepcopy(update)
    if overwrite or op == "replace_one":
        return update

    compiled: Dict[str, Any] = {}
    set_doc = update.get("$set")
    for key, value in update.items():
        if key.startswith("$"):
            compiled[key] = value
            continue
        if set_doc is None:
            set_doc = {}
        set_doc[key] = value
    if set_doc is not None:
        compiled["$set"] = set_doc
    return compiled


@dataclass
class QuerySpec:
    """The finalized, driver-ready form of a Query."""

    op: Optional[str] = None
    conditions: Dict[str, Any] = field(default_factory=dict)
    fields: Optional[Dict[str, Any]] = None
    update: Optional[Dict[str, Any]] = None
    options: Dict[str, Any] = field(default_factory=dict)
    distinct: Optional[str] = None

    @property
    def has_update(self) -> bool:
        if self.update is None:
            return False
        return bool(self.update) or bool(self.options.get("overwrite"))

    def driver_options(self) -> Dict[str, Any]:
        """Options handed to the collection, with the projection included."""
        options = dict(self.options)
        if self.fields:
            options["projection"] = self.fields
        return options

    def summary(self, collection_name: Optional[str] = None) -> Mapping[str, Any]:
        """Read-only view passed to trace functions."""
        return MappingProxyType(
            {
                "op": self.op,
                "conditions": self.conditions,
                "fields": self.fields,
                "options": self.options,
                "update": self.update,
                "distinct": self.distinct,
                "collection_name": collection_name,
            }
        )

    def __repr__(self) -> str:
        parts = [f"op={self.op!r}", f"conditions={self.conditions!r}"]
        if self.fields:
            parts.append(f"fields={self.fields!r}")
        if self.update is not None:
            parts.append(f"update={self.update!r}")
        if self.options:
            parts.append(f"options={self.options!r}")
        if self.distinct:
            parts.append(f"distinct={self.distinct!r}")
        return f"QuerySpec({', '.join(parts)})"
