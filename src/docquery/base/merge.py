# src/docquery/base/merge.py
import logging
from typing import Any, Dict, Optional

from .exceptions import InvalidArgumentError
from .utils import clone, merge_clone

log = logging.getLogger(__name__)


def check_mergeable(target: Any, source: Any) -> None:
    """Raises if ``source`` cannot be merged into ``target``. Changes nothing."""
    ours = target._options.get("sort")
    theirs = source._options.get("sort")
    if ours is None or theirs is None:
        return
    if isinstance(ours, list) != isinstance(theirs, list):
        raise InvalidArgumentError("Can't mix sort syntaxes. Use either array or object")


def merge_state(target: Any, source: Any) -> None:
    """
    Merges the accumulated state of query ``source`` into query ``target``.

    Conditions, fields, options and update are deep-merged with every
    adopted value copied; pair-list sorts are concatenated. The distinct
    field is taken from ``source`` when set, the collection only when
    ``target`` has none.
    """
    check_mergeable(target, source)

    if source._conditions:
        merge_clone(target._conditions, source._conditions)
    if source._fields is not None:
        if target._fields is None:
            target._fields = {}
        merge_clone(target._fields, source._fields)
    if source._options:
        own_sort = target._options.get("sort")
        merge_clone(target._options, source._options)
        if isinstance(own_sort, list):
            target._options["sort"] = own_sort + clone(source._options.get("sort") or [])
    if source._update:
        if target._update is None:
            target._update = {}
        merge_clone(target._update, source._update)
    if source._distinct:
        target._distinct = source._distinct
    if target._collection is None and source._collection is not None:
        target._collection = source._collection


class QueryFactory:
    """
    Builds queries preconfigured from a template.

    Returned by ``Query.to_constructor()``. Each call yields a new query
    holding its own deep copy of the template state; the collection binding
    and trace function are shared.
    """

    def __init__(self, query_class: type, state: Dict[str, Any], collection: Any, trace_function: Any):
        self._query_class = query_class
        self._state = clone(state)
        self._collection = collection
        self._trace_function = trace_function

    @property
    def template(self) -> Dict[str, Any]:
        """A copy of the captured state."""
        return clone(self._state)

    def __call__(self, criteria: Any = None, options: Optional[Dict[str, Any]] = None):
        query = self._query_class()
        query._restore_state(clone(self._state))
        query._collection = self._collection
        query._trace_function = self._trace_function
        if options:
            query.set_options(options)
        query._apply_criteria(criteria)
        log.debug(f"Created {self._query_class.__name__} from template")
        return query

    def __repr__(self) -> str:
        return f"QueryFactory({self._query_class.__name__}, op={self._state.get('op')!r})"
