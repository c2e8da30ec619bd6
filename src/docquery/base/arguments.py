# src/docquery/base/arguments.py
"""
Arity based argument classification.

Most builder methods accept several call shapes, e.g. ``gt(5)`` on the
active path or ``gt("age", 5)`` with an explicit path. Each family of
methods has one classifier here that turns ``*args`` into a tagged
``CallArgs`` so the builder never inspects ``len(args)`` itself.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional, Sequence

from .exceptions import InvalidArgumentError
from .shapes import is_number, is_sequence


class ArgShape(Enum):
    EMPTY = auto()
    # Value only; the active path supplies the field.
    BARE_VALUE = auto()
    PATH_AND_VALUE = auto()


@dataclass(frozen=True)
class CallArgs:
    shape: ArgShape
    path: Optional[str] = None
    value: Any = None

    @property
    def needs_path(self) -> bool:
        return self.shape is ArgShape.BARE_VALUE


@dataclass(frozen=True)
class UpdateArgs:
    criteria: Any = None
    doc: Any = None
    options: Any = None


@dataclass(frozen=True)
class DistinctArgs:
    criteria: Any = None
    field: Optional[str] = None


EMPTY = CallArgs(ArgShape.EMPTY)


def _bare(value: Any) -> CallArgs:
    return CallArgs(ArgShape.BARE_VALUE, value=value)


def _explicit(path: Any, value: Any) -> CallArgs:
    return CallArgs(ArgShape.PATH_AND_VALUE, path=path, value=value)


def _arity_error(method: str, args: Sequence[Any]) -> InvalidArgumentError:
    return InvalidArgumentError(
        f"Invalid argument count for {method}(): got {len(args)}"
    )


def classify_operator(method: str, args: Sequence[Any]) -> CallArgs:
    """``(value)`` or ``(path, value)``."""
    if len(args) == 1:
        return _bare(args[0])
    if len(args) == 2:
        return _explicit(args[0], args[1])
    raise _arity_error(method, args)


def classify_mod(args: Sequence[Any]) -> CallArgs:
    """
    ``(pair)``, ``(divisor, remainder)``, ``(path, pair)`` or
    ``(path, divisor, remainder)``.
    """
    if len(args) == 1:
        return _bare(list(args[0]) if is_sequence(args[0]) else args[0])
    if len(args) == 2 and not is_sequence(args[1]):
        return _bare([args[0], args[1]])
    if len(args) == 2:
        return _explicit(args[0], list(args[1]))
    if len(args) == 3:
        return _explicit(args[0], [args[1], args[2]])
    raise _arity_error("mod", args)


def classify_exists(args: Sequence[Any]) -> CallArgs:
    """``()``, ``(bool)``, ``(path)`` or ``(path, bool)``."""
    if not args:
        return _bare(True)
    if len(args) == 1:
        if isinstance(args[0], bool):
            return _bare(args[0])
        return _explicit(args[0], True)
    if len(args) == 2:
        return _explicit(args[0], args[1])
    raise _arity_error("exists", args)


def classify_elem_match(args: Sequence[Any]) -> CallArgs:
    """``(criteria)``, ``(fn)``, ``(path, criteria)`` or ``(path, fn)``."""
    if not args or args[0] is None:
        raise InvalidArgumentError("Invalid argument")
    first = args[0]
    if isinstance(first, Mapping) or _is_function(first):
        if len(args) > 1:
            raise _arity_error("elem_match", args)
        return _bare(first)
    if len(args) == 2 and (isinstance(args[1], Mapping) or _is_function(args[1])):
        return _explicit(first, args[1])
    raise InvalidArgumentError("Invalid argument")


def classify_slice(args: Sequence[Any]) -> CallArgs:
    """
    ``(spec)``, ``(skip, limit)``, ``(path, spec)`` or
    ``(path, skip, limit)``. The mapping form is handled by the caller.
    """
    if not args:
        return EMPTY
    if len(args) == 1:
        return _bare(args[0])
    if len(args) == 2:
        if is_number(args[0]):
            return _bare([args[0], args[1]])
        return _explicit(args[0], args[1])
    if len(args) == 3:
        return _explicit(args[0], [args[1], args[2]])
    raise _arity_error("slice", args)


def classify_shape(method: str, args: Sequence[Any]) -> CallArgs:
    """``(area)`` or ``(path, area)`` as taken by ``circle()`` and ``near()``."""
    if not args:
        return EMPTY
    return classify_operator(method, args)


def classify_box(args: Sequence[Any]) -> CallArgs:
    """``(lower_left, upper_right)`` or ``(path, lower_left, upper_right)``."""
    if len(args) == 2:
        return _bare([args[0], args[1]])
    if len(args) == 3:
        return _explicit(args[0], [args[1], args[2]])
    raise InvalidArgumentError("Invalid argument")


def classify_polygon(args: Sequence[Any]) -> CallArgs:
    """``(*points)`` or ``(path, *points)``."""
    if args and isinstance(args[0], str):
        return _explicit(args[0], list(args[1:]))
    return _bare(list(args))


def classify_update(method: str, args: Sequence[Any]) -> UpdateArgs:
    """``()``, ``(doc)``, ``(criteria, doc)`` or ``(criteria, doc, options)``."""
    if not args:
        return UpdateArgs()
    if len(args) == 1:
        return UpdateArgs(doc=args[0])
    if len(args) == 2:
        return UpdateArgs(criteria=args[0], doc=args[1])
    if len(args) == 3:
        return UpdateArgs(criteria=args[0], doc=args[1], options=args[2])
    raise _arity_error(method, args)


def classify_distinct(args: Sequence[Any]) -> DistinctArgs:
    """``()``, ``(field)``, ``(criteria)`` or ``(criteria, field)``."""
    if not args:
        return DistinctArgs()
    if len(args) == 1:
        if isinstance(args[0], str):
            return DistinctArgs(field=args[0])
        return DistinctArgs(criteria=args[0])
    if len(args) == 2:
        field = args[1]
        if field is not None and not isinstance(field, str):
            raise InvalidArgumentError("Invalid `field` argument. Must be string or None")
        return DistinctArgs(criteria=args[0], field=field)
    raise _arity_error("distinct", args)


def _is_function(value: Any) -> bool:
    return callable(value) and not isinstance(value, type)
