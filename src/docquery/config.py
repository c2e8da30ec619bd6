# src/docquery/config.py
"""
Process-wide settings.

Values here are read each time they are needed, so changing them affects
every builder created afterwards as well as builders already in flight.
Test suites that change them must restore the previous values and must not
run such tests in parallel.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from .base.exceptions import InvalidArgumentError

log = logging.getLogger(__name__)

# trace(op, summary, query) -> optional callback(error, result, elapsed_ms)
TraceFunction = Callable[[str, Mapping[str, Any], Any], Optional[Callable[..., Any]]]


@dataclass
class Settings:
    """Mutable global configuration for docquery."""

    # $geoWithin (MongoDB >= 2.4) vs the legacy $within operator.
    use_geo_within: bool = True
    # Used by builders that have no trace function of their own.
    trace_function: Optional[TraceFunction] = None


settings = Settings()


def within_operator() -> str:
    """Returns the operator name used for "within" geo queries."""
    return "$geoWithin" if settings.use_geo_within else "$within"


def use_geo_within(enabled: bool = True) -> None:
    log.debug(f"Setting use_geo_within={enabled!r}")
    settings.use_geo_within = bool(enabled)


def set_global_trace_function(fn: Optional[TraceFunction]) -> None:
    if fn is not None and not callable(fn):
        raise InvalidArgumentError("trace function must be callable or None")
    settings.trace_function = fn
