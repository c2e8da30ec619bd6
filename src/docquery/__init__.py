# src/docquery/__init__.py

"""
docquery initialization.

A fluent builder for MongoDB queries: chained calls accumulate filter
conditions, projection, sort, update and options, which are validated per
operation kind and executed against a Motor or PyMongo collection.

It initializes a logger with a NullHandler and makes the builder, its
exceptions, configuration and the MongoDB collection adapter available at
the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for the "docquery" logger.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Configuration
# --------------------------------------------------------------------------
from .config import settings, set_global_trace_function, use_geo_within

# --------------------------------------------------------------------------
# Exceptions
# --------------------------------------------------------------------------
from .base.exceptions import (
    CompatibilityError,
    InvalidArgumentError,
    QueryError,
    UsageError,
)

# --------------------------------------------------------------------------
# Query Building Exports
# --------------------------------------------------------------------------
# Query is the builder; QuerySpec is what Query.build() returns;
# QueryFactory is what Query.to_constructor() returns.
from .base.query import Query
from .base.spec import QuerySpec
from .base.merge import QueryFactory

# --------------------------------------------------------------------------
# Collection Exports
# --------------------------------------------------------------------------
from .base.interfaces import Collection
from .mongodb.collection import MongoCollection

__all__ = [
    # Query
    "Query",
    "QuerySpec",
    "QueryFactory",
    # Collections
    "Collection",
    "MongoCollection",
    # Exceptions
    "QueryError",
    "UsageError",
    "InvalidArgumentError",
    "CompatibilityError",
    # Configuration
    "settings",
    "use_geo_within",
    "set_global_trace_function",
    # Logging
    "logger",
]
