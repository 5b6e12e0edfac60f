"""Query keys and the session-scoped query cache."""

from prop_dash.query.cache import CacheEntry, CacheStatus, QueryCache, QueryOptions
from prop_dash.query.request import QueryType, RequestDescriptor, build_key

__all__ = [
    "CacheEntry",
    "CacheStatus",
    "QueryCache",
    "QueryOptions",
    "QueryType",
    "RequestDescriptor",
    "build_key",
]
