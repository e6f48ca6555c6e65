"""
Record store adapters.

RecordStore is the contract; InMemoryRecordStore and SQLRecordStore are the
shipped backends; ResilientStore wraps either with timeouts and retries.
"""

from repair_estimator.store.base import RecordStore
from repair_estimator.store.gateway import ResilientStore
from repair_estimator.store.memory import InMemoryRecordStore
from repair_estimator.store.query import Condition, eq, gt, gte, in_, lt, lte, ne, startswith
from repair_estimator.store.sql import SQLRecordStore

__all__ = [
    "RecordStore",
    "ResilientStore",
    "InMemoryRecordStore",
    "SQLRecordStore",
    "Condition",
    "eq",
    "ne",
    "lt",
    "lte",
    "gt",
    "gte",
    "in_",
    "startswith",
]
