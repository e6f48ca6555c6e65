"""Database engine and table for the SQL record store."""

from repair_estimator.database.base import Base, Database, StoredRecord

__all__ = ["Base", "Database", "StoredRecord"]
