"""Persistence: relational schema, repository, locks and object storage."""

from .database import (
    Base,
    create_engine_from_config,
    init_schema,
    make_session_factory,
    session_scope,
)
from .locks import AccountLockRegistry, account_locks
from .object_store import LocalObjectStorage, ObjectStorage, storage_path
from .repository import StatementRepository

__all__ = [
    "Base",
    "create_engine_from_config",
    "init_schema",
    "make_session_factory",
    "session_scope",
    "AccountLockRegistry",
    "account_locks",
    "LocalObjectStorage",
    "ObjectStorage",
    "storage_path",
    "StatementRepository",
]
