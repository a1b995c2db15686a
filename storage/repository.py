"""
storage/repository.py -- Base class for document-backed repositories.

Every repository method that touches the store runs inside _guard(), which
classifies failures at the boundary:

  DuplicateKeyError  -> ConflictError tagged with the repository's unique field
  SQLAlchemyError    -> logged with traceback, re-raised as StorageError
  BusTrackError      -> passes through unchanged (NotFoundError, ConflictError)

Callers above this layer therefore see either a domain error or StorageError,
never a driver exception, and "not found" (None) is always distinguishable
from "store unavailable" (StorageError).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from core.errors import ConflictError, StorageError
from storage.documents import DocumentStore, DuplicateKeyError

logger = logging.getLogger("bustrack.storage")


class DocumentRepository:
    """Shared plumbing for UserRepository and BusRepository.

    Subclasses set `collection`, `unique_field` (the document key guarded by
    the unique index) and `conflict_message`.
    """

    collection: str = ""
    unique_field: str = ""
    conflict_field: str = ""
    conflict_message: str = "Resource already exists"

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def conflict_error(self) -> ConflictError:
        return ConflictError(self.conflict_message, field=self.conflict_field)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except DuplicateKeyError as exc:
            raise self.conflict_error() from exc
        except SQLAlchemyError as exc:
            logger.exception("Store failure during %s.%s", self.collection, operation)
            raise StorageError(operation=f"{self.collection}.{operation}") from exc
