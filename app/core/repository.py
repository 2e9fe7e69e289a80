"""Base repository pattern implementation.

This module provides a generic repository that domain stores build on.
Every storage call made through :meth:`BaseRepository.guard` is wrapped so
that driver errors are logged with context, the session is rolled back, and
a :class:`~app.core.exceptions.DatabaseError` is raised instead of the raw
SQLAlchemy exception.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar, cast
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import DatabaseError

ModelType = TypeVar("ModelType")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[ModelType]):
    """Generic repository with common CRUD operations.

    Example:
        ```python
        class ConversationRepository(BaseRepository[Conversation]):
            def __init__(self, db: Session):
                super().__init__(db, Conversation)
        ```
    """

    def __init__(self, db: Session, model: type[ModelType]):
        """Initialize repository with database session and model class.

        Args:
            db: SQLAlchemy session.
            model: The model class this repository operates on.
        """
        self.db = db
        self.model = model

    @contextmanager
    def guard(self, action: str, **context: Any) -> Iterator[None]:
        """Translate storage failures into DatabaseError.

        Args:
            action: Short description used both in the log line and the
                error message, e.g. ``"create message"``.
            **context: Identifiers logged alongside the failure.
        """
        try:
            yield
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Storage failure during %s on %s %s",
                action,
                self.model.__name__,  # type: ignore[attr-defined]
                context,
            )
            raise DatabaseError(f"Could not {action}") from None

    def get_by_id(self, entity_id: int | UUID) -> ModelType | None:
        """Get a single entity by ID.

        Args:
            entity_id: Primary key of the entity.

        Returns:
            The entity if found, None otherwise.
        """
        with self.guard("load record", id=entity_id):
            result = self.db.get(self.model, entity_id)
        return cast(ModelType | None, result)

    def add(self, instance: ModelType) -> ModelType:
        """Persist a new entity and return it refreshed with generated columns.

        Args:
            instance: The transient entity.

        Returns:
            The persisted entity.
        """
        self.db.add(instance)
        self.db.commit()
        self.db.refresh(instance)
        return instance

    def commit(self, action: str, **context: Any) -> None:
        """Commit the pending unit of work, translating failures like every other call."""
        with self.guard(action, **context):
            self.db.commit()
