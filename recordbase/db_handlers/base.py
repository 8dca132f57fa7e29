from __future__ import annotations

import asyncio
from functools import wraps
from typing import Any, Generic, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recordbase.config import settings
from recordbase.db import AppAsyncSessionLocal
from recordbase.models.base import Base
from recordbase.utils.logger import setup_logger
from recordbase.utils.retry_utils import is_retryable_db_error

logger = setup_logger("db_handlers")


# Define generic types for SQLAlchemy models
ModelType = TypeVar("ModelType", bound=Base)


def live(model):
    """The soft-delete predicate; every read of a soft-deletable table goes through it."""
    return model.is_deleted.is_(False)


def check_local_db(func):
    """Database session decorator with transaction management and retry logic."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        # If 'db' is already provided, we're in a nested call.
        # The outermost caller who created the session is responsible for the transaction.
        if kwargs.get("db"):
            return await func(*args, **kwargs)

        attempts = max(1, settings.db_connect_retries)
        last_exception = None
        for attempt in range(attempts):
            async with AppAsyncSessionLocal() as db:
                kwargs["db"] = db
                try:
                    result = await func(*args, **kwargs)
                    await db.commit()
                    return result
                except Exception as e:
                    await db.rollback()
                    if is_retryable_db_error(e) and attempt + 1 < attempts:
                        last_exception = e
                        logger.warning(
                            f"Connection error in {func.__name__} (attempt {attempt + 1}/{attempts}): {e}. Retrying..."
                        )
                        await asyncio.sleep(1 + attempt)
                        continue
                    if isinstance(e, SQLAlchemyError):
                        logger.error(
                            f"Database error in {func.__name__} (attempt {attempt + 1}/{attempts}): {e}",
                            exc_info=True,
                        )
                    raise

        # Only reachable when every attempt hit a retryable error
        logger.error(
            f"All retries failed for {func.__name__}. Last error: {last_exception}"
        )
        raise last_exception

    return wrapper


class BaseDBHandler(Generic[ModelType]):
    """Generic handler for soft-deletable models with basic CRUD methods."""

    def __init__(self, model: type[ModelType]):
        self.model = model

    def select_live(self):
        stmt = select(self.model)
        if hasattr(self.model, "is_deleted"):
            stmt = stmt.where(live(self.model))
        return stmt

    @check_local_db
    async def create(
        self, obj_dict: dict[str, Any], *, db: AsyncSession = None
    ) -> ModelType:
        """Create a new record in the database."""

        db_obj = self.model(**obj_dict)
        try:
            db.add(db_obj)
            await db.flush()
            await db.refresh(db_obj)
            return db_obj
        except IntegrityError as e:
            logger.warning(f"IntegrityError creating {self.model.__name__}: {e}")
            # Re-raise IntegrityError so calling code can handle it specifically
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model.__name__}: {e}", exc_info=True)
            raise

    @check_local_db
    async def get_by_attributes(
        self, *, db: AsyncSession = None, **kwargs
    ) -> ModelType | None:
        """Get a single live record by a set of attributes."""
        options_to_load = kwargs.pop("options", None)

        stmt = self.select_live().filter_by(**kwargs)
        if options_to_load:
            stmt = stmt.options(*options_to_load)

        result = await db.execute(stmt)
        return result.scalars().first()

    @check_local_db
    async def get_multi_by_attributes(
        self, *, db: AsyncSession = None, skip: int = 0, limit: int | None = None, **kwargs
    ) -> list[ModelType]:
        """Get live records by a set of attributes with optional pagination."""
        order_by_clauses = kwargs.pop("order_by", None)
        options_to_load = kwargs.pop("options", None)

        stmt = self.select_live().filter_by(**kwargs)

        if options_to_load:
            stmt = stmt.options(*options_to_load)

        if order_by_clauses is not None:
            if isinstance(order_by_clauses, list):
                stmt = stmt.order_by(*order_by_clauses)
            else:
                stmt = stmt.order_by(order_by_clauses)

        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @check_local_db
    async def update(
        self,
        db_obj: ModelType,
        update_data: dict[str, Any],
        *,
        db: AsyncSession = None,
    ) -> ModelType:
        """Update an existing record in the database."""

        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        try:
            db_obj = await db.merge(db_obj)
            await db.flush()
            await db.refresh(db_obj)
            return db_obj
        except SQLAlchemyError as e:
            logger.error(
                f"Error updating {self.model.__name__} with id {db_obj.id}: {e}",
                exc_info=True,
            )
            raise

    @check_local_db
    async def soft_delete(
        self, id: Any, *, actor: str | None = None, db: AsyncSession = None
    ) -> bool:
        """Flag a record as deleted; returns False when no live record matched."""
        values = {"is_deleted": True}
        if actor is not None and hasattr(self.model, "last_modified_by"):
            values["last_modified_by"] = actor
        stmt = (
            update(self.model)
            .where(self.model.id == id, live(self.model))
            .values(**values)
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @check_local_db
    async def remove(self, id: Any, *, db: AsyncSession = None) -> bool:
        """Hard-delete a record by its primary key; dependent rows go by ON DELETE CASCADE."""
        try:
            result = await db.execute(delete(self.model).where(self.model.id == id))
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(
                f"Error removing {self.model.__name__} with id {id}: {e}",
                exc_info=True,
            )
            raise

    @check_local_db
    async def batch_create(
        self, obj_dicts: list[dict[str, Any]], *, db: AsyncSession = None
    ) -> list[ModelType]:
        """Create multiple records in a single transaction."""
        if not obj_dicts:
            return []

        try:
            db_objs = [self.model(**obj_dict) for obj_dict in obj_dicts]
            db.add_all(db_objs)
            await db.flush()
            return db_objs
        except SQLAlchemyError as e:
            logger.error(
                f"Error in batch_create for {self.model.__name__}: {e}", exc_info=True
            )
            raise
