"""Transaction scope and pagination shared by the lifecycle services."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from formalization.config import settings
from formalization.errors import PersistenceError, StaleVersionError
from formalization.models.pagination import Page

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def transaction(
    session: AsyncSession,
    operation: str,
    entity: str = "record",
    entity_id: Any = None,
) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on any failure.

    Storage errors are re-raised as PersistenceError naming the operation;
    a stale version becomes StaleVersionError. Business errors pass through
    unchanged.
    """
    try:
        yield session
        await session.commit()
    except StaleDataError as e:
        await session.rollback()
        logger.warning("Stale %s %s while attempting to %s", entity, entity_id, operation)
        raise StaleVersionError(entity, entity_id) from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Storage failure while attempting to %s", operation)
        raise PersistenceError(operation) from e
    except BaseException:
        await session.rollback()
        raise


def clamp_page(page: int, size: int | None) -> tuple[int, int]:
    size = size or settings.default_page_size
    return max(page, 0), min(max(size, 1), settings.max_page_size)


async def paginate(session: AsyncSession, stmt: Select, page: int = 0, size: int | None = None) -> Page:
    """Run a select as one page plus a total count."""
    page, size = clamp_page(page, size)
    total = await session.scalar(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    )
    rows = await session.scalars(stmt.offset(page * size).limit(size))
    return Page(items=list(rows), total=total or 0, page=page, size=size)
