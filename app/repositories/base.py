"""
Base repository with the CRUD and paging primitives every repository shares.

Repositories wrap one AsyncSession (the request's transaction) and never
commit; the caller owns the transaction boundary. Persistence failures are
logged and re-raised as DatabaseOperationError so the API answers with a
generic 500 instead of leaking driver messages.
"""

import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import Base
from app.exceptions import DatabaseOperationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


@dataclass
class Page(Generic[ModelT]):
    """One page of query results plus the total row count."""
    items: list[ModelT]
    total: int
    page: int
    size: int


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, record_id: int) -> ModelT | None:
        return await self.session.get(self.model, record_id)

    async def save(self, instance: ModelT) -> ModelT:
        """Add (or re-attach) an instance and flush it so generated ids are set."""
        self.session.add(instance)
        await self.flush()
        return instance

    async def delete(self, instance: ModelT) -> None:
        await self.session.delete(instance)
        await self.flush()

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            logger.error("Flush failed for %s: %s", self.model.__name__, exc)
            raise DatabaseOperationError(str(exc)) from exc

    async def execute(self, statement: Any):
        try:
            return await self.session.execute(statement)
        except SQLAlchemyError as exc:
            logger.error("Query failed for %s: %s", self.model.__name__, exc)
            raise DatabaseOperationError(str(exc)) from exc

    async def paginate(self, statement: Select, page: int, size: int) -> Page[ModelT]:
        """Run an ordered SELECT with LIMIT/OFFSET and a matching COUNT query."""
        count_stmt = select(func.count()).select_from(
            statement.order_by(None).subquery()
        )
        total = (await self.execute(count_stmt)).scalar_one()
        result = await self.execute(statement.offset(page * size).limit(size))
        return Page(items=list(result.scalars().all()), total=total, page=page, size=size)

    async def find_all_paged(self, page: int, size: int, *order_by) -> Page[ModelT]:
        return await self.paginate(select(self.model).order_by(*order_by), page, size)
