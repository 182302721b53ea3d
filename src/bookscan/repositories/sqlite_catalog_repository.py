from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import CursorResult, DateTime, String, Text, delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from bookscan.domain.models import CatalogEntry
from bookscan.domain.ports import CatalogStoreError, EntryNotFoundError
from bookscan.repositories.base import AbstractCatalogRepository


class Base(DeclarativeBase):
    pass


class CatalogEntryORM(Base):
    __tablename__ = "catalog_entries"

    identifier: Mapped[str] = mapped_column(String(32), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    # The entry itself is stored as JSON; identifier and created_at are
    # only broken out for the conflict key and ordering.
    data: Mapped[str] = mapped_column(Text, nullable=False)


class SQLiteCatalogRepository(AbstractCatalogRepository):
    def __init__(self, database_url: str) -> None:
        self.engine = create_async_engine(database_url)
        self.async_session_maker = async_sessionmaker(self.engine, expire_on_commit=False)

    async def initialize(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def list_all(self) -> list[CatalogEntry]:
        try:
            async with self.async_session_maker() as session:
                result = await session.execute(
                    select(CatalogEntryORM).order_by(CatalogEntryORM.created_at.desc())
                )
                return [CatalogEntry.model_validate_json(row.data) for row in result.scalars()]
        except SQLAlchemyError as e:
            raise CatalogStoreError("list_all", str(e)) from e

    async def find_by_identifier(self, identifier: str) -> CatalogEntry | None:
        try:
            async with self.async_session_maker() as session:
                orm_entry = await session.get(CatalogEntryORM, identifier)
                if orm_entry:
                    return CatalogEntry.model_validate_json(orm_entry.data)
                return None
        except SQLAlchemyError as e:
            raise CatalogStoreError("find", str(e)) from e

    async def upsert(self, entry: CatalogEntry) -> CatalogEntry:
        stmt = sqlite_insert(CatalogEntryORM).values(
            identifier=entry.identifier,
            created_at=entry.created_at,
            data=entry.model_dump_json(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CatalogEntryORM.identifier],
            set_={"created_at": stmt.excluded.created_at, "data": stmt.excluded.data},
        )
        try:
            async with self.async_session_maker() as session, session.begin():
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise CatalogStoreError("upsert", str(e)) from e
        return entry

    async def update(self, identifier: str, fields: dict[str, Any]) -> CatalogEntry:
        try:
            async with self.async_session_maker() as session, session.begin():
                orm_entry = await session.get(CatalogEntryORM, identifier)
                if orm_entry is None:
                    raise EntryNotFoundError(identifier)
                current = CatalogEntry.model_validate_json(orm_entry.data)
                updated = CatalogEntry.model_validate(current.model_dump() | fields)
                orm_entry.data = updated.model_dump_json()
        except SQLAlchemyError as e:
            raise CatalogStoreError("update", str(e)) from e
        return updated

    async def delete(self, identifier: str) -> bool:
        try:
            async with self.async_session_maker() as session, session.begin():
                result = await session.execute(
                    delete(CatalogEntryORM).where(CatalogEntryORM.identifier == identifier)
                )
                if isinstance(result, CursorResult):
                    return bool(result.rowcount > 0)
                return False
        except SQLAlchemyError as e:
            raise CatalogStoreError("delete", str(e)) from e
