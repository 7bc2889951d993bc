from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings
from .errors import StorageError

logger = logging.getLogger(__name__)

settings = get_settings()
DATABASE_URL = settings.DATABASE_URL or settings.SQLITE_URL


def make_engine(url: str) -> AsyncEngine:
	connect_args = {}
	if url.startswith("sqlite"):
		connect_args["timeout"] = settings.SQLITE_BUSY_TIMEOUT
	eng = create_async_engine(url, echo=False, future=True, connect_args=connect_args)
	if url.startswith("sqlite"):

		@event.listens_for(eng.sync_engine, "connect")
		def _enable_foreign_keys(dbapi_connection, _record):
			cursor = dbapi_connection.cursor()
			cursor.execute("PRAGMA foreign_keys=ON")
			cursor.close()

	return eng


engine = make_engine(DATABASE_URL)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


class Base(DeclarativeBase):
	pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
	async with SessionLocal() as session:
		yield session


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
	"""Commit on success, roll back on any failure.

	Integrity errors propagate untouched so callers can translate them into
	conflicts; every other driver error becomes a StorageError.
	"""
	try:
		yield db
		await db.commit()
	except IntegrityError:
		await db.rollback()
		raise
	except DBAPIError as exc:
		await db.rollback()
		logger.error("Storage failure, transaction rolled back: %s", exc)
		raise StorageError(f"Storage unavailable: {exc.orig}") from exc
	except BaseException:
		await db.rollback()
		raise
