from __future__ import annotations

import asyncio
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import repositories as repo
from .config import get_settings
from .db import unit_of_work
from .errors import ScheduleNotFound, StorageError
from .models import Appointment, DoctorSchedule, TimeSlot

logger = logging.getLogger(__name__)


async def _delete_schedule_once(db: AsyncSession, schedule_id: int) -> tuple[int, int]:
	async with unit_of_work(db):
		schedule = await repo.get_schedule(db, schedule_id)
		if schedule is None:
			raise ScheduleNotFound(f"Schedule {schedule_id} not found")

		booked = select(Appointment.time_slot_id)
		# Slots that carry any appointment (cancelled included) are history: keep them, detached.
		detached = await db.execute(
			update(TimeSlot)
			.where(TimeSlot.schedule_id == schedule_id, TimeSlot.id.in_(booked))
			.values(schedule_id=None)
			.execution_options(synchronize_session=False)
		)
		removed = await db.execute(
			delete(TimeSlot)
			.where(TimeSlot.schedule_id == schedule_id, TimeSlot.id.not_in(booked))
			.execution_options(synchronize_session=False)
		)
		await db.execute(
			delete(DoctorSchedule)
			.where(DoctorSchedule.id == schedule_id)
			.execution_options(synchronize_session=False)
		)
	db.expunge_all()
	return removed.rowcount, detached.rowcount


async def delete_schedule(db: AsyncSession, schedule_id: int) -> None:
	"""Delete a schedule together with its unbooked slots in one transaction.

	Booked slots survive with their schedule reference cleared. A storage
	failure rolls the whole attempt back and the deletion is retried.
	"""
	attempts = max(1, get_settings().LIFECYCLE_MAX_ATTEMPTS)
	for attempt in range(1, attempts + 1):
		try:
			removed, detached = await _delete_schedule_once(db, schedule_id)
		except StorageError:
			if attempt == attempts:
				raise
			logger.warning("Deleting schedule %s failed (attempt %d/%d), retrying", schedule_id, attempt, attempts)
			await asyncio.sleep(0.1 * attempt)
			continue
		logger.info(
			"Deleted schedule %s: %d unbooked slots removed, %d booked slots kept",
			schedule_id,
			removed,
			detached,
		)
		return
