from __future__ import annotations

import logging
from datetime import date, time, timedelta
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import repositories as repo
from .config import get_settings
from .db import unit_of_work
from .errors import DoctorNotFound, SlotConflict, SlotInUse, SlotNotFound, ValidationError
from .models import Doctor, TimeSlot
from .slot_generator import to_minutes

logger = logging.getLogger(__name__)


async def list_available_slots(
	db: AsyncSession,
	doctor_id: Optional[int] = None,
	date_from: Optional[date] = None,
	date_to: Optional[date] = None,
	today: Optional[date] = None,
) -> list[TimeSlot]:
	"""Slots a patient may book: no active appointment and not dated before today."""
	return await repo.list_available_slots(db, today or date.today(), doctor_id, date_from, date_to)


async def available_slots_for_doctor(
	db: AsyncSession,
	slug: str,
	date_from: Optional[date] = None,
	date_to: Optional[date] = None,
	today: Optional[date] = None,
) -> tuple[Doctor, list[TimeSlot], tuple[date, date]]:
	today = today or date.today()
	date_from = max(today, date_from) if date_from else today
	date_to = date_to or today + timedelta(days=get_settings().AVAILABLE_SLOTS_DAYS)
	doctor = await repo.get_doctor_by_slug(db, slug)
	if doctor is None:
		raise DoctorNotFound(f"Doctor '{slug}' not found")
	slots = await repo.list_available_slots(db, today, doctor.id, date_from, date_to)
	return doctor, slots, (date_from, date_to)


def group_by_date(slots: list[TimeSlot]) -> dict[str, list[TimeSlot]]:
	grouped: dict[str, list[TimeSlot]] = {}
	for slot in slots:
		grouped.setdefault(slot.date.isoformat(), []).append(slot)
	return grouped


async def create_slot(db: AsyncSession, doctor_id: int, day: date, start_time: time, end_time: time) -> TimeSlot:
	"""Create a one-off slot outside any schedule."""
	if to_minutes(start_time) >= to_minutes(end_time):
		raise ValidationError("start_time must be before end_time")
	try:
		async with unit_of_work(db):
			if await repo.get_doctor(db, doctor_id) is None:
				raise DoctorNotFound(f"Doctor {doctor_id} not found")
			clash = await repo.find_overlapping_slot(db, doctor_id, day, start_time, end_time)
			if clash is not None:
				raise SlotConflict(
					f"Overlaps existing slot {clash.start_time:%H:%M}-{clash.end_time:%H:%M} on {day.isoformat()}"
				)
			slot = await repo.insert_slot(db, doctor_id, day, start_time, end_time)
	except IntegrityError as exc:
		raise SlotConflict() from exc
	await db.refresh(slot)
	logger.info("Created slot %s for doctor %s on %s %s", slot.id, doctor_id, day, start_time)
	return slot


async def delete_slot(db: AsyncSession, slot_id: int) -> None:
	"""Delete a slot that is free and has never been booked."""
	async with unit_of_work(db):
		slot = await repo.get_slot(db, slot_id)
		if slot is None:
			raise SlotNotFound(f"Slot {slot_id} not found")
		if not slot.is_available or await repo.slot_has_appointments(db, slot_id):
			raise SlotInUse()
		await db.execute(delete(TimeSlot).where(TimeSlot.id == slot_id).execution_options(synchronize_session=False))
		db.expunge(slot)
	logger.info("Deleted slot %s", slot_id)
