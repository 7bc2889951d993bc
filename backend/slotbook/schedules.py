from __future__ import annotations

import logging
from datetime import date, time
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from . import repositories as repo
from .db import unit_of_work
from .errors import DoctorNotFound, ScheduleNotFound
from .models import DoctorSchedule
from .slot_generator import validate_rule

logger = logging.getLogger(__name__)


async def create_schedule(
	db: AsyncSession,
	doctor_id: int,
	start_date: date,
	end_date: date,
	days_of_week: Iterable[int],
	start_time: time,
	end_time: time,
) -> DoctorSchedule:
	days = validate_rule(start_date, end_date, days_of_week, start_time, end_time)
	async with unit_of_work(db):
		if await repo.get_doctor(db, doctor_id) is None:
			raise DoctorNotFound(f"Doctor {doctor_id} not found")
		schedule = DoctorSchedule(
			doctor_id=doctor_id,
			start_date=start_date,
			end_date=end_date,
			days_of_week=days,
			start_time=start_time,
			end_time=end_time,
			is_active=True,
		)
		db.add(schedule)
	await db.refresh(schedule)
	logger.info("Created schedule %s for doctor %s (days %s)", schedule.id, doctor_id, days.serialize())
	return schedule


async def update_schedule(
	db: AsyncSession,
	schedule_id: int,
	start_date: date,
	end_date: date,
	days_of_week: Iterable[int],
	start_time: time,
	end_time: time,
	is_active: bool = True,
) -> DoctorSchedule:
	"""Replace a schedule's rule. Already generated slots are left as they are."""
	days = validate_rule(start_date, end_date, days_of_week, start_time, end_time)
	async with unit_of_work(db):
		schedule = await repo.get_schedule(db, schedule_id)
		if schedule is None:
			raise ScheduleNotFound(f"Schedule {schedule_id} not found")
		schedule.start_date = start_date
		schedule.end_date = end_date
		schedule.days_of_week = days
		schedule.start_time = start_time
		schedule.end_time = end_time
		schedule.is_active = is_active
	logger.info("Updated schedule %s", schedule_id)
	return schedule


async def set_schedule_active(db: AsyncSession, schedule_id: int, is_active: bool) -> DoctorSchedule:
	async with unit_of_work(db):
		schedule = await repo.get_schedule(db, schedule_id)
		if schedule is None:
			raise ScheduleNotFound(f"Schedule {schedule_id} not found")
		schedule.is_active = is_active
	logger.info("Schedule %s %s", schedule_id, "activated" if is_active else "deactivated")
	return schedule
