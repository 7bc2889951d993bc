"""
Slot generation

Expands a doctor's recurring weekly schedules into concrete, bookable time
slots. The planning half is pure: it walks every date of the effective
window, keeps the dates whose weekday belongs to the schedule, and cuts the
daily window into back-to-back slots of the doctor's examination duration,
dropping the trailing remainder. The persisting half inserts the planned
slots, treating an already-materialized (doctor_id, date, start_time) key as
skipped rather than as an error, so generation can be re-run at will.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Container, Iterable, Iterator, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from . import repositories as repo
from .config import get_settings
from .db import unit_of_work
from .errors import DoctorNotFound, ScheduleNotFound, ValidationError
from .models import DoctorSchedule, Weekdays

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def to_minutes(t: time) -> int:
	return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
	return time(minutes // 60, minutes % 60)


def validate_rule(
	start_date: date,
	end_date: date,
	days_of_week: Iterable[int],
	start_time: time,
	end_time: time,
) -> Weekdays:
	"""Check a recurring rule and return its normalized weekday set."""
	if start_date > end_date:
		raise ValidationError("start_date must not be after end_date")
	try:
		days = Weekdays(days_of_week)
	except (TypeError, ValueError) as exc:
		raise ValidationError("days_of_week must contain integers") from exc
	if not days:
		raise ValidationError("days_of_week must not be empty")
	if not days.is_valid():
		raise ValidationError("days_of_week values must be between 0 (Sunday) and 6 (Saturday)")
	if to_minutes(start_time) >= to_minutes(end_time):
		raise ValidationError("daily start_time must be before end_time")
	return days


def partition_day(start_time: time, end_time: time, duration: int) -> list[tuple[time, time]]:
	"""Cut [start_time, end_time) into consecutive intervals of `duration` minutes.

	A trailing interval that would run past end_time is dropped.
	"""
	if duration <= 0:
		raise ValidationError("examination duration must be a positive number of minutes")
	current = to_minutes(start_time)
	end = to_minutes(end_time)
	intervals = []
	while current + duration <= end:
		intervals.append((from_minutes(current), from_minutes(current + duration)))
		current += duration
	return intervals


def iter_dates(first: date, last: date) -> Iterator[date]:
	day = first
	while day <= last:
		yield day
		day += timedelta(days=1)


def generation_window(
	today: date,
	from_date: Optional[date] = None,
	to_date: Optional[date] = None,
	horizon_days: int = 90,
) -> tuple[date, date]:
	"""Resolve the requested window, capping it at `horizon_days` past its start."""
	start = from_date or today
	limit = start + timedelta(days=horizon_days)
	end = min(to_date, limit) if to_date else limit
	if end < start:
		raise ValidationError("to_date must not be before from_date")
	return start, end


def effective_window(schedule: DoctorSchedule, window: tuple[date, date]) -> Optional[tuple[date, date]]:
	start = max(schedule.start_date, window[0])
	end = min(schedule.end_date, window[1])
	if start > end:
		return None
	return start, end


@dataclass(frozen=True)
class SlotCandidate:
	doctor_id: int
	schedule_id: Optional[int]
	date: date
	start_time: time
	end_time: time

	@property
	def key(self) -> tuple[date, time]:
		return (self.date, self.start_time)


@dataclass
class SlotPlan:
	candidates: list[SlotCandidate] = field(default_factory=list)
	skipped: int = 0


def plan_slots(
	schedules: Sequence[DoctorSchedule],
	duration: int,
	window: tuple[date, date],
	existing: Container[tuple[date, time]] = frozenset(),
) -> SlotPlan:
	"""Expand schedules over the window, skipping keys that already exist.

	Candidates produced by an earlier schedule in the same call count as
	existing for later ones, so overlapping schedules never plan the same key
	twice.
	"""
	plan = SlotPlan()
	planned: set[tuple[date, time]] = set()
	for schedule in schedules:
		days = validate_rule(
			schedule.start_date, schedule.end_date, schedule.days_of_week, schedule.start_time, schedule.end_time
		)
		bounds = effective_window(schedule, window)
		if bounds is None:
			continue
		intervals = partition_day(schedule.start_time, schedule.end_time, duration)
		for day in iter_dates(*bounds):
			if day not in days:
				continue
			for start, end in intervals:
				key = (day, start)
				if key in planned or key in existing:
					plan.skipped += 1
					continue
				planned.add(key)
				plan.candidates.append(SlotCandidate(schedule.doctor_id, schedule.id, day, start, end))
	return plan


@dataclass
class GenerationResult:
	created: list[SlotCandidate] = field(default_factory=list)
	created_ids: list[int] = field(default_factory=list)
	skipped: int = 0

	@property
	def generated(self) -> int:
		return len(self.created)


async def generate_slots(
	db: AsyncSession,
	doctor_id: int,
	schedule_id: Optional[int] = None,
	from_date: Optional[date] = None,
	to_date: Optional[date] = None,
	today: Optional[date] = None,
) -> GenerationResult:
	"""Materialize slots for a doctor's active schedules (or one of them).

	The examination duration is read from the doctor on every call. Keys
	that exist already, or that a concurrent run inserts first, are counted
	as skipped.
	"""
	settings = get_settings()
	today = today or date.today()
	window = generation_window(today, from_date, to_date, settings.SLOT_HORIZON_DAYS)

	result = GenerationResult()
	async with unit_of_work(db):
		doctor = await repo.get_doctor(db, doctor_id)
		if doctor is None:
			raise DoctorNotFound(f"Doctor {doctor_id} not found")
		schedules = await repo.list_active_schedules(db, doctor_id, schedule_id)
		if not schedules:
			raise ScheduleNotFound("No active schedules found for this doctor")

		existing = await repo.existing_slot_keys(db, doctor_id, *window)
		plan = plan_slots(schedules, doctor.examination_duration, window, existing)
		result.skipped = plan.skipped
		for candidate in plan.candidates:
			slot_id = await repo.insert_slot_if_absent(
				db,
				candidate.doctor_id,
				candidate.date,
				candidate.start_time,
				candidate.end_time,
				schedule_id=candidate.schedule_id,
			)
			if slot_id is None:
				result.skipped += 1
				continue
			result.created.append(candidate)
			result.created_ids.append(slot_id)

	logger.info(
		"Generated %d slots for doctor %s (%d skipped) over %s..%s",
		result.generated,
		doctor_id,
		result.skipped,
		window[0],
		window[1],
	)
	return result
