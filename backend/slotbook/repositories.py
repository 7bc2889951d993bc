from __future__ import annotations

from datetime import date, time
from typing import Any, Optional

from sqlalchemy import and_, exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Appointment, AppointmentStatus, Doctor, DoctorSchedule, TimeSlot

CANCELLED = AppointmentStatus.CANCELLED.value

SlotKey = tuple[date, time]


def _active_appointment_on(slot_id_column) -> Any:
	return exists().where(
		Appointment.time_slot_id == slot_id_column,
		Appointment.status != CANCELLED,
	)


# Doctors

async def get_doctor(db: AsyncSession, doctor_id: int) -> Optional[Doctor]:
	return await db.get(Doctor, doctor_id)


async def get_doctor_by_slug(db: AsyncSession, slug: str) -> Optional[Doctor]:
	stmt = select(Doctor).where(Doctor.slug == slug)
	res = await db.execute(stmt)
	return res.scalar_one_or_none()


async def list_doctors(db: AsyncSession) -> list[Doctor]:
	stmt = select(Doctor).order_by(Doctor.name)
	res = await db.execute(stmt)
	return list(res.scalars().all())


# Schedules

async def get_schedule(db: AsyncSession, schedule_id: int) -> Optional[DoctorSchedule]:
	stmt = select(DoctorSchedule).where(DoctorSchedule.id == schedule_id).execution_options(populate_existing=True)
	res = await db.execute(stmt)
	return res.scalar_one_or_none()


async def list_schedules(db: AsyncSession, doctor_id: Optional[int] = None) -> list[tuple[DoctorSchedule, Doctor]]:
	stmt = select(DoctorSchedule, Doctor).join(Doctor, Doctor.id == DoctorSchedule.doctor_id)
	if doctor_id:
		stmt = stmt.where(DoctorSchedule.doctor_id == doctor_id)
	stmt = stmt.order_by(DoctorSchedule.start_date.desc(), DoctorSchedule.id.desc())
	rows = (await db.execute(stmt)).all()
	return [(schedule, doctor) for schedule, doctor in rows]


async def list_active_schedules(
	db: AsyncSession,
	doctor_id: int,
	schedule_id: Optional[int] = None,
) -> list[DoctorSchedule]:
	conds = [DoctorSchedule.doctor_id == doctor_id, DoctorSchedule.is_active.is_(True)]
	if schedule_id:
		conds.append(DoctorSchedule.id == schedule_id)
	stmt = select(DoctorSchedule).where(and_(*conds)).order_by(DoctorSchedule.id)
	res = await db.execute(stmt)
	return list(res.scalars().all())


# Slots

async def get_slot(db: AsyncSession, slot_id: int) -> Optional[TimeSlot]:
	stmt = select(TimeSlot).where(TimeSlot.id == slot_id).execution_options(populate_existing=True)
	res = await db.execute(stmt)
	return res.scalar_one_or_none()


async def find_slot(db: AsyncSession, doctor_id: int, day: date, start_time: time) -> Optional[TimeSlot]:
	stmt = select(TimeSlot).where(
		TimeSlot.doctor_id == doctor_id,
		TimeSlot.date == day,
		TimeSlot.start_time == start_time,
	)
	res = await db.execute(stmt)
	return res.scalar_one_or_none()


async def existing_slot_keys(db: AsyncSession, doctor_id: int, date_from: date, date_to: date) -> set[SlotKey]:
	"""Return the (date, start_time) keys already materialized for a doctor in a date range."""
	stmt = select(TimeSlot.date, TimeSlot.start_time).where(
		TimeSlot.doctor_id == doctor_id,
		TimeSlot.date >= date_from,
		TimeSlot.date <= date_to,
	)
	rows = (await db.execute(stmt)).all()
	return {(d, t) for d, t in rows}


async def insert_slot_if_absent(
	db: AsyncSession,
	doctor_id: int,
	day: date,
	start_time: time,
	end_time: time,
	schedule_id: Optional[int] = None,
) -> Optional[int]:
	"""Insert a slot unless its (doctor_id, date, start_time) key exists.

	Returns the new slot id, or None when the unique key was already taken,
	including by a concurrent writer.
	"""
	values = {
		"doctor_id": doctor_id,
		"schedule_id": schedule_id,
		"date": day,
		"start_time": start_time,
		"end_time": end_time,
		"is_available": True,
	}
	dialect = db.get_bind().dialect.name
	if dialect in ("sqlite", "postgresql"):
		if dialect == "sqlite":
			from sqlalchemy.dialects.sqlite import insert
		else:
			from sqlalchemy.dialects.postgresql import insert
		stmt = (
			insert(TimeSlot)
			.values(**values)
			.on_conflict_do_nothing(index_elements=["doctor_id", "date", "start_time"])
			.returning(TimeSlot.id)
		)
		return (await db.execute(stmt)).scalar_one_or_none()

	slot = TimeSlot(**values)
	try:
		async with db.begin_nested():
			db.add(slot)
	except IntegrityError:
		return None
	return slot.id


async def insert_slot(db: AsyncSession, doctor_id: int, day: date, start_time: time, end_time: time) -> TimeSlot:
	slot = TimeSlot(doctor_id=doctor_id, date=day, start_time=start_time, end_time=end_time, is_available=True)
	db.add(slot)
	await db.flush()
	return slot


async def find_overlapping_slot(
	db: AsyncSession,
	doctor_id: int,
	day: date,
	start_time: time,
	end_time: time,
) -> Optional[TimeSlot]:
	stmt = select(TimeSlot).where(
		TimeSlot.doctor_id == doctor_id,
		TimeSlot.date == day,
		TimeSlot.start_time < end_time,
		TimeSlot.end_time > start_time,
	).limit(1)
	res = await db.execute(stmt)
	return res.scalar_one_or_none()


async def list_available_slots(
	db: AsyncSession,
	today: date,
	doctor_id: Optional[int] = None,
	date_from: Optional[date] = None,
	date_to: Optional[date] = None,
) -> list[TimeSlot]:
	"""Free slots: flagged available, not in the past, and without an active appointment."""
	lower = max(today, date_from) if date_from else today
	conds = [
		TimeSlot.is_available.is_(True),
		TimeSlot.date >= lower,
		~_active_appointment_on(TimeSlot.id),
	]
	if doctor_id:
		conds.append(TimeSlot.doctor_id == doctor_id)
	if date_to:
		conds.append(TimeSlot.date <= date_to)
	stmt = (
		select(TimeSlot)
		.options(joinedload(TimeSlot.doctor))
		.where(and_(*conds))
		.order_by(TimeSlot.date, TimeSlot.start_time)
	)
	res = await db.execute(stmt)
	return list(res.scalars().all())


async def list_slots_with_bookings(
	db: AsyncSession,
	doctor_id: Optional[int] = None,
	date_from: Optional[date] = None,
	date_to: Optional[date] = None,
) -> list[tuple[TimeSlot, Doctor, Optional[Appointment]]]:
	"""Every slot joined with its doctor and its active appointment, if any."""
	stmt = (
		select(TimeSlot, Doctor, Appointment)
		.join(Doctor, Doctor.id == TimeSlot.doctor_id)
		.outerjoin(
			Appointment,
			and_(Appointment.time_slot_id == TimeSlot.id, Appointment.status != CANCELLED),
		)
	)
	if doctor_id:
		stmt = stmt.where(TimeSlot.doctor_id == doctor_id)
	if date_from:
		stmt = stmt.where(TimeSlot.date >= date_from)
	if date_to:
		stmt = stmt.where(TimeSlot.date <= date_to)
	stmt = stmt.order_by(TimeSlot.date, TimeSlot.start_time)
	rows = (await db.execute(stmt)).all()
	return [(slot, doctor, appt) for slot, doctor, appt in rows]


async def claim_slot(db: AsyncSession, slot_id: int) -> bool:
	"""Flip a slot to unavailable only if it is still free.

	A single conditional UPDATE, so of two concurrent claims at most one
	sees a matched row.
	"""
	stmt = (
		update(TimeSlot)
		.where(
			TimeSlot.id == slot_id,
			TimeSlot.is_available.is_(True),
			~_active_appointment_on(TimeSlot.id),
		)
		.values(is_available=False)
		.execution_options(synchronize_session=False)
	)
	res = await db.execute(stmt)
	return res.rowcount == 1


async def release_slot(db: AsyncSession, slot_id: int) -> bool:
	"""Mark a slot available again unless another active appointment still holds it.

	A missing slot is a no-op.
	"""
	stmt = (
		update(TimeSlot)
		.where(TimeSlot.id == slot_id, ~_active_appointment_on(TimeSlot.id))
		.values(is_available=True)
		.execution_options(synchronize_session=False)
	)
	res = await db.execute(stmt)
	return res.rowcount == 1


async def update_availability(db: AsyncSession, slot_id: int, is_available: bool) -> bool:
	stmt = (
		update(TimeSlot)
		.where(TimeSlot.id == slot_id)
		.values(is_available=is_available)
		.execution_options(synchronize_session=False)
	)
	res = await db.execute(stmt)
	return res.rowcount == 1


async def slot_has_appointments(db: AsyncSession, slot_id: int) -> bool:
	stmt = select(exists().where(Appointment.time_slot_id == slot_id))
	return bool((await db.execute(stmt)).scalar())


# Appointments

async def get_appointment(db: AsyncSession, appointment_id: int) -> Optional[Appointment]:
	stmt = select(Appointment).where(Appointment.id == appointment_id).execution_options(populate_existing=True)
	res = await db.execute(stmt)
	return res.scalar_one_or_none()


async def get_active_appointment_for_slot(db: AsyncSession, slot_id: int) -> Optional[Appointment]:
	stmt = select(Appointment).where(
		Appointment.time_slot_id == slot_id,
		Appointment.status != CANCELLED,
	).limit(1)
	res = await db.execute(stmt)
	return res.scalar_one_or_none()


async def list_appointments(
	db: AsyncSession,
	status: Optional[str] = None,
) -> list[tuple[Appointment, TimeSlot, Doctor]]:
	stmt = (
		select(Appointment, TimeSlot, Doctor)
		.join(TimeSlot, TimeSlot.id == Appointment.time_slot_id)
		.join(Doctor, Doctor.id == TimeSlot.doctor_id)
	)
	if status:
		stmt = stmt.where(Appointment.status == status)
	stmt = stmt.order_by(TimeSlot.date.desc(), TimeSlot.start_time.desc())
	rows = (await db.execute(stmt)).all()
	return [(appt, slot, doctor) for appt, slot, doctor in rows]
