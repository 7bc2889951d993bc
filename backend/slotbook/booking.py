"""
Booking coordinator

Turns a free slot into an appointment and hands it back on cancellation or
deletion. Free-ness is decided by the absence of an active (non-cancelled)
appointment; the slot's is_available flag is a cache kept in step with it.
A claim is made atomic by a conditional UPDATE on the slot inside the same
transaction as the appointment insert, with a partial unique index on
active appointments as the database-level backstop.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import repositories as repo
from .db import unit_of_work
from .errors import AlreadyBooked, AppointmentNotFound, InvalidStatusTransition, SlotNotFound, SlotUnavailable
from .models import Appointment, AppointmentStatus
from .schemas import PatientInfo

logger = logging.getLogger(__name__)

# Patient bookings are confirmed straight away; "pending" is only reachable via the admin path.
DEFAULT_BOOKING_STATUS = AppointmentStatus.CONFIRMED

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
	AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
	AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.CANCELLED}),
	AppointmentStatus.CANCELLED: frozenset(),
}


async def claim(db: AsyncSession, slot_id: int, patient: PatientInfo) -> Appointment:
	"""Book a slot for a patient.

	Raises SlotNotFound, SlotUnavailable or AlreadyBooked; on any of them
	nothing is written.
	"""
	try:
		async with unit_of_work(db):
			slot = await repo.get_slot(db, slot_id)
			if slot is None:
				raise SlotNotFound(f"Slot {slot_id} not found")
			if not slot.is_available:
				raise SlotUnavailable()
			if await repo.get_active_appointment_for_slot(db, slot_id) is not None:
				raise AlreadyBooked()

			if not await repo.claim_slot(db, slot_id):
				# Another claim committed between our checks and the update.
				raise AlreadyBooked()

			appt = Appointment(
				time_slot_id=slot_id,
				patient_name=patient.patient_name,
				patient_email=str(patient.patient_email),
				patient_phone=patient.patient_phone,
				notes=patient.notes or None,
				status=DEFAULT_BOOKING_STATUS.value,
			)
			db.add(appt)
			await db.flush()
	except IntegrityError as exc:
		logger.warning("Claim on slot %s lost to a concurrent booking", slot_id)
		raise AlreadyBooked() from exc
	except (SlotUnavailable, AlreadyBooked):
		logger.warning("Claim on slot %s rejected: slot is taken", slot_id)
		raise

	await db.refresh(appt)
	logger.info("Slot %s claimed by appointment %s", slot_id, appt.id)
	return appt


async def cancel(db: AsyncSession, appointment_id: int) -> Appointment:
	"""Cancel an appointment and return its slot to the free pool.

	Cancelling an already cancelled appointment changes nothing.
	"""
	async with unit_of_work(db):
		appt = await repo.get_appointment(db, appointment_id)
		if appt is None:
			raise AppointmentNotFound(f"Appointment {appointment_id} not found")
		if appt.status == AppointmentStatus.CANCELLED.value:
			return appt
		appt.status = AppointmentStatus.CANCELLED.value
		await db.flush()
		await repo.release_slot(db, appt.time_slot_id)
	logger.info("Appointment %s cancelled, slot %s released", appointment_id, appt.time_slot_id)
	return appt


async def release_on_delete(db: AsyncSession, appointment_id: int) -> None:
	"""Physically remove an appointment, freeing its slot if nothing else holds it."""
	async with unit_of_work(db):
		appt = await repo.get_appointment(db, appointment_id)
		if appt is None:
			raise AppointmentNotFound(f"Appointment {appointment_id} not found")
		slot_id = appt.time_slot_id
		await db.execute(
			delete(Appointment)
			.where(Appointment.id == appointment_id)
			.execution_options(synchronize_session=False)
		)
		db.expunge(appt)
		await repo.release_slot(db, slot_id)
	logger.info("Appointment %s deleted, slot %s released", appointment_id, slot_id)


async def update_status(db: AsyncSession, appointment_id: int, new_status: AppointmentStatus) -> Appointment:
	"""Admin status change. Cancelling through here frees the slot too."""
	new_status = AppointmentStatus(new_status)
	if new_status is AppointmentStatus.CANCELLED:
		appt = await repo.get_appointment(db, appointment_id)
		if appt is not None and appt.status != AppointmentStatus.CANCELLED.value:
			return await cancel(db, appointment_id)

	async with unit_of_work(db):
		appt = await repo.get_appointment(db, appointment_id)
		if appt is None:
			raise AppointmentNotFound(f"Appointment {appointment_id} not found")
		current = AppointmentStatus(appt.status)
		if current is new_status:
			return appt
		if new_status not in ALLOWED_TRANSITIONS[current]:
			raise InvalidStatusTransition(f"Cannot change appointment status from {current.value} to {new_status.value}")
		appt.status = new_status.value
	logger.info("Appointment %s status %s -> %s", appointment_id, current.value, new_status.value)
	return appt
