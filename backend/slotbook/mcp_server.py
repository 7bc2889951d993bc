from __future__ import annotations

from datetime import date
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from . import booking
from .db import SessionLocal
from .errors import SlotbookError
from .repositories import list_doctors
from .schemas import (
	AppointmentCreate,
	AppointmentOut,
	AvailableSlotsQuery,
	CancelAppointmentInput,
	DoctorOut,
	GenerateSlotsRequest,
	SlotOut,
)
from .slot_generator import generate_slots
from .slots import available_slots_for_doctor, list_available_slots

mcp = FastMCP("slotbook")


async def _get_session() -> AsyncSession:
	return SessionLocal()


def _error(exc: SlotbookError) -> dict[str, Any]:
	return {"error": exc.message, "code": exc.code}


@mcp.tool()
async def list_doctors_tool() -> dict[str, Any]:
	"""Return all doctors (id, slug, name, specialty, examination_duration)."""
	session = await _get_session()
	async with session as db:
		docs = await list_doctors(db)
		return {"doctors": [DoctorOut.model_validate(d).model_dump(mode="json") for d in docs]}


@mcp.tool()
async def available_slots_tool(query: dict[str, Any]) -> dict[str, Any]:
	"""
	List bookable slots, optionally for one doctor and a date range.
	Args:
		query: {"doctor_id": int | None, "doctor_slug": str | None, "date_from": "YYYY-MM-DD" | None, "date_to": "YYYY-MM-DD" | None}
	Returns:
		{"slots": [{"id": int, "doctor_id": int, "date": "YYYY-MM-DD", "start_time": "HH:MM:SS", ...}]}
	"""
	try:
		payload = AvailableSlotsQuery(**query)
	except ValidationError as e:
		return {"error": str(e)}

	session = await _get_session()
	async with session as db:
		try:
			if payload.doctor_slug:
				_, slots, _ = await available_slots_for_doctor(db, payload.doctor_slug, payload.date_from, payload.date_to)
			else:
				slots = await list_available_slots(db, payload.doctor_id, payload.date_from, payload.date_to)
		except SlotbookError as e:
			return _error(e)
		return {"slots": [SlotOut.model_validate(s).model_dump(mode="json") for s in slots]}


@mcp.tool()
async def book_appointment_tool(data: dict[str, Any]) -> dict[str, Any]:
	"""
	Book a free slot for a patient.
	Args:
		{"time_slot_id": int, "patient_name": str, "patient_email": str, "patient_phone": str, "notes": str | None}
	Returns:
		{"appointment": {...}, "message": str} or {"error": str, "code": "already_booked" | "slot_unavailable" | ...}
	"""
	try:
		payload = AppointmentCreate(**data)
	except ValidationError as e:
		return {"error": str(e)}

	session = await _get_session()
	async with session as db:
		try:
			appt = await booking.claim(db, payload.time_slot_id, payload)
		except SlotbookError as e:
			return _error(e)
		return {
			"appointment": AppointmentOut.model_validate(appt).model_dump(mode="json"),
			"message": f"Booked appointment #{appt.id} for {appt.patient_name}.",
		}


@mcp.tool()
async def cancel_appointment_tool(data: dict[str, Any]) -> dict[str, Any]:
	"""Cancel an appointment and free its slot.
	Args: {"appointment_id": int}
	Returns: {"appointment_id": int, "status": "cancelled", "message": str}
	"""
	try:
		payload = CancelAppointmentInput(**data)
	except ValidationError as e:
		return {"error": str(e)}

	session = await _get_session()
	async with session as db:
		try:
			appt = await booking.cancel(db, payload.appointment_id)
		except SlotbookError as e:
			return _error(e)
		return {"appointment_id": appt.id, "status": appt.status, "message": f"Appointment #{appt.id} cancelled."}


@mcp.tool()
async def generate_slots_tool(data: dict[str, Any]) -> dict[str, Any]:
	"""Generate slots from a doctor's active schedules. Re-running is harmless.
	Args: {"doctor_id": int, "schedule_id": int | None, "from_date": "YYYY-MM-DD" | None, "to_date": "YYYY-MM-DD" | None}
	Returns: {"generated": int, "skipped": int}
	"""
	try:
		payload = GenerateSlotsRequest(**data)
	except ValidationError as e:
		return {"error": str(e)}

	session = await _get_session()
	async with session as db:
		try:
			result = await generate_slots(
				db, payload.doctor_id, payload.schedule_id, payload.from_date, payload.to_date, today=date.today()
			)
		except SlotbookError as e:
			return _error(e)
		return {"generated": result.generated, "skipped": result.skipped}


if __name__ == "__main__":
	mcp.run()
