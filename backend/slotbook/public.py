from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from . import booking, repositories as repo
from .db import get_db
from .deps import get_today
from .errors import DoctorNotFound
from .schemas import AppointmentCreate, AppointmentOut, DoctorAvailableSlots, DoctorOut, SlotOut, SlotWithDoctorOut
from .slots import available_slots_for_doctor, group_by_date, list_available_slots

router = APIRouter(prefix="/api", tags=["booking"])


@router.get("/doctors", response_model=list[DoctorOut])
async def doctors(db: AsyncSession = Depends(get_db)):
    """List doctors ordered by name."""
    return await repo.list_doctors(db)


@router.get("/doctors/{slug}", response_model=DoctorOut)
async def doctor_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    doctor = await repo.get_doctor_by_slug(db, slug)
    if doctor is None:
        raise DoctorNotFound(f"Doctor '{slug}' not found")
    return doctor


@router.get("/doctors/{slug}/available-slots", response_model=DoctorAvailableSlots)
async def doctor_available_slots(
    slug: str,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db),
    today: date = Depends(get_today),
):
    """Free slots of one doctor, flat and grouped by date."""
    doctor, slots, (start, end) = await available_slots_for_doctor(db, slug, date_from, date_to, today=today)
    return {
        "doctor": doctor,
        "slots": slots,
        "slots_by_date": group_by_date(slots),
        "date_range": {"from": start, "to": end},
    }


@router.get("/slots", response_model=list[SlotWithDoctorOut])
async def available_slots(
    doctor_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    today: date = Depends(get_today),
):
    """Bookable slots, optionally narrowed to a doctor and a date range."""
    slots = await list_available_slots(db, doctor_id, date_from, date_to, today=today)
    return [
        SlotWithDoctorOut(
            **SlotOut.model_validate(slot).model_dump(),
            doctor_name=slot.doctor.name,
            doctor_specialty=slot.doctor.specialty,
        )
        for slot in slots
    ]


@router.post("/appointments", response_model=AppointmentOut, status_code=201)
async def book_appointment(payload: AppointmentCreate, db: AsyncSession = Depends(get_db)):
    """Claim a slot for a patient. Conflicts come back as 409."""
    return await booking.claim(db, payload.time_slot_id, payload)
