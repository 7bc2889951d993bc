from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from . import booking, doctors as doctor_service, repositories as repo, schedules as schedule_service
from .db import get_db
from .deps import get_today
from .lifecycle import delete_schedule
from .models import AppointmentStatus, Doctor, DoctorSchedule
from .schemas import (
    AdminSlotOut,
    AppointmentDetailOut,
    AppointmentOut,
    AppointmentStatusUpdate,
    DoctorCreate,
    DoctorOut,
    DoctorUpdate,
    GenerateSlotsRequest,
    GenerateSlotsResult,
    ScheduleCreate,
    ScheduleOut,
    ScheduleUpdate,
    SlotCreate,
    SlotOut,
)
from .slot_generator import generate_slots
from .slots import create_slot, delete_slot

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _schedule_out(schedule: DoctorSchedule, doctor: Optional[Doctor] = None) -> ScheduleOut:
    out = ScheduleOut.model_validate(schedule)
    if doctor is not None:
        out.doctor_name = doctor.name
        out.doctor_specialty = doctor.specialty
    return out


# Doctors

@router.get("/doctors", response_model=list[DoctorOut])
async def list_doctors(db: AsyncSession = Depends(get_db)):
    return await repo.list_doctors(db)


@router.post("/doctors", response_model=DoctorOut, status_code=201)
async def create_doctor(payload: DoctorCreate, db: AsyncSession = Depends(get_db)):
    return await doctor_service.create_doctor(
        db, payload.name, payload.specialty, payload.slug, payload.examination_duration
    )


@router.patch("/doctors/{doctor_id}", response_model=DoctorOut)
async def update_doctor(doctor_id: int, payload: DoctorUpdate, db: AsyncSession = Depends(get_db)):
    return await doctor_service.update_doctor(
        db, doctor_id, payload.name, payload.specialty, payload.examination_duration
    )


# Schedules

@router.get("/schedules", response_model=list[ScheduleOut])
async def list_schedules(doctor_id: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    rows = await repo.list_schedules(db, doctor_id)
    return [_schedule_out(schedule, doctor) for schedule, doctor in rows]


@router.post("/schedules", response_model=ScheduleOut, status_code=201)
async def create_schedule(payload: ScheduleCreate, db: AsyncSession = Depends(get_db)):
    schedule = await schedule_service.create_schedule(
        db,
        payload.doctor_id,
        payload.start_date,
        payload.end_date,
        payload.days_of_week,
        payload.start_time,
        payload.end_time,
    )
    return _schedule_out(schedule)


@router.put("/schedules/{schedule_id}", response_model=ScheduleOut)
async def update_schedule(schedule_id: int, payload: ScheduleUpdate, db: AsyncSession = Depends(get_db)):
    schedule = await schedule_service.update_schedule(
        db,
        schedule_id,
        payload.start_date,
        payload.end_date,
        payload.days_of_week,
        payload.start_time,
        payload.end_time,
        payload.is_active,
    )
    return _schedule_out(schedule)


@router.post("/schedules/{schedule_id}/activate", response_model=ScheduleOut)
async def activate_schedule(schedule_id: int, db: AsyncSession = Depends(get_db)):
    return _schedule_out(await schedule_service.set_schedule_active(db, schedule_id, True))


@router.post("/schedules/{schedule_id}/deactivate", response_model=ScheduleOut)
async def deactivate_schedule(schedule_id: int, db: AsyncSession = Depends(get_db)):
    return _schedule_out(await schedule_service.set_schedule_active(db, schedule_id, False))


@router.delete("/schedules/{schedule_id}", status_code=204)
async def remove_schedule(schedule_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a schedule and its unbooked slots; booked slots are kept."""
    await delete_schedule(db, schedule_id)
    return Response(status_code=204)


@router.post("/generate-slots", response_model=GenerateSlotsResult)
async def generate(payload: GenerateSlotsRequest, db: AsyncSession = Depends(get_db), today: date = Depends(get_today)):
    """Expand the doctor's active schedules into slots. Safe to repeat."""
    result = await generate_slots(
        db, payload.doctor_id, payload.schedule_id, payload.from_date, payload.to_date, today=today
    )
    return GenerateSlotsResult(
        generated=result.generated,
        skipped=result.skipped,
        message=f"{result.generated} slots created, {result.skipped} already existed",
    )


# Slots

@router.get("/slots", response_model=list[AdminSlotOut])
async def list_slots(
    doctor_id: Optional[int] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
):
    """All slots with the patient of their active appointment, if any."""
    rows = await repo.list_slots_with_bookings(db, doctor_id, from_date, to_date)
    results = []
    for slot, doctor, appt in rows:
        results.append(AdminSlotOut(
            **SlotOut.model_validate(slot).model_dump(),
            doctor_name=doctor.name,
            doctor_specialty=doctor.specialty,
            appointment_id=appt.id if appt else None,
            patient_name=appt.patient_name if appt else None,
            patient_email=appt.patient_email if appt else None,
            patient_phone=appt.patient_phone if appt else None,
            appointment_status=appt.status if appt else None,
        ))
    return results


@router.post("/slots", response_model=SlotOut, status_code=201)
async def add_slot(payload: SlotCreate, db: AsyncSession = Depends(get_db)):
    return await create_slot(db, payload.doctor_id, payload.date, payload.start_time, payload.end_time)


@router.delete("/slots/{slot_id}", status_code=204)
async def remove_slot(slot_id: int, db: AsyncSession = Depends(get_db)):
    await delete_slot(db, slot_id)
    return Response(status_code=204)


# Appointments

@router.get("/appointments", response_model=list[AppointmentDetailOut])
async def list_appointments(status: Optional[AppointmentStatus] = None, db: AsyncSession = Depends(get_db)):
    rows = await repo.list_appointments(db, status.value if status else None)
    return [
        AppointmentDetailOut(
            **AppointmentOut.model_validate(appt).model_dump(),
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            doctor_name=doctor.name,
            doctor_specialty=doctor.specialty,
        )
        for appt, slot, doctor in rows
    ]


@router.patch("/appointments/{appointment_id}", response_model=AppointmentOut)
async def update_appointment_status(
    appointment_id: int, payload: AppointmentStatusUpdate, db: AsyncSession = Depends(get_db)
):
    """Change status; cancelling frees the slot."""
    return await booking.update_status(db, appointment_id, payload.status)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentOut)
async def cancel_appointment(appointment_id: int, db: AsyncSession = Depends(get_db)):
    return await booking.cancel(db, appointment_id)


@router.delete("/appointments/{appointment_id}", status_code=204)
async def delete_appointment(appointment_id: int, db: AsyncSession = Depends(get_db)):
    await booking.release_on_delete(db, appointment_id)
    return Response(status_code=204)
