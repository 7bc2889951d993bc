from __future__ import annotations

import asyncio
import logging
from datetime import date, time, timedelta

from sqlalchemy import select

from .db import SessionLocal
from .doctors import create_doctor
from .errors import ScheduleNotFound
from .models import Doctor, DoctorSchedule
from .schedules import create_schedule
from .slot_generator import generate_slots

logger = logging.getLogger(__name__)

DEMO_DOCTORS = [
    # name, specialty, examination minutes
    ("Dr. Ahuja", "General Physician", 30),
    ("Dr. Kovács Éva", "Dermatology", 20),
]

# Mon-Fri mornings and afternoons (0=Sun)
DEMO_WINDOWS = [
    ({1, 2, 3, 4, 5}, time(9, 0), time(12, 0)),
    ({1, 3}, time(14, 0), time(17, 0)),
]


async def seed() -> None:
    today = date.today()
    async with SessionLocal() as db:
        for name, specialty, minutes in DEMO_DOCTORS:
            doctor = (await db.execute(select(Doctor).where(Doctor.name == name))).scalar_one_or_none()
            if doctor is None:
                doctor = await create_doctor(db, name, specialty, examination_duration=minutes)

            has_schedule = (await db.execute(
                select(DoctorSchedule.id).where(DoctorSchedule.doctor_id == doctor.id).limit(1)
            )).scalar_one_or_none()
            if has_schedule is None:
                for days, start, end in DEMO_WINDOWS:
                    await create_schedule(db, doctor.id, today, today + timedelta(days=60), days, start, end)

            # Re-running only fills gaps
            try:
                result = await generate_slots(db, doctor.id, today=today)
            except ScheduleNotFound:
                logger.info(f"Skipped {name}: no active schedules")
                continue
            logger.info(f"Seeded {name}: {result.generated} new slots, {result.skipped} existing")


if __name__ == "__main__":
    asyncio.run(seed())
