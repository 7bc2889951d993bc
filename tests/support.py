"""Shared fixtures: every test case gets its own SQLite database file."""

import os
import tempfile
import unittest
from datetime import date, time

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotbook import models  # noqa: F401
from slotbook.db import Base, make_engine
from slotbook.models import Appointment, Doctor, DoctorSchedule, TimeSlot, Weekdays
from slotbook.schemas import PatientInfo

TODAY = date(2026, 1, 1)


def patient(name="Priya Sharma", email="priya.sharma@example.com", phone="+36 30 123 4567", notes=None):
    return PatientInfo(patient_name=name, patient_email=email, patient_phone=phone, notes=notes)


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Creates the schema in a fresh database before each test."""

    async def asyncSetUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        url = "sqlite+aiosqlite:///" + os.path.join(self.tmpdir.name, "slotbook-test.db")
        self.engine = make_engine(url)
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.Session = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)
        self.db = self.Session()

    async def asyncTearDown(self):
        await self.db.close()
        await self.engine.dispose()
        self.tmpdir.cleanup()

    async def make_doctor(self, name="Dr. Ahuja", duration=30, slug=None):
        doctor = Doctor(
            slug=slug or name.lower().replace(".", "").replace(" ", "-"),
            name=name,
            specialty="General Physician",
            examination_duration=duration,
        )
        self.db.add(doctor)
        await self.db.commit()
        return doctor

    async def make_schedule(
        self,
        doctor,
        days=(1, 3),
        start_date=date(2026, 1, 5),
        end_date=date(2026, 1, 31),
        start_time=time(8, 0),
        end_time=time(9, 0),
        is_active=True,
    ):
        schedule = DoctorSchedule(
            doctor_id=doctor.id,
            start_date=start_date,
            end_date=end_date,
            days_of_week=Weekdays(days),
            start_time=start_time,
            end_time=end_time,
            is_active=is_active,
        )
        self.db.add(schedule)
        await self.db.commit()
        return schedule

    async def make_slot(self, doctor, day=date(2026, 1, 12), start=time(10, 0), end=time(10, 30), schedule=None):
        slot = TimeSlot(
            doctor_id=doctor.id,
            schedule_id=schedule.id if schedule else None,
            date=day,
            start_time=start,
            end_time=end,
            is_available=True,
        )
        self.db.add(slot)
        await self.db.commit()
        return slot

    async def fetch_slot(self, slot_id):
        async with self.Session() as session:
            return await session.get(TimeSlot, slot_id)

    async def count_slots(self, **filters):
        async with self.Session() as session:
            stmt = select(func.count(TimeSlot.id)).filter_by(**filters)
            return (await session.execute(stmt)).scalar_one()

    async def active_appointments(self, slot_id):
        async with self.Session() as session:
            stmt = select(func.count(Appointment.id)).where(
                Appointment.time_slot_id == slot_id,
                Appointment.status != "cancelled",
            )
            return (await session.execute(stmt)).scalar_one()
