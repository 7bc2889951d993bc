"""
Tests for booking.py

Claim, cancel, delete and status changes, including two patients racing
for the same slot.
"""

import asyncio

from sqlalchemy import select, update

from slotbook import booking
from slotbook.errors import (
    AlreadyBooked,
    AppointmentNotFound,
    ConflictError,
    InvalidStatusTransition,
    SlotNotFound,
    SlotUnavailable,
)
from slotbook.models import Appointment, AppointmentStatus, TimeSlot
from slotbook.slots import list_available_slots

from support import TODAY, DatabaseTestCase, patient


class TestClaim(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.doctor = await self.make_doctor()
        self.slot = await self.make_slot(self.doctor)

    async def test_claim_creates_confirmed_appointment_and_takes_slot(self):
        appt = await booking.claim(self.db, self.slot.id, patient(notes="first visit"))

        self.assertIsNotNone(appt.id)
        self.assertEqual(appt.status, AppointmentStatus.CONFIRMED.value)
        self.assertEqual(appt.time_slot_id, self.slot.id)
        self.assertEqual(appt.notes, "first visit")
        stored = await self.fetch_slot(self.slot.id)
        self.assertFalse(stored.is_available)
        self.assertEqual(await self.active_appointments(self.slot.id), 1)

    async def test_claimed_slot_disappears_from_free_list(self):
        await booking.claim(self.db, self.slot.id, patient())

        free = await list_available_slots(self.db, doctor_id=self.doctor.id, today=TODAY)

        self.assertNotIn(self.slot.id, [s.id for s in free])

    async def test_unknown_slot(self):
        with self.assertRaises(SlotNotFound):
            await booking.claim(self.db, 4242, patient())

    async def test_second_claim_is_rejected_without_writing(self):
        await booking.claim(self.db, self.slot.id, patient())

        with self.assertRaises(SlotUnavailable):
            await booking.claim(self.db, self.slot.id, patient(name="Someone Else"))

        async with self.Session() as session:
            count = len((await session.execute(select(Appointment))).scalars().all())
        self.assertEqual(count, 1)

    async def test_active_appointment_wins_over_stale_flag(self):
        slot_id = self.slot.id
        await booking.claim(self.db, slot_id, patient())
        async with self.Session() as session:
            await session.execute(update(TimeSlot).where(TimeSlot.id == slot_id).values(is_available=True))
            await session.commit()

        with self.assertRaises(AlreadyBooked):
            await booking.claim(self.db, slot_id, patient(name="Someone Else"))
        self.assertEqual(await self.active_appointments(slot_id), 1)
        self.assertFalse((await self.fetch_slot(slot_id)).is_available)

    async def test_concurrent_claims_produce_exactly_one_appointment(self):
        async def attempt(name):
            async with self.Session() as session:
                return await booking.claim(session, self.slot.id, patient(name=name))

        results = await asyncio.gather(attempt("Ana"), attempt("Bela"), return_exceptions=True)

        winners = [r for r in results if isinstance(r, Appointment)]
        losers = [r for r in results if isinstance(r, ConflictError)]
        self.assertEqual(len(winners), 1, results)
        self.assertEqual(len(losers), 1, results)
        self.assertEqual(await self.active_appointments(self.slot.id), 1)
        self.assertFalse((await self.fetch_slot(self.slot.id)).is_available)


class TestCancel(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.doctor = await self.make_doctor()
        self.slot = await self.make_slot(self.doctor)
        self.appt = await booking.claim(self.db, self.slot.id, patient())

    async def test_cancel_frees_slot_and_keeps_history(self):
        cancelled = await booking.cancel(self.db, self.appt.id)

        self.assertEqual(cancelled.status, AppointmentStatus.CANCELLED.value)
        self.assertTrue((await self.fetch_slot(self.slot.id)).is_available)
        free = await list_available_slots(self.db, doctor_id=self.doctor.id, today=TODAY)
        self.assertIn(self.slot.id, [s.id for s in free])

    async def test_rebooking_after_cancel_creates_new_appointment(self):
        await booking.cancel(self.db, self.appt.id)

        again = await booking.claim(self.db, self.slot.id, patient(name="Next Patient"))

        self.assertNotEqual(again.id, self.appt.id)
        async with self.Session() as session:
            rows = (await session.execute(
                select(Appointment).where(Appointment.time_slot_id == self.slot.id).order_by(Appointment.id)
            )).scalars().all()
        self.assertEqual([a.status for a in rows], ["cancelled", "confirmed"])

    async def test_cancel_twice_is_a_no_op(self):
        await booking.cancel(self.db, self.appt.id)
        other = await booking.claim(self.db, self.slot.id, patient(name="Next Patient"))

        again = await booking.cancel(self.db, self.appt.id)

        self.assertEqual(again.status, AppointmentStatus.CANCELLED.value)
        self.assertFalse((await self.fetch_slot(self.slot.id)).is_available)
        self.assertEqual(await self.active_appointments(self.slot.id), 1)
        self.assertIsNotNone(other.id)

    async def test_cancel_unknown(self):
        with self.assertRaises(AppointmentNotFound):
            await booking.cancel(self.db, 999)


class TestReleaseOnDelete(DatabaseTestCase):

    async def test_delete_removes_row_and_frees_slot(self):
        doctor = await self.make_doctor()
        slot = await self.make_slot(doctor)
        appt = await booking.claim(self.db, slot.id, patient())

        await booking.release_on_delete(self.db, appt.id)

        async with self.Session() as session:
            self.assertIsNone(await session.get(Appointment, appt.id))
        self.assertTrue((await self.fetch_slot(slot.id)).is_available)

    async def test_deleting_cancelled_appointment_keeps_new_booking(self):
        doctor = await self.make_doctor()
        slot = await self.make_slot(doctor)
        old = await booking.claim(self.db, slot.id, patient())
        await booking.cancel(self.db, old.id)
        await booking.claim(self.db, slot.id, patient(name="Next Patient"))

        await booking.release_on_delete(self.db, old.id)

        self.assertFalse((await self.fetch_slot(slot.id)).is_available)
        self.assertEqual(await self.active_appointments(slot.id), 1)

    async def test_delete_unknown(self):
        with self.assertRaises(AppointmentNotFound):
            await booking.release_on_delete(self.db, 999)


class TestUpdateStatus(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.doctor = await self.make_doctor()
        self.slot = await self.make_slot(self.doctor)

    async def _pending(self):
        appt = Appointment(
            time_slot_id=self.slot.id,
            patient_name="Pending Patient",
            patient_email="pending@example.com",
            patient_phone="555-0100",
            status=AppointmentStatus.PENDING.value,
        )
        self.db.add(appt)
        self.slot.is_available = False
        await self.db.commit()
        return appt

    async def test_pending_can_be_confirmed(self):
        appt = await self._pending()

        updated = await booking.update_status(self.db, appt.id, AppointmentStatus.CONFIRMED)

        self.assertEqual(updated.status, "confirmed")
        self.assertFalse((await self.fetch_slot(self.slot.id)).is_available)

    async def test_cancelling_through_status_update_frees_slot(self):
        appt = await self._pending()

        updated = await booking.update_status(self.db, appt.id, "cancelled")

        self.assertEqual(updated.status, "cancelled")
        self.assertTrue((await self.fetch_slot(self.slot.id)).is_available)

    async def test_confirmed_cannot_go_back_to_pending(self):
        appt = await booking.claim(self.db, self.slot.id, patient())

        with self.assertRaises(InvalidStatusTransition):
            await booking.update_status(self.db, appt.id, AppointmentStatus.PENDING)

    async def test_cancelled_is_terminal(self):
        appt = await booking.claim(self.db, self.slot.id, patient())
        await booking.cancel(self.db, appt.id)

        with self.assertRaises(InvalidStatusTransition):
            await booking.update_status(self.db, appt.id, AppointmentStatus.CONFIRMED)

    async def test_same_status_is_a_no_op(self):
        appt = await booking.claim(self.db, self.slot.id, patient())

        updated = await booking.update_status(self.db, appt.id, AppointmentStatus.CONFIRMED)

        self.assertEqual(updated.status, "confirmed")

    async def test_unknown_appointment(self):
        with self.assertRaises(AppointmentNotFound):
            await booking.update_status(self.db, 999, AppointmentStatus.CONFIRMED)
