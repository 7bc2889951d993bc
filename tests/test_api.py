"""
HTTP tests against the FastAPI app with the database and clock overridden
"""

from datetime import date

import httpx

from slotbook.db import get_db
from slotbook.deps import get_today
from slotbook.main import app

from support import TODAY, DatabaseTestCase

BOOKING = {
    "patient_name": "Priya Sharma",
    "patient_email": "priya.sharma@example.com",
    "patient_phone": "+36 30 123 4567",
}


class TestApi(DatabaseTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()

        async def override_get_db():
            async with self.Session() as session:
                yield session

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_today] = lambda: TODAY
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self):
        await self.client.aclose()
        app.dependency_overrides.clear()
        await super().asyncTearDown()

    async def _doctor_with_slots(self):
        res = await self.client.post(
            "/api/admin/doctors",
            json={"name": "Dr. Ahuja", "specialty": "General Physician", "examination_duration": 30},
        )
        self.assertEqual(res.status_code, 201, res.text)
        doctor = res.json()
        res = await self.client.post(
            "/api/admin/schedules",
            json={
                "doctor_id": doctor["id"],
                "start_date": "2026-01-05",
                "end_date": "2026-01-31",
                "days_of_week": [3, 1],
                "start_time": "08:00",
                "end_time": "09:00",
            },
        )
        self.assertEqual(res.status_code, 201, res.text)
        schedule = res.json()
        res = await self.client.post(
            "/api/admin/generate-slots",
            json={"doctor_id": doctor["id"], "from_date": "2026-01-05"},
        )
        self.assertEqual(res.status_code, 200, res.text)
        return doctor, schedule, res.json()

    async def test_health(self):
        res = await self.client.get("/health")

        self.assertEqual(res.json(), {"status": "healthy", "service": "slotbook-api"})

    async def test_generate_is_idempotent_over_http(self):
        doctor, schedule, first = await self._doctor_with_slots()

        self.assertEqual(schedule["days_of_week"], [1, 3])
        self.assertEqual(first["generated"], 16)
        res = await self.client.post(
            "/api/admin/generate-slots",
            json={"doctor_id": doctor["id"], "from_date": "2026-01-05"},
        )
        self.assertEqual(res.json()["generated"], 0)
        self.assertEqual(res.json()["skipped"], 16)

    async def test_book_and_conflict(self):
        doctor, _, _ = await self._doctor_with_slots()
        slots = (await self.client.get("/api/slots", params={"doctor_id": doctor["id"]})).json()
        self.assertEqual(len(slots), 16)
        self.assertEqual(
            {(s["doctor_name"], s["doctor_specialty"]) for s in slots},
            {("Dr. Ahuja", "General Physician")},
        )
        slot_id = slots[0]["id"]

        res = await self.client.post("/api/appointments", json={**BOOKING, "time_slot_id": slot_id})
        self.assertEqual(res.status_code, 201, res.text)
        self.assertEqual(res.json()["status"], "confirmed")

        res = await self.client.post("/api/appointments", json={**BOOKING, "time_slot_id": slot_id})
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.json()["success"], False)
        self.assertEqual(res.json()["code"], "slot_unavailable")

        slots = (await self.client.get("/api/slots", params={"doctor_id": doctor["id"]})).json()
        self.assertNotIn(slot_id, [s["id"] for s in slots])

    async def test_booking_unknown_slot_is_404(self):
        res = await self.client.post("/api/appointments", json={**BOOKING, "time_slot_id": 999})

        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["code"], "slot_not_found")

    async def test_invalid_schedule_is_400(self):
        res = await self.client.post(
            "/api/admin/doctors", json={"name": "Dr. Ahuja", "specialty": "General Physician"}
        )
        res = await self.client.post(
            "/api/admin/schedules",
            json={
                "doctor_id": res.json()["id"],
                "start_date": "2026-01-31",
                "end_date": "2026-01-05",
                "days_of_week": [1],
                "start_time": "08:00",
                "end_time": "09:00",
            },
        )

        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["code"], "validation_error")

    async def test_cancel_via_status_update_frees_slot(self):
        doctor, _, _ = await self._doctor_with_slots()
        slot_id = (await self.client.get("/api/slots")).json()[0]["id"]
        appt = (await self.client.post("/api/appointments", json={**BOOKING, "time_slot_id": slot_id})).json()

        res = await self.client.patch(f"/api/admin/appointments/{appt['id']}", json={"status": "cancelled"})

        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(res.json()["status"], "cancelled")
        slots = (await self.client.get("/api/slots", params={"doctor_id": doctor["id"]})).json()
        self.assertIn(slot_id, [s["id"] for s in slots])
        res = await self.client.patch(f"/api/admin/appointments/{appt['id']}", json={"status": "confirmed"})
        self.assertEqual(res.status_code, 409)

    async def test_available_slots_by_slug(self):
        await self._doctor_with_slots()

        res = await self.client.get(
            "/api/doctors/dr-ahuja/available-slots", params={"from": "2025-12-01", "to": "2026-01-07"}
        )

        body = res.json()
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(body["doctor"]["slug"], "dr-ahuja")
        self.assertEqual(sorted(body["slots_by_date"]), ["2026-01-05", "2026-01-07"])
        self.assertEqual(body["date_range"], {"from": TODAY.isoformat(), "to": "2026-01-07"})

    async def test_delete_schedule_keeps_booked_slot(self):
        doctor, schedule, _ = await self._doctor_with_slots()
        slot_id = (await self.client.get("/api/slots")).json()[0]["id"]
        appt = (await self.client.post("/api/appointments", json={**BOOKING, "time_slot_id": slot_id})).json()

        res = await self.client.delete(f"/api/admin/schedules/{schedule['id']}")
        self.assertEqual(res.status_code, 204)

        rows = (await self.client.get("/api/admin/slots", params={"doctor_id": doctor["id"]})).json()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["id"], slot_id)
        self.assertIsNone(rows[0]["schedule_id"])
        self.assertEqual(rows[0]["appointment_id"], appt["id"])

        res = await self.client.delete(f"/api/admin/schedules/{schedule['id']}")
        self.assertEqual(res.status_code, 404)

    async def test_delete_appointment(self):
        await self._doctor_with_slots()
        slot_id = (await self.client.get("/api/slots")).json()[0]["id"]
        appt = (await self.client.post("/api/appointments", json={**BOOKING, "time_slot_id": slot_id})).json()

        res = await self.client.delete(f"/api/admin/appointments/{appt['id']}")

        self.assertEqual(res.status_code, 204)
        listed = (await self.client.get("/api/admin/appointments")).json()
        self.assertEqual(listed, [])
        self.assertTrue((await self.fetch_slot(slot_id)).is_available)

    async def test_appointments_listing_filters_by_status(self):
        await self._doctor_with_slots()
        ids = [s["id"] for s in (await self.client.get("/api/slots")).json()[:2]]
        first = (await self.client.post("/api/appointments", json={**BOOKING, "time_slot_id": ids[0]})).json()
        await self.client.post("/api/appointments", json={**BOOKING, "time_slot_id": ids[1]})
        await self.client.post(f"/api/admin/appointments/{first['id']}/cancel")

        cancelled = (await self.client.get("/api/admin/appointments", params={"status": "cancelled"})).json()

        self.assertEqual([a["id"] for a in cancelled], [first["id"]])
        self.assertEqual(cancelled[0]["doctor_name"], "Dr. Ahuja")
        self.assertEqual(cancelled[0]["date"], date(2026, 1, 5).isoformat())
