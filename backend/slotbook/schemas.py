from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import AppointmentStatus


class DoctorCreate(BaseModel):
	name: str
	specialty: str
	slug: Optional[str] = None
	examination_duration: Optional[int] = None


class DoctorUpdate(BaseModel):
	name: Optional[str] = None
	specialty: Optional[str] = None
	examination_duration: Optional[int] = None


class DoctorOut(BaseModel):
	id: int
	slug: str
	name: str
	specialty: str
	examination_duration: int

	class Config:
		from_attributes = True


class ScheduleCreate(BaseModel):
	doctor_id: int
	start_date: dt.date
	end_date: dt.date
	days_of_week: list[int]  # 0=Sun ... 6=Sat
	start_time: dt.time
	end_time: dt.time


class ScheduleUpdate(BaseModel):
	start_date: dt.date
	end_date: dt.date
	days_of_week: list[int]
	start_time: dt.time
	end_time: dt.time
	is_active: bool = True


class ScheduleOut(BaseModel):
	id: int
	doctor_id: int
	start_date: dt.date
	end_date: dt.date
	days_of_week: list[int]
	start_time: dt.time
	end_time: dt.time
	is_active: bool
	doctor_name: Optional[str] = None
	doctor_specialty: Optional[str] = None

	class Config:
		from_attributes = True

	@field_validator("days_of_week", mode="before")
	@classmethod
	def _sorted_days(cls, days):
		return sorted(int(d) for d in days)


class GenerateSlotsRequest(BaseModel):
	doctor_id: int
	schedule_id: Optional[int] = None
	from_date: Optional[dt.date] = None
	to_date: Optional[dt.date] = None


class GenerateSlotsResult(BaseModel):
	generated: int
	skipped: int
	message: str


class SlotCreate(BaseModel):
	doctor_id: int
	date: dt.date
	start_time: dt.time
	end_time: dt.time


class SlotOut(BaseModel):
	id: int
	doctor_id: int
	schedule_id: Optional[int] = None
	date: dt.date
	start_time: dt.time
	end_time: dt.time
	is_available: bool

	class Config:
		from_attributes = True


class SlotWithDoctorOut(SlotOut):
	doctor_name: str
	doctor_specialty: str


class AdminSlotOut(SlotWithDoctorOut):
	appointment_id: Optional[int] = None
	patient_name: Optional[str] = None
	patient_email: Optional[str] = None
	patient_phone: Optional[str] = None
	appointment_status: Optional[str] = None


class DoctorAvailableSlots(BaseModel):
	doctor: DoctorOut
	slots: list[SlotOut]
	slots_by_date: dict[str, list[SlotOut]]
	date_range: dict[str, dt.date]


class PatientInfo(BaseModel):
	patient_name: str = Field(min_length=1)
	patient_email: EmailStr
	patient_phone: str = Field(min_length=1)
	notes: Optional[str] = None


class AppointmentCreate(PatientInfo):
	time_slot_id: int


class AppointmentOut(BaseModel):
	id: int
	time_slot_id: int
	patient_name: str
	patient_email: str
	patient_phone: str
	notes: Optional[str] = None
	status: AppointmentStatus
	created_at: Optional[dt.datetime] = None

	class Config:
		from_attributes = True


class AppointmentDetailOut(AppointmentOut):
	date: dt.date
	start_time: dt.time
	end_time: dt.time
	doctor_name: str
	doctor_specialty: str


class AppointmentStatusUpdate(BaseModel):
	status: AppointmentStatus


class AvailableSlotsQuery(BaseModel):
	doctor_id: Optional[int] = None
	doctor_slug: Optional[str] = None
	date_from: Optional[dt.date] = None
	date_to: Optional[dt.date] = None


class CancelAppointmentInput(BaseModel):
	appointment_id: int
