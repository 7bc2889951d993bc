from __future__ import annotations

import enum
import datetime as dt
from typing import Iterable, Optional

from sqlalchemy import (
	Boolean,
	Date,
	DateTime,
	ForeignKey,
	Index,
	Integer,
	String,
	Text,
	Time,
	UniqueConstraint,
	func,
	text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .db import Base


class AppointmentStatus(str, enum.Enum):
	PENDING = "pending"
	CONFIRMED = "confirmed"
	CANCELLED = "cancelled"


# 0=Sun, 1=Mon ... 6=Sat
WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def weekday_of(day: dt.date) -> int:
	return day.isoweekday() % 7


class Weekdays(frozenset):
	"""Immutable set of weekday numbers in 0..6 (0 is Sunday)."""

	def __new__(cls, days: Iterable[int] = ()):
		return super().__new__(cls, (int(d) for d in days))

	@classmethod
	def parse(cls, raw: str) -> "Weekdays":
		return cls(part for part in raw.split(",") if part.strip())

	def serialize(self) -> str:
		return ",".join(str(d) for d in sorted(self))

	def is_valid(self) -> bool:
		return bool(self) and all(0 <= d <= 6 for d in self)

	def __contains__(self, item) -> bool:
		if isinstance(item, dt.date):
			item = weekday_of(item)
		return super().__contains__(item)

	def __repr__(self) -> str:
		return f"Weekdays({sorted(self)!r})"


class WeekdaySet(TypeDecorator):
	"""Stores Weekdays as a comma-joined string such as "1,3,5"."""

	impl = String(20)
	cache_ok = True

	def process_bind_param(self, value, dialect):
		if value is None:
			return None
		return Weekdays(value).serialize()

	def process_result_value(self, value, dialect):
		if value is None:
			return None
		return Weekdays.parse(value)


class Doctor(Base):
	__tablename__ = "doctors"

	id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
	slug: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
	name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
	specialty: Mapped[str] = mapped_column(String(200), nullable=False)
	examination_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=30)  # minutes
	created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())

	schedules: Mapped[list[DoctorSchedule]] = relationship(back_populates="doctor", cascade="all, delete-orphan")


class DoctorSchedule(Base):
	__tablename__ = "doctor_schedules"

	id: Mapped[int] = mapped_column(Integer, primary_key=True)
	doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"), index=True)
	start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
	end_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
	days_of_week: Mapped[Weekdays] = mapped_column(WeekdaySet, nullable=False)
	start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
	end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
	is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
	created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())

	doctor: Mapped[Doctor] = relationship(back_populates="schedules")


class TimeSlot(Base):
	__tablename__ = "time_slots"
	__table_args__ = (
		UniqueConstraint("doctor_id", "date", "start_time", name="uix_doctor_date_start"),
	)

	id: Mapped[int] = mapped_column(Integer, primary_key=True)
	doctor_id: Mapped[int] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"), index=True)
	schedule_id: Mapped[Optional[int]] = mapped_column(
		ForeignKey("doctor_schedules.id", ondelete="SET NULL"), nullable=True, index=True
	)
	date: Mapped[dt.date] = mapped_column(Date, nullable=False)
	start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
	end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
	is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
	created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())

	doctor: Mapped[Doctor] = relationship()


class Appointment(Base):
	__tablename__ = "appointments"
	__table_args__ = (
		# At most one non-cancelled appointment per slot, enforced by the database.
		Index(
			"uix_active_appointment_per_slot",
			"time_slot_id",
			unique=True,
			sqlite_where=text("status != 'cancelled'"),
			postgresql_where=text("status != 'cancelled'"),
		),
	)

	id: Mapped[int] = mapped_column(Integer, primary_key=True)
	time_slot_id: Mapped[int] = mapped_column(ForeignKey("time_slots.id"), nullable=False, index=True)
	patient_name: Mapped[str] = mapped_column(String(200), nullable=False)
	patient_email: Mapped[str] = mapped_column(String(320), nullable=False)
	patient_phone: Mapped[str] = mapped_column(String(50), nullable=False)
	notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
	status: Mapped[str] = mapped_column(String(20), nullable=False, default=AppointmentStatus.PENDING.value)
	created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())

	time_slot: Mapped[TimeSlot] = relationship()
