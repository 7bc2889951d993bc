from __future__ import annotations

import logging
import re
import unicodedata
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import repositories as repo
from .config import get_settings
from .db import unit_of_work
from .errors import ConflictError, DoctorNotFound, ValidationError
from .models import Doctor

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
	"""'Dr. Kovács Éva' -> 'dr-kovacs-eva'"""
	ascii_name = unicodedata.normalize("NFD", name.lower())
	ascii_name = "".join(ch for ch in ascii_name if not unicodedata.combining(ch))
	return re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")


def _check_duration(duration: int) -> int:
	if duration <= 0 or duration > 24 * 60:
		raise ValidationError("examination_duration must be between 1 and 1440 minutes")
	return duration


async def create_doctor(
	db: AsyncSession,
	name: str,
	specialty: str,
	slug: Optional[str] = None,
	examination_duration: Optional[int] = None,
) -> Doctor:
	if not name.strip() or not specialty.strip():
		raise ValidationError("name and specialty are required")
	slug = slug or slugify(name)
	if not slug:
		raise ValidationError("Could not derive a slug from the doctor's name")
	duration = _check_duration(examination_duration or get_settings().DEFAULT_EXAMINATION_MINUTES)

	doctor = Doctor(slug=slug, name=name.strip(), specialty=specialty.strip(), examination_duration=duration)
	try:
		async with unit_of_work(db):
			db.add(doctor)
	except IntegrityError as exc:
		raise ConflictError(f"A doctor with slug '{slug}' already exists") from exc
	await db.refresh(doctor)
	logger.info("Created doctor %s (%s)", doctor.id, doctor.slug)
	return doctor


async def update_doctor(
	db: AsyncSession,
	doctor_id: int,
	name: Optional[str] = None,
	specialty: Optional[str] = None,
	examination_duration: Optional[int] = None,
) -> Doctor:
	"""Partial update. A new examination duration only affects future slot generation."""
	async with unit_of_work(db):
		doctor = await repo.get_doctor(db, doctor_id)
		if doctor is None:
			raise DoctorNotFound(f"Doctor {doctor_id} not found")
		if name is not None:
			doctor.name = name
		if specialty is not None:
			doctor.specialty = specialty
		if examination_duration is not None:
			doctor.examination_duration = _check_duration(examination_duration)
	logger.info("Updated doctor %s", doctor_id)
	return doctor
