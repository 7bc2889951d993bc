from __future__ import annotations


class SlotbookError(Exception):
	"""Base class for every error the booking core raises on purpose."""

	code = "error"

	def __init__(self, message: str | None = None) -> None:
		self.message = message or self.__class__.__doc__ or self.code
		super().__init__(self.message)


class ValidationError(SlotbookError):
	"""Input rejected before anything was persisted."""

	code = "validation_error"


class NotFoundError(SlotbookError):
	code = "not_found"


class DoctorNotFound(NotFoundError):
	"""Doctor not found"""

	code = "doctor_not_found"


class ScheduleNotFound(NotFoundError):
	"""Schedule not found"""

	code = "schedule_not_found"


class SlotNotFound(NotFoundError):
	"""Slot not found"""

	code = "slot_not_found"


class AppointmentNotFound(NotFoundError):
	"""Appointment not found"""

	code = "appointment_not_found"


class ConflictError(SlotbookError):
	"""Request conflicts with the current state; re-prompt rather than retry."""

	code = "conflict"


class SlotUnavailable(ConflictError):
	"""This slot is no longer available"""

	code = "slot_unavailable"


class AlreadyBooked(ConflictError):
	"""This slot already has an active appointment"""

	code = "already_booked"


class SlotConflict(ConflictError):
	"""An overlapping slot already exists"""

	code = "slot_conflict"


class SlotInUse(ConflictError):
	"""Booked or referenced slots cannot be deleted"""

	code = "slot_in_use"


class InvalidStatusTransition(ConflictError):
	code = "invalid_status_transition"


class StorageError(SlotbookError):
	"""Persistence layer unavailable; safe to retry."""

	code = "storage_error"
