from __future__ import annotations

from datetime import date


def get_today() -> date:
	"""Current local date; overridden in tests to pin the clock."""
	return date.today()
