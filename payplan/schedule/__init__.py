"""Installment schedule generation."""

from payplan.schedule.generator import DEFAULT_CADENCE_DAYS, ScheduleGenerator

__all__ = ["DEFAULT_CADENCE_DAYS", "ScheduleGenerator"]
