"""Half-hour slot grid for a doctor's working day.

The grid is derived from the clinic hours in SchedulingPolicy. A slot that
overlaps or touches the lunch break is dropped, so with the default hours the
day runs 09:00-12:00 and 14:00-16:30 (13 slots).
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional

from ...exceptions import ValidationFailed
from ..ports.appointments_repo import AppointmentsRepository
from .scheduling_policy import SchedulingPolicy


@dataclass(frozen=True)
class Slot:
    start_time: str
    end_time: str


def is_weekend(target_date: date) -> bool:
    return target_date.weekday() >= 5


def to_minutes(value: str) -> int:
    try:
        parsed = datetime.strptime(value, "%H:%M")
    except (TypeError, ValueError):
        raise ValidationFailed("Invalid time format. Use HH:MM", reason="invalid_time")
    return parsed.hour * 60 + parsed.minute


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    return format_minutes(to_minutes(value) + minutes)


def generate_slots(target_date: date, occupied: Iterable[str] = (), policy: SchedulingPolicy = SchedulingPolicy()) -> List[Slot]:
    """Free slots for ``target_date`` with ``occupied`` start times removed. Empty on weekends."""
    if is_weekend(target_date):
        return []

    taken = set(occupied)
    day_start = policy.working_hours_start * 60
    day_end = policy.working_hours_end * 60
    break_start = policy.break_start * 60
    break_end = policy.break_end * 60
    duration = policy.slot_duration_minutes

    slots = []
    for start in range(day_start, day_end, duration):
        end = start + duration
        if end > day_end:
            continue
        # touching the break counts as overlapping it
        if start < break_end and end >= break_start:
            continue
        start_time = format_minutes(start)
        if start_time in taken:
            continue
        slots.append(Slot(start_time=start_time, end_time=format_minutes(end)))
    return slots


class SlotGrid:
    def __init__(self, repo: AppointmentsRepository, policy: SchedulingPolicy) -> None:
        self.repo = repo
        self.policy = policy

    def available_slots(self, doctor_id: int, target_date: date, exclude_appointment_id: Optional[int] = None) -> List[Slot]:
        occupied = self.repo.occupied_slots(doctor_id, target_date, exclude_id=exclude_appointment_id)
        return generate_slots(target_date, occupied, self.policy)

    def is_available(self, doctor_id: int, target_date: date, slot_start_time: str, exclude_appointment_id: Optional[int] = None) -> bool:
        return any(slot.start_time == slot_start_time for slot in self.available_slots(doctor_id, target_date, exclude_appointment_id))

    def end_time_for(self, slot_start_time: str) -> str:
        return add_minutes(slot_start_time, self.policy.slot_duration_minutes)
