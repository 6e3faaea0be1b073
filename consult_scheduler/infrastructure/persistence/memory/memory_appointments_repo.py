import threading
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

from ....exceptions import StaleAppointmentError
from ....application.ports.appointments_repo import (
    AppointmentDto,
    AppointmentsRepository,
    AppointmentStatus,
    SLOT_HOLDING_STATUSES,
)


class InMemoryAppointmentsRepository(AppointmentsRepository):
    """Process-local store with the same compare-and-set semantics as the SQL adapter."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[int, AppointmentDto] = {}
        self._next_id = 1

    def add(self, appointment: AppointmentDto) -> AppointmentDto:
        with self._lock:
            stored = replace(appointment, id=self._next_id, version=0)
            self._rows[stored.id] = stored
            self._next_id += 1
            return replace(stored)

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        with self._lock:
            row = self._rows.get(appointment_id)
            return replace(row) if row else None

    def get_by_challan(self, challan_number: str) -> Optional[AppointmentDto]:
        with self._lock:
            row = next((a for a in self._rows.values() if a.challan_number == challan_number), None)
            return replace(row) if row else None

    def save(self, appointment: AppointmentDto) -> AppointmentDto:
        with self._lock:
            current = self._rows.get(appointment.id)
            if current is None or current.version != appointment.version:
                raise StaleAppointmentError(appointment.id)
            stored = replace(appointment, version=appointment.version + 1)
            self._rows[stored.id] = stored
            return replace(stored)

    def occupied_slots(self, doctor_id: int, on_date: date, exclude_id: Optional[int] = None) -> Set[str]:
        with self._lock:
            return {
                a.slot_start_time
                for a in self._rows.values()
                if a.doctor_id == doctor_id
                and a.appointment_date == on_date
                and a.status in SLOT_HOLDING_STATUSES
                and a.id != exclude_id
            }

    def find_slot_holders(self, doctor_id: int, on_date: date, slot_start_time: str, statuses: Iterable[AppointmentStatus]) -> List[AppointmentDto]:
        wanted = set(statuses)
        return self._select(lambda a: a.doctor_id == doctor_id and a.appointment_date == on_date and a.slot_start_time == slot_start_time and a.status in wanted)

    def list_by_status(self, statuses: Iterable[AppointmentStatus]) -> List[AppointmentDto]:
        wanted = set(statuses)
        return self._select(lambda a: a.status in wanted)

    def list_for_patient(self, patient_id: int, statuses: Optional[Iterable[AppointmentStatus]] = None) -> List[AppointmentDto]:
        wanted = set(statuses) if statuses else None
        return self._select(lambda a: a.patient_id == patient_id and (wanted is None or a.status in wanted))

    def list_for_doctor(self, doctor_id: int, statuses: Optional[Iterable[AppointmentStatus]] = None, on_date: Optional[date] = None) -> List[AppointmentDto]:
        wanted = set(statuses) if statuses else None
        return self._select(
            lambda a: a.doctor_id == doctor_id
            and (wanted is None or a.status in wanted)
            and (on_date is None or a.appointment_date == on_date)
        )

    def _select(self, predicate) -> List[AppointmentDto]:
        with self._lock:
            return [replace(a) for a in sorted(self._rows.values(), key=lambda a: a.id) if predicate(a)]
