import threading
from dataclasses import replace
from typing import Dict, List, Optional

from ....exceptions import DuplicateRequest
from ....application.ports.emergency_repo import (
    EmergencyCancellationDto,
    EmergencyRequestsRepository,
    EmergencyRescheduleDto,
    ReviewStatus,
)


class InMemoryEmergencyRequestsRepository(EmergencyRequestsRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancellations: Dict[int, EmergencyCancellationDto] = {}
        self._reschedules: Dict[int, EmergencyRescheduleDto] = {}

    @staticmethod
    def _add(store: Dict, request, duplicate_message: str):
        if any(r.appointment_id == request.appointment_id and r.status == ReviewStatus.PENDING for r in store.values()):
            raise DuplicateRequest(duplicate_message)
        stored = replace(request, id=len(store) + 1)
        store[stored.id] = stored
        return replace(stored)

    @staticmethod
    def _compare_and_set(store: Dict, request, expected_status: ReviewStatus) -> bool:
        current = store.get(request.id)
        if current is None or current.status != expected_status:
            return False
        store[request.id] = replace(request)
        return True

    def add_cancellation(self, request: EmergencyCancellationDto) -> EmergencyCancellationDto:
        with self._lock:
            return self._add(self._cancellations, request, "An emergency cancellation request is already pending for this appointment")

    def get_cancellation(self, request_id: int) -> Optional[EmergencyCancellationDto]:
        with self._lock:
            row = self._cancellations.get(request_id)
            return replace(row) if row else None

    def find_pending_cancellation(self, appointment_id: int) -> Optional[EmergencyCancellationDto]:
        with self._lock:
            row = next((r for r in self._cancellations.values() if r.appointment_id == appointment_id and r.status == ReviewStatus.PENDING), None)
            return replace(row) if row else None

    def list_cancellations(self, status: Optional[ReviewStatus] = None) -> List[EmergencyCancellationDto]:
        with self._lock:
            return [replace(r) for r in self._cancellations.values() if status is None or r.status == status]

    def save_cancellation(self, request: EmergencyCancellationDto, expected_status: ReviewStatus) -> bool:
        with self._lock:
            return self._compare_and_set(self._cancellations, request, expected_status)

    def add_reschedule(self, request: EmergencyRescheduleDto) -> EmergencyRescheduleDto:
        with self._lock:
            return self._add(self._reschedules, request, "An emergency reschedule request is already pending for this appointment")

    def get_reschedule(self, request_id: int) -> Optional[EmergencyRescheduleDto]:
        with self._lock:
            row = self._reschedules.get(request_id)
            return replace(row) if row else None

    def find_pending_reschedule(self, appointment_id: int) -> Optional[EmergencyRescheduleDto]:
        with self._lock:
            row = next((r for r in self._reschedules.values() if r.appointment_id == appointment_id and r.status == ReviewStatus.PENDING), None)
            return replace(row) if row else None

    def list_reschedules(self, status: Optional[ReviewStatus] = None) -> List[EmergencyRescheduleDto]:
        with self._lock:
            return [replace(r) for r in self._reschedules.values() if status is None or r.status == status]

    def save_reschedule(self, request: EmergencyRescheduleDto, expected_status: ReviewStatus) -> bool:
        with self._lock:
            return self._compare_and_set(self._reschedules, request, expected_status)
