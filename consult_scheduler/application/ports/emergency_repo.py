from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol
from datetime import datetime


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass
class EmergencyCancellationDto:
    appointment_id: int
    patient_id: int
    reason: str
    expires_at: datetime
    id: Optional[int] = None
    status: ReviewStatus = ReviewStatus.PENDING
    admin_id: Optional[int] = None
    admin_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class EmergencyRescheduleDto:
    appointment_id: int
    doctor_id: int
    reason: str
    id: Optional[int] = None
    status: ReviewStatus = ReviewStatus.PENDING
    admin_id: Optional[int] = None
    admin_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EmergencyRequestsRepository(Protocol):
    # Both add_* methods raise DuplicateRequest when the appointment already has a PENDING request.
    def add_cancellation(self, request: EmergencyCancellationDto) -> EmergencyCancellationDto:
        ...

    def get_cancellation(self, request_id: int) -> Optional[EmergencyCancellationDto]:
        ...

    def find_pending_cancellation(self, appointment_id: int) -> Optional[EmergencyCancellationDto]:
        ...

    def list_cancellations(self, status: Optional[ReviewStatus] = None) -> List[EmergencyCancellationDto]:
        ...

    def save_cancellation(self, request: EmergencyCancellationDto, expected_status: ReviewStatus) -> bool:
        ...

    def add_reschedule(self, request: EmergencyRescheduleDto) -> EmergencyRescheduleDto:
        ...

    def get_reschedule(self, request_id: int) -> Optional[EmergencyRescheduleDto]:
        ...

    def find_pending_reschedule(self, appointment_id: int) -> Optional[EmergencyRescheduleDto]:
        ...

    def list_reschedules(self, status: Optional[ReviewStatus] = None) -> List[EmergencyRescheduleDto]:
        ...

    def save_reschedule(self, request: EmergencyRescheduleDto, expected_status: ReviewStatus) -> bool:
        ...
