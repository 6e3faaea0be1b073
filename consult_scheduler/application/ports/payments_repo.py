from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol
from datetime import datetime

from .appointments_repo import Actor


class PaymentType(str, Enum):
    PAYMENT = "PAYMENT"
    REFUND = "REFUND"


class LedgerStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


@dataclass
class PaymentDto:
    appointment_id: int
    patient_id: int
    amount: int
    type: PaymentType
    status: LedgerStatus
    challan_number: str
    id: Optional[int] = None
    refund_reason: Optional[str] = None
    refund_initiated_by: Optional[Actor] = None
    transaction_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PaymentsRepository(Protocol):
    def add(self, payment: PaymentDto) -> PaymentDto:
        ...

    def get_pending_payment(self, appointment_id: int) -> Optional[PaymentDto]:
        ...

    def complete(self, payment_id: int, completed_at: datetime) -> Optional[PaymentDto]:
        """Mark a PENDING ledger row COMPLETED. COMPLETED rows are never touched."""
        ...

    def list_for_appointment(self, appointment_id: int) -> List[PaymentDto]:
        ...
