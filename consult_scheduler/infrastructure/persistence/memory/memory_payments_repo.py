import threading
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from ....application.ports.payments_repo import LedgerStatus, PaymentDto, PaymentsRepository, PaymentType


class InMemoryPaymentsRepository(PaymentsRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.rows: List[PaymentDto] = []

    def add(self, payment: PaymentDto) -> PaymentDto:
        with self._lock:
            stored = replace(payment, id=len(self.rows) + 1)
            self.rows.append(stored)
            return replace(stored)

    def get_pending_payment(self, appointment_id: int) -> Optional[PaymentDto]:
        with self._lock:
            row = next(
                (p for p in self.rows if p.appointment_id == appointment_id and p.type == PaymentType.PAYMENT and p.status == LedgerStatus.PENDING),
                None,
            )
            return replace(row) if row else None

    def complete(self, payment_id: int, completed_at: datetime) -> Optional[PaymentDto]:
        with self._lock:
            for index, row in enumerate(self.rows):
                if row.id == payment_id and row.status == LedgerStatus.PENDING:
                    self.rows[index] = replace(row, status=LedgerStatus.COMPLETED, transaction_date=completed_at)
                    return replace(self.rows[index])
            return None

    def list_for_appointment(self, appointment_id: int) -> List[PaymentDto]:
        with self._lock:
            return [replace(p) for p in self.rows if p.appointment_id == appointment_id]
