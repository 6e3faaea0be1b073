from datetime import datetime
from typing import List, Optional
from sqlmodel import Session, select

from .....db.models import Payment
from .....application.ports.appointments_repo import Actor
from .....application.ports.payments_repo import (
    LedgerStatus,
    PaymentDto,
    PaymentsRepository,
    PaymentType,
)


class SqlPaymentsRepository(PaymentsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, p: Payment) -> PaymentDto:
        return PaymentDto(
            id=p.id,
            appointment_id=p.appointment_id,
            patient_id=p.patient_id,
            amount=p.amount,
            type=PaymentType(p.type),
            status=LedgerStatus(p.status),
            challan_number=p.challan_number,
            refund_reason=p.refund_reason,
            refund_initiated_by=Actor(p.refund_initiated_by) if p.refund_initiated_by else None,
            transaction_date=p.transaction_date,
            created_at=p.created_at,
        )

    def add(self, payment: PaymentDto) -> PaymentDto:
        row = Payment(
            appointment_id=payment.appointment_id,
            patient_id=payment.patient_id,
            amount=payment.amount,
            type=payment.type.value,
            status=payment.status.value,
            challan_number=payment.challan_number,
            refund_reason=payment.refund_reason,
            refund_initiated_by=payment.refund_initiated_by.value if payment.refund_initiated_by else None,
            transaction_date=payment.transaction_date,
        )
        if payment.created_at is not None:
            row.created_at = payment.created_at
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return self._to_dto(row)

    def get_pending_payment(self, appointment_id: int) -> Optional[PaymentDto]:
        p = self.session.exec(
            select(Payment)
            .where(Payment.appointment_id == appointment_id)
            .where(Payment.type == PaymentType.PAYMENT.value)
            .where(Payment.status == LedgerStatus.PENDING.value)
        ).first()
        return self._to_dto(p) if p else None

    def complete(self, payment_id: int, completed_at: datetime) -> Optional[PaymentDto]:
        p = self.session.exec(select(Payment).where(Payment.id == payment_id)).first()
        if not p or p.status != LedgerStatus.PENDING.value:
            return None
        p.status = LedgerStatus.COMPLETED.value
        p.transaction_date = completed_at
        self.session.add(p)
        self.session.commit()
        self.session.refresh(p)
        return self._to_dto(p)

    def list_for_appointment(self, appointment_id: int) -> List[PaymentDto]:
        rows = self.session.exec(
            select(Payment).where(Payment.appointment_id == appointment_id).order_by(Payment.id)
        ).all()
        return [self._to_dto(r) for r in rows]
