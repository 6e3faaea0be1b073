from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..ports.appointments_repo import PaymentStatus


class RefundPath(str, Enum):
    STANDARD = "STANDARD"
    AFTER_RESCHEDULE_REJECTED = "AFTER_RESCHEDULE_REJECTED"
    AFTER_DOCTOR_WITHDREW_RESCHEDULE = "AFTER_DOCTOR_WITHDREW_RESCHEDULE"
    DOCTOR_RESCHEDULE_DECLINED = "DOCTOR_RESCHEDULE_DECLINED"
    EMERGENCY = "EMERGENCY"
    NO_REFUND = "NO_REFUND"


FULL_REFUND_PATHS = (RefundPath.DOCTOR_RESCHEDULE_DECLINED, RefundPath.EMERGENCY)


@dataclass(frozen=True)
class RefundDecision:
    amount: int
    payment_status: PaymentStatus
    challan_prefix: Optional[str] = None

    @property
    def is_refund(self) -> bool:
        return self.amount > 0


def compute_refund(fee: int, deduction: int, payment_status: PaymentStatus, path: RefundPath) -> RefundDecision:
    """Refund owed when a cancellation takes ``path``.

    Only PAID appointments are refunded. Full-refund paths return the whole fee,
    every other paying path keeps the deduction. The amount stays in [0, fee].
    """
    if payment_status != PaymentStatus.PAID or path == RefundPath.NO_REFUND:
        return RefundDecision(amount=0, payment_status=payment_status)

    if path in FULL_REFUND_PATHS:
        prefix = "EMREF-" if path == RefundPath.EMERGENCY else "REF-"
        return RefundDecision(amount=fee, payment_status=PaymentStatus.REFUNDED, challan_prefix=prefix)

    amount = min(max(fee - deduction, 0), fee)
    return RefundDecision(amount=amount, payment_status=PaymentStatus.PARTIAL_REFUND, challan_prefix="REF-")
