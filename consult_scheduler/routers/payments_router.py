from fastapi import APIRouter, Depends
import logging

from ..application.ports.audit_logger import AuditLogger
from ..application.services.appointments_service import AppointmentsService
from ..dependencies import CurrentActor, get_appointments_service, get_audit_logger, require_admin
from ..schemas.appointments.appointment import AppointmentResponse
from ..schemas.payments.payment import PaymentConfirmation
from .audit import audited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/confirm", response_model=AppointmentResponse)
def confirm_payment(
    data: PaymentConfirmation,
    actor: CurrentActor = Depends(require_admin),
    service: AppointmentsService = Depends(get_appointments_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    """Payment provider callback: marks the appointment behind a challan as paid."""
    with audited(audit, "confirm_payment", actor, challan_number=data.challan_number) as info:
        appt = service.confirm_payment(data.challan_number)
        info["appointment_id"] = appt.id
    return AppointmentResponse.from_dto(appt)
