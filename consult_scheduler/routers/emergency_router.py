from typing import List, Optional
from fastapi import APIRouter, Depends
import logging

from ..application.ports.appointments_repo import Actor
from ..application.ports.audit_logger import AuditLogger
from ..application.ports.emergency_repo import ReviewStatus
from ..application.services.emergency_review_service import EmergencyReviewService
from ..dependencies import (
    CurrentActor,
    get_audit_logger,
    get_emergency_service,
    require_admin,
    require_doctor,
    require_patient,
    require_role,
)
from ..exceptions import Unauthorized, ValidationFailed
from ..schemas.appointments.appointment import AppointmentResponse
from ..schemas.emergency.emergency import (
    CancellationReviewResponse,
    EmergencyCancellationResponse,
    EmergencyRequestCreate,
    EmergencyRescheduleResponse,
    RescheduleReviewResponse,
    ReviewDecision,
)
from .audit import audited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/emergency", tags=["Emergency Requests"])


def _admin_id(actor: CurrentActor) -> int:
    if actor.profile_id is not None:
        return actor.profile_id
    try:
        return int(actor.user_id)
    except (ValueError, TypeError):
        raise Unauthorized("Admin token does not carry a numeric identity")


@router.post("/cancellations", response_model=EmergencyCancellationResponse, status_code=201)
def request_emergency_cancellation(
    data: EmergencyRequestCreate,
    actor: CurrentActor = Depends(require_patient),
    service: EmergencyReviewService = Depends(get_emergency_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "request_emergency_cancellation", actor, data.appointment_id) as info:
        request = service.request_cancellation(data.appointment_id, actor.profile_id, data.reason)
        info["request_id"] = request.id
    return EmergencyCancellationResponse.from_dto(request)


@router.get("/cancellations/pending", response_model=List[EmergencyCancellationResponse])
def get_pending_cancellations(
    actor: CurrentActor = Depends(require_admin),
    service: EmergencyReviewService = Depends(get_emergency_service),
):
    return [EmergencyCancellationResponse.from_dto(r) for r in service.pending_cancellations()]


@router.post("/cancellations/{request_id}/review", response_model=CancellationReviewResponse)
def review_emergency_cancellation(
    request_id: int,
    decision: ReviewDecision,
    actor: CurrentActor = Depends(require_admin),
    service: EmergencyReviewService = Depends(get_emergency_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "review_emergency_cancellation", actor, request_id=request_id, decision=decision.status) as info:
        review = service.review_cancellation(request_id, _admin_id(actor), decision.approved, decision.admin_notes)
        info["appointment_id"] = review.appointment.id
        info["refund_amount"] = review.refund_amount
    return CancellationReviewResponse(
        request=EmergencyCancellationResponse.from_dto(review.request),
        appointment=AppointmentResponse.from_dto(review.appointment),
        refund_amount=review.refund_amount,
    )


@router.post("/reschedules", response_model=EmergencyRescheduleResponse, status_code=201)
def request_emergency_reschedule(
    data: EmergencyRequestCreate,
    actor: CurrentActor = Depends(require_doctor),
    service: EmergencyReviewService = Depends(get_emergency_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "request_emergency_reschedule", actor, data.appointment_id) as info:
        request = service.request_reschedule(data.appointment_id, actor.profile_id, data.reason)
        info["request_id"] = request.id
    return EmergencyRescheduleResponse.from_dto(request)


@router.get("/reschedules", response_model=List[EmergencyRescheduleResponse])
def get_emergency_reschedules(
    status: Optional[str] = None,
    actor: CurrentActor = Depends(require_role(Actor.ADMIN, Actor.DOCTOR)),
    service: EmergencyReviewService = Depends(get_emergency_service),
):
    review_status = None
    if status:
        try:
            review_status = ReviewStatus(status.strip().upper())
        except ValueError:
            raise ValidationFailed(f"Unknown review status: {status}", reason="invalid_status")
    # doctors only ever see their own requests
    doctor_id = actor.profile_id if actor.role == Actor.DOCTOR else None
    return [EmergencyRescheduleResponse.from_dto(r) for r in service.reschedule_requests(review_status, doctor_id)]


@router.post("/reschedules/{request_id}/review", response_model=RescheduleReviewResponse)
def review_emergency_reschedule(
    request_id: int,
    decision: ReviewDecision,
    actor: CurrentActor = Depends(require_admin),
    service: EmergencyReviewService = Depends(get_emergency_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "review_emergency_reschedule", actor, request_id=request_id, decision=decision.status) as info:
        review = service.review_reschedule(request_id, _admin_id(actor), decision.approved, decision.admin_notes)
        info["appointment_id"] = review.appointment.id
    return RescheduleReviewResponse(
        request=EmergencyRescheduleResponse.from_dto(review.request),
        appointment=AppointmentResponse.from_dto(review.appointment),
    )
