from typing import List, Optional
from fastapi import APIRouter, Depends, Query
import logging
from datetime import date

from ..application.ports.appointments_repo import Actor, AppointmentStatus
from ..application.ports.audit_logger import AuditLogger
from ..application.services.appointments_service import AppointmentsService, Page
from ..application.services.reschedule_service import PatientChoice, RescheduleService
from ..dependencies import (
    CurrentActor,
    get_appointments_service,
    get_audit_logger,
    get_current_actor,
    get_reschedule_service,
    require_doctor,
    require_patient,
    require_role,
)
from ..exceptions import ValidationFailed
from ..schemas.appointments.appointment import (
    AppointmentCreate,
    AppointmentPage,
    AppointmentResponse,
    AvailableSlotsResponse,
    CompleteRequest,
    ConfirmRequest,
    ReasonRequest,
    RequiredReasonRequest,
    RescheduleProposal,
    RescheduleResponseRequest,
    SlotResponse,
)
from .audit import audited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

require_patient_or_doctor = require_role(Actor.PATIENT, Actor.DOCTOR)


def parse_statuses(raw: Optional[str]) -> Optional[List[AppointmentStatus]]:
    """Parse a comma separated status filter such as ``CONFIRMED,PAST``."""
    if not raw:
        return None
    statuses = []
    for part in raw.split(","):
        part = part.strip().upper()
        if not part:
            continue
        try:
            statuses.append(AppointmentStatus(part))
        except ValueError:
            raise ValidationFailed(f"Unknown appointment status: {part}", reason="invalid_status")
    return statuses or None


def _page_response(page: Page) -> AppointmentPage:
    return AppointmentPage(
        items=[AppointmentResponse.from_dto(a) for a in page.items],
        page=page.page,
        size=page.size,
        total_elements=page.total_elements,
        total_pages=page.total_pages,
    )


@router.get("/slots", response_model=AvailableSlotsResponse)
def get_available_slots(
    doctor_id: int,
    on_date: date = Query(..., alias="date"),
    actor: CurrentActor = Depends(get_current_actor),
    service: AppointmentsService = Depends(get_appointments_service),
):
    slots = service.available_slots(doctor_id, on_date)
    return AvailableSlotsResponse(
        doctor_id=doctor_id,
        date=on_date,
        slots=[SlotResponse(start_time=s.start_time, end_time=s.end_time) for s in slots],
    )


@router.post("/", response_model=AppointmentResponse, status_code=201)
def request_appointment(
    data: AppointmentCreate,
    actor: CurrentActor = Depends(require_patient),
    service: AppointmentsService = Depends(get_appointments_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "request_appointment", actor, doctor_id=data.doctor_id) as info:
        appt = service.request(
            patient_id=actor.profile_id,
            doctor_id=data.doctor_id,
            appointment_date=data.appointment_date,
            slot_start_time=data.slot_start_time,
            appointment_type=data.appointment_type,
            reason=data.reason,
            location=data.location,
        )
        info["appointment_id"] = appt.id
    return AppointmentResponse.from_dto(appt)


@router.get("/patient", response_model=AppointmentPage)
def get_patient_appointments(
    status: Optional[str] = None,
    page: int = 0,
    size: int = 10,
    actor: CurrentActor = Depends(require_patient),
    service: AppointmentsService = Depends(get_appointments_service),
):
    return _page_response(service.list_for_patient(actor.profile_id, parse_statuses(status), page, size))


@router.get("/doctor", response_model=AppointmentPage)
def get_doctor_appointments(
    status: Optional[str] = None,
    on_date: Optional[date] = Query(None, alias="date"),
    page: int = 0,
    size: int = 10,
    actor: CurrentActor = Depends(require_doctor),
    service: AppointmentsService = Depends(get_appointments_service),
):
    return _page_response(service.list_for_doctor(actor.profile_id, parse_statuses(status), on_date, page, size))


@router.get("/doctor/schedule", response_model=List[AppointmentResponse])
def get_daily_schedule(
    on_date: Optional[date] = Query(None, alias="date"),
    actor: CurrentActor = Depends(require_doctor),
    service: AppointmentsService = Depends(get_appointments_service),
):
    return [AppointmentResponse.from_dto(a) for a in service.daily_schedule(actor.profile_id, on_date)]


@router.get("/doctor/schedule/next-day", response_model=List[AppointmentResponse])
def get_next_day_schedule(
    actor: CurrentActor = Depends(require_doctor),
    service: AppointmentsService = Depends(get_appointments_service),
):
    return [AppointmentResponse.from_dto(a) for a in service.next_day_schedule(actor.profile_id)]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    actor: CurrentActor = Depends(get_current_actor),
    service: AppointmentsService = Depends(get_appointments_service),
):
    return AppointmentResponse.from_dto(service.get_for_actor(appointment_id, actor.role, actor.profile_id))


@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    data: ConfirmRequest,
    actor: CurrentActor = Depends(require_doctor),
    service: AppointmentsService = Depends(get_appointments_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "confirm_appointment", actor, appointment_id):
        appt = service.confirm(appointment_id, actor.profile_id, data.meeting_link)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/decline", response_model=AppointmentResponse)
def decline_appointment(
    appointment_id: int,
    data: ReasonRequest,
    actor: CurrentActor = Depends(require_doctor),
    service: AppointmentsService = Depends(get_appointments_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "decline_appointment", actor, appointment_id):
        appt = service.decline(appointment_id, actor.profile_id, data.reason)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: ReasonRequest,
    actor: CurrentActor = Depends(require_patient_or_doctor),
    service: AppointmentsService = Depends(get_appointments_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "cancel_appointment", actor, appointment_id) as info:
        if actor.role == Actor.PATIENT:
            appt = service.cancel_by_patient(appointment_id, actor.profile_id, data.reason)
        else:
            appt = service.cancel_by_doctor(appointment_id, actor.profile_id, data.reason)
        info["refund_amount"] = appt.refund_amount
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/pay", response_model=AppointmentResponse)
def pay_appointment(
    appointment_id: int,
    actor: CurrentActor = Depends(require_patient),
    service: AppointmentsService = Depends(get_appointments_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "pay_appointment", actor, appointment_id):
        appt = service.pay(appointment_id, actor.profile_id)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
def propose_reschedule(
    appointment_id: int,
    data: RescheduleProposal,
    actor: CurrentActor = Depends(require_patient),
    service: RescheduleService = Depends(get_reschedule_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "propose_reschedule", actor, appointment_id, new_date=data.new_date.isoformat(), new_slot=data.new_slot_start_time):
        appt = service.propose_by_patient(appointment_id, actor.profile_id, data.new_date, data.new_slot_start_time, data.reason)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/reschedule/request", response_model=AppointmentResponse)
def request_reschedule(
    appointment_id: int,
    data: RequiredReasonRequest,
    actor: CurrentActor = Depends(require_doctor),
    service: RescheduleService = Depends(get_reschedule_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "request_reschedule", actor, appointment_id):
        appt = service.request_by_doctor(appointment_id, actor.profile_id, data.reason)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/reschedule/approve", response_model=AppointmentResponse)
def approve_reschedule(
    appointment_id: int,
    actor: CurrentActor = Depends(require_doctor),
    service: RescheduleService = Depends(get_reschedule_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "approve_reschedule", actor, appointment_id):
        appt = service.approve(appointment_id, actor.profile_id)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/reschedule/reject", response_model=AppointmentResponse)
def reject_reschedule(
    appointment_id: int,
    data: RequiredReasonRequest,
    actor: CurrentActor = Depends(require_doctor),
    service: RescheduleService = Depends(get_reschedule_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "reject_reschedule", actor, appointment_id):
        appt = service.reject(appointment_id, actor.profile_id, data.reason)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/reschedule/withdraw", response_model=AppointmentResponse)
def withdraw_reschedule(
    appointment_id: int,
    data: RequiredReasonRequest,
    actor: CurrentActor = Depends(require_doctor),
    service: RescheduleService = Depends(get_reschedule_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "withdraw_reschedule", actor, appointment_id):
        appt = service.withdraw_by_doctor(appointment_id, actor.profile_id, data.reason)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/reschedule/respond", response_model=AppointmentResponse)
def respond_to_reschedule(
    appointment_id: int,
    data: RescheduleResponseRequest,
    actor: CurrentActor = Depends(require_patient),
    service: RescheduleService = Depends(get_reschedule_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    choice = PatientChoice.CANCEL if data.choice == "cancel" else PatientChoice.KEEP_ORIGINAL
    with audited(audit, "respond_to_reschedule", actor, appointment_id, choice=choice.value):
        appt = service.respond(appointment_id, actor.profile_id, choice, data.reason)
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    data: CompleteRequest,
    actor: CurrentActor = Depends(require_doctor),
    service: AppointmentsService = Depends(get_appointments_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "complete_appointment", actor, appointment_id):
        appt = service.complete(
            appointment_id,
            actor.profile_id,
            data.instructions,
            [m.model_dump(exclude_none=True) for m in data.medications],
        )
    return AppointmentResponse.from_dto(appt)


@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    actor: CurrentActor = Depends(require_doctor),
    service: AppointmentsService = Depends(get_appointments_service),
    audit: AuditLogger = Depends(get_audit_logger),
):
    with audited(audit, "mark_no_show", actor, appointment_id):
        appt = service.mark_no_show(appointment_id, actor.profile_id)
    return AppointmentResponse.from_dto(appt)
