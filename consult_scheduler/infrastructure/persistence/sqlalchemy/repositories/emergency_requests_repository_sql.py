from typing import List, Optional
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....db.models import DoctorEmergencyRescheduleRequest, EmergencyCancellationRequest
from .....exceptions import DuplicateRequest
from .....application.ports.emergency_repo import (
    EmergencyCancellationDto,
    EmergencyRequestsRepository,
    EmergencyRescheduleDto,
    ReviewStatus,
)


class SqlEmergencyRequestsRepository(EmergencyRequestsRepository):
    """Both request kinds; the PENDING-uniqueness rule is backed by partial unique indexes."""

    def __init__(self, session: Session):
        self.session = session

    def _cancellation_to_dto(self, r: EmergencyCancellationRequest) -> EmergencyCancellationDto:
        return EmergencyCancellationDto(
            id=r.id,
            appointment_id=r.appointment_id,
            patient_id=r.patient_id,
            reason=r.reason,
            status=ReviewStatus(r.status),
            expires_at=r.expires_at,
            admin_id=r.admin_id,
            admin_notes=r.admin_notes,
            reviewed_at=r.reviewed_at,
            created_at=r.created_at,
        )

    def _reschedule_to_dto(self, r: DoctorEmergencyRescheduleRequest) -> EmergencyRescheduleDto:
        return EmergencyRescheduleDto(
            id=r.id,
            appointment_id=r.appointment_id,
            doctor_id=r.doctor_id,
            reason=r.reason,
            status=ReviewStatus(r.status),
            admin_id=r.admin_id,
            admin_notes=r.admin_notes,
            reviewed_at=r.reviewed_at,
            created_at=r.created_at,
        )

    def _insert(self, row, duplicate_message: str):
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise DuplicateRequest(duplicate_message)
        self.session.refresh(row)
        return row

    def _compare_and_set(self, model, request, expected_status: ReviewStatus) -> bool:
        result = self.session.exec(
            update(model)
            .where(model.id == request.id)
            .where(model.status == expected_status.value)
            .values(
                status=request.status.value,
                admin_id=request.admin_id,
                admin_notes=request.admin_notes,
                reviewed_at=request.reviewed_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            return False
        self.session.commit()
        self.session.expire_all()
        return True

    def add_cancellation(self, request: EmergencyCancellationDto) -> EmergencyCancellationDto:
        if self.find_pending_cancellation(request.appointment_id):
            raise DuplicateRequest("An emergency cancellation request is already pending for this appointment")
        row = EmergencyCancellationRequest(
            appointment_id=request.appointment_id,
            patient_id=request.patient_id,
            reason=request.reason,
            status=request.status.value,
            expires_at=request.expires_at,
        )
        if request.created_at is not None:
            row.created_at = request.created_at
        row = self._insert(row, "An emergency cancellation request is already pending for this appointment")
        return self._cancellation_to_dto(row)

    def get_cancellation(self, request_id: int) -> Optional[EmergencyCancellationDto]:
        r = self.session.exec(select(EmergencyCancellationRequest).where(EmergencyCancellationRequest.id == request_id)).first()
        return self._cancellation_to_dto(r) if r else None

    def find_pending_cancellation(self, appointment_id: int) -> Optional[EmergencyCancellationDto]:
        r = self.session.exec(
            select(EmergencyCancellationRequest)
            .where(EmergencyCancellationRequest.appointment_id == appointment_id)
            .where(EmergencyCancellationRequest.status == ReviewStatus.PENDING.value)
        ).first()
        return self._cancellation_to_dto(r) if r else None

    def list_cancellations(self, status: Optional[ReviewStatus] = None) -> List[EmergencyCancellationDto]:
        query = select(EmergencyCancellationRequest)
        if status is not None:
            query = query.where(EmergencyCancellationRequest.status == status.value)
        rows = self.session.exec(query.order_by(EmergencyCancellationRequest.created_at)).all()
        return [self._cancellation_to_dto(r) for r in rows]

    def save_cancellation(self, request: EmergencyCancellationDto, expected_status: ReviewStatus) -> bool:
        return self._compare_and_set(EmergencyCancellationRequest, request, expected_status)

    def add_reschedule(self, request: EmergencyRescheduleDto) -> EmergencyRescheduleDto:
        if self.find_pending_reschedule(request.appointment_id):
            raise DuplicateRequest("An emergency reschedule request is already pending for this appointment")
        row = DoctorEmergencyRescheduleRequest(
            appointment_id=request.appointment_id,
            doctor_id=request.doctor_id,
            reason=request.reason,
            status=request.status.value,
        )
        if request.created_at is not None:
            row.created_at = request.created_at
        row = self._insert(row, "An emergency reschedule request is already pending for this appointment")
        return self._reschedule_to_dto(row)

    def get_reschedule(self, request_id: int) -> Optional[EmergencyRescheduleDto]:
        r = self.session.exec(select(DoctorEmergencyRescheduleRequest).where(DoctorEmergencyRescheduleRequest.id == request_id)).first()
        return self._reschedule_to_dto(r) if r else None

    def find_pending_reschedule(self, appointment_id: int) -> Optional[EmergencyRescheduleDto]:
        r = self.session.exec(
            select(DoctorEmergencyRescheduleRequest)
            .where(DoctorEmergencyRescheduleRequest.appointment_id == appointment_id)
            .where(DoctorEmergencyRescheduleRequest.status == ReviewStatus.PENDING.value)
        ).first()
        return self._reschedule_to_dto(r) if r else None

    def list_reschedules(self, status: Optional[ReviewStatus] = None) -> List[EmergencyRescheduleDto]:
        query = select(DoctorEmergencyRescheduleRequest)
        if status is not None:
            query = query.where(DoctorEmergencyRescheduleRequest.status == status.value)
        rows = self.session.exec(query.order_by(DoctorEmergencyRescheduleRequest.created_at.desc())).all()
        return [self._reschedule_to_dto(r) for r in rows]

    def save_reschedule(self, request: EmergencyRescheduleDto, expected_status: ReviewStatus) -> bool:
        return self._compare_and_set(DoctorEmergencyRescheduleRequest, request, expected_status)
