from datetime import date
from typing import Iterable, List, Optional, Set
from sqlalchemy import update
from sqlmodel import Session, select

from .....db.models import Appointment
from .....exceptions import StaleAppointmentError
from .....application.ports.appointments_repo import (
    Actor,
    AppointmentDto,
    AppointmentsRepository,
    AppointmentStatus,
    AppointmentType,
    PaymentStatus,
    RescheduleState,
    SLOT_HOLDING_STATUSES,
)

# Columns copied verbatim between the row and the DTO
_PLAIN_FIELDS = (
    "patient_id", "doctor_id", "appointment_date", "slot_start_time", "slot_end_time", "reason",
    "payment_amount", "refund_amount", "challan_number", "paid_at", "meeting_link", "location",
    "cancellation_reason", "cancelled_at", "reschedule_reason", "reschedule_rejection_reason",
    "doctor_cancellation_reason", "doctor_cancelled_at", "proposed_date", "proposed_slot_start_time",
    "completed_at", "patient_attended", "prescription_id", "chat_enabled", "reminder_sent",
    "reminder_sent_at", "requested_at", "created_at", "updated_at",
)


def _enum_or_none(enum_cls, value):
    return enum_cls(value) if value is not None else None


def _value_or_none(member):
    return member.value if member is not None else None


class SqlAppointmentsRepository(AppointmentsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, a: Appointment) -> AppointmentDto:
        return AppointmentDto(
            id=a.id,
            status=AppointmentStatus(a.status),
            payment_status=PaymentStatus(a.payment_status),
            appointment_type=AppointmentType(a.appointment_type),
            cancelled_by=_enum_or_none(Actor, a.cancelled_by),
            reschedule_requested_by=_enum_or_none(Actor, a.reschedule_requested_by),
            reschedule_state=_enum_or_none(RescheduleState, a.reschedule_state),
            version=a.version,
            **{name: getattr(a, name) for name in _PLAIN_FIELDS},
        )

    def _to_columns(self, dto: AppointmentDto) -> dict:
        columns = {name: getattr(dto, name) for name in _PLAIN_FIELDS}
        columns.update(
            status=dto.status.value,
            payment_status=dto.payment_status.value,
            appointment_type=dto.appointment_type.value,
            cancelled_by=_value_or_none(dto.cancelled_by),
            reschedule_requested_by=_value_or_none(dto.reschedule_requested_by),
            reschedule_state=_value_or_none(dto.reschedule_state),
        )
        if columns["created_at"] is None:
            columns.pop("created_at")
        if columns["updated_at"] is None:
            columns.pop("updated_at")
        return columns

    def add(self, appointment: AppointmentDto) -> AppointmentDto:
        row = Appointment(version=0, **self._to_columns(appointment))
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return self._to_dto(row)

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        a = self.session.exec(select(Appointment).where(Appointment.id == appointment_id)).first()
        return self._to_dto(a) if a else None

    def get_by_challan(self, challan_number: str) -> Optional[AppointmentDto]:
        a = self.session.exec(select(Appointment).where(Appointment.challan_number == challan_number)).first()
        return self._to_dto(a) if a else None

    def save(self, appointment: AppointmentDto) -> AppointmentDto:
        columns = self._to_columns(appointment)
        columns["version"] = appointment.version + 1
        result = self.session.exec(
            update(Appointment)
            .where(Appointment.id == appointment.id)
            .where(Appointment.version == appointment.version)
            .values(**columns)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            raise StaleAppointmentError(appointment.id)
        self.session.commit()
        # drop any cached copy so the next read sees the new row
        self.session.expire_all()
        return self.get_by_id(appointment.id)

    def occupied_slots(self, doctor_id: int, on_date: date, exclude_id: Optional[int] = None) -> Set[str]:
        query = (
            select(Appointment.slot_start_time)
            .where(Appointment.doctor_id == doctor_id)
            .where(Appointment.appointment_date == on_date)
            .where(Appointment.status.in_([s.value for s in SLOT_HOLDING_STATUSES]))
        )
        if exclude_id is not None:
            query = query.where(Appointment.id != exclude_id)
        return set(self.session.exec(query).all())

    def find_slot_holders(self, doctor_id: int, on_date: date, slot_start_time: str, statuses: Iterable[AppointmentStatus]) -> List[AppointmentDto]:
        rows = self.session.exec(
            select(Appointment)
            .where(Appointment.doctor_id == doctor_id)
            .where(Appointment.appointment_date == on_date)
            .where(Appointment.slot_start_time == slot_start_time)
            .where(Appointment.status.in_([s.value for s in statuses]))
            .order_by(Appointment.created_at)
        ).all()
        return [self._to_dto(r) for r in rows]

    def list_by_status(self, statuses: Iterable[AppointmentStatus]) -> List[AppointmentDto]:
        rows = self.session.exec(
            select(Appointment)
            .where(Appointment.status.in_([s.value for s in statuses]))
            .order_by(Appointment.appointment_date, Appointment.slot_start_time)
        ).all()
        return [self._to_dto(r) for r in rows]

    def list_for_patient(self, patient_id: int, statuses: Optional[Iterable[AppointmentStatus]] = None) -> List[AppointmentDto]:
        query = select(Appointment).where(Appointment.patient_id == patient_id)
        if statuses:
            query = query.where(Appointment.status.in_([s.value for s in statuses]))
        rows = self.session.exec(query.order_by(Appointment.appointment_date.desc(), Appointment.slot_start_time.desc())).all()
        return [self._to_dto(r) for r in rows]

    def list_for_doctor(self, doctor_id: int, statuses: Optional[Iterable[AppointmentStatus]] = None, on_date: Optional[date] = None) -> List[AppointmentDto]:
        query = select(Appointment).where(Appointment.doctor_id == doctor_id)
        if statuses:
            query = query.where(Appointment.status.in_([s.value for s in statuses]))
        if on_date is not None:
            query = query.where(Appointment.appointment_date == on_date)
        rows = self.session.exec(query.order_by(Appointment.appointment_date, Appointment.slot_start_time)).all()
        return [self._to_dto(r) for r in rows]
