from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import date, datetime


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    doctor_id: int = Field(foreign_key="doctors.id", index=True)
    appointment_date: date = Field(index=True)
    slot_start_time: str = Field(max_length=5)
    slot_end_time: str = Field(max_length=5)
    appointment_type: str = Field(max_length=20)
    reason: str
    status: str = Field(default="REQUESTED", max_length=30, index=True)

    payment_status: str = Field(default="PENDING", max_length=20)
    payment_amount: int = Field(default=0)
    refund_amount: int = Field(default=0)
    challan_number: Optional[str] = Field(default=None, max_length=40, unique=True, index=True)
    paid_at: Optional[datetime] = Field(default=None)

    meeting_link: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = Field(default=None, max_length=200)

    cancelled_by: Optional[str] = Field(default=None, max_length=20)
    cancellation_reason: Optional[str] = Field(default=None)
    cancelled_at: Optional[datetime] = Field(default=None)

    reschedule_requested_by: Optional[str] = Field(default=None, max_length=20)
    reschedule_reason: Optional[str] = Field(default=None)
    reschedule_state: Optional[str] = Field(default=None, max_length=50)
    reschedule_rejection_reason: Optional[str] = Field(default=None)
    doctor_cancellation_reason: Optional[str] = Field(default=None)
    doctor_cancelled_at: Optional[datetime] = Field(default=None)
    proposed_date: Optional[date] = Field(default=None)
    proposed_slot_start_time: Optional[str] = Field(default=None, max_length=5)

    completed_at: Optional[datetime] = Field(default=None)
    patient_attended: Optional[bool] = Field(default=None)
    prescription_id: Optional[int] = Field(default=None)
    chat_enabled: bool = Field(default=False)

    reminder_sent: bool = Field(default=False)
    reminder_sent_at: Optional[datetime] = Field(default=None)
    requested_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    version: int = Field(default=0)
