# app/schemas/appointment.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional
from datetime import date, datetime

from ...application.ports.appointments_repo import AppointmentType

SLOT_PATTERN = r"^\d{2}:\d{2}$"


class SlotResponse(BaseModel):
    start_time: str
    end_time: str
    available: bool = True


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    slots: List[SlotResponse]


class AppointmentCreate(BaseModel):
    doctor_id: int
    appointment_date: date
    slot_start_time: str = Field(pattern=SLOT_PATTERN)
    appointment_type: AppointmentType = AppointmentType.ONLINE
    reason: str = Field(min_length=1, max_length=1000)
    location: Optional[str] = Field(default=None, max_length=200)


class ConfirmRequest(BaseModel):
    meeting_link: Optional[str] = Field(default=None, max_length=500)


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class RequiredReasonRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class RescheduleProposal(BaseModel):
    new_date: date
    new_slot_start_time: str = Field(pattern=SLOT_PATTERN)
    reason: Optional[str] = Field(default=None, max_length=1000)


class RescheduleResponseRequest(BaseModel):
    # keep_original / keep both mean "stay on the original slot"
    choice: Literal["keep_original", "keep", "cancel"]
    reason: Optional[str] = Field(default=None, max_length=1000)


class Medication(BaseModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None


class CompleteRequest(BaseModel):
    instructions: str = Field(min_length=1)
    medications: List[Medication] = []


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    doctor_id: int
    appointment_date: date
    slot_start_time: str
    slot_end_time: str
    appointment_type: str
    reason: str
    status: str
    payment_status: str
    payment_amount: int
    refund_amount: int
    challan_number: Optional[str] = None
    paid_at: Optional[datetime] = None
    meeting_link: Optional[str] = None
    location: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    reschedule_requested_by: Optional[str] = None
    reschedule_reason: Optional[str] = None
    reschedule_state: Optional[str] = None
    reschedule_rejected: bool = False
    reschedule_rejection_reason: Optional[str] = None
    patient_responded_to_doctor_reschedule: bool = False
    doctor_cancelled_reschedule_request: bool = False
    doctor_cancellation_reason: Optional[str] = None
    proposed_date: Optional[date] = None
    proposed_slot_start_time: Optional[str] = None
    completed_at: Optional[datetime] = None
    patient_attended: Optional[bool] = None
    prescription_id: Optional[int] = None
    chat_enabled: bool = False
    reminder_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dto(cls, dto) -> "AppointmentResponse":
        data: Dict[str, Any] = {name: getattr(dto, name) for name in cls.model_fields}
        for name, value in data.items():
            if hasattr(value, "value"):
                data[name] = value.value
        return cls(**data)


class AppointmentPage(BaseModel):
    items: List[AppointmentResponse]
    page: int
    size: int
    total_elements: int
    total_pages: int
