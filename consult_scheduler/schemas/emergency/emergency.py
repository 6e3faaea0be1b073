from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from ..appointments.appointment import AppointmentResponse


class EmergencyRequestCreate(BaseModel):
    appointment_id: int
    reason: str = Field(min_length=1, max_length=1000)


class ReviewDecision(BaseModel):
    status: str = Field(pattern=r"^(APPROVED|REJECTED)$")
    admin_notes: Optional[str] = Field(default=None, max_length=1000)

    @property
    def approved(self) -> bool:
        return self.status == "APPROVED"


class _ReviewRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_dto(cls, dto):
        data = {name: getattr(dto, name) for name in cls.model_fields}
        data["status"] = dto.status.value
        return cls(**data)


class EmergencyCancellationResponse(_ReviewRequestResponse):
    id: int
    appointment_id: int
    patient_id: int
    reason: str
    status: str
    expires_at: datetime
    admin_id: Optional[int] = None
    admin_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EmergencyRescheduleResponse(_ReviewRequestResponse):
    id: int
    appointment_id: int
    doctor_id: int
    reason: str
    status: str
    admin_id: Optional[int] = None
    admin_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CancellationReviewResponse(BaseModel):
    request: EmergencyCancellationResponse
    appointment: AppointmentResponse
    refund_amount: int = 0


class RescheduleReviewResponse(BaseModel):
    request: EmergencyRescheduleResponse
    appointment: AppointmentResponse
