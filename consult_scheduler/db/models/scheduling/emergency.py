from typing import Optional
from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field
from datetime import datetime


class EmergencyCancellationRequest(SQLModel, table=True):
    __tablename__ = "emergency_cancellation_requests"
    # at most one PENDING request per appointment
    __table_args__ = (
        Index(
            "uq_emergency_cancellation_pending",
            "appointment_id",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    patient_id: int = Field(foreign_key="patients.id")
    reason: str
    status: str = Field(default="PENDING", max_length=20, index=True)
    expires_at: datetime
    admin_id: Optional[int] = Field(default=None)
    admin_notes: Optional[str] = Field(default=None)
    reviewed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class DoctorEmergencyRescheduleRequest(SQLModel, table=True):
    __tablename__ = "doctor_emergency_reschedule_requests"
    __table_args__ = (
        Index(
            "uq_emergency_reschedule_pending",
            "appointment_id",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    doctor_id: int = Field(foreign_key="doctors.id")
    reason: str
    status: str = Field(default="PENDING", max_length=20, index=True)
    admin_id: Optional[int] = Field(default=None)
    admin_notes: Optional[str] = Field(default=None)
    reviewed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
