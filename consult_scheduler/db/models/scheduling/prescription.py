from typing import Any, Dict, List, Optional
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field
from datetime import datetime


class Prescription(SQLModel, table=True):
    __tablename__ = "prescriptions"
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", unique=True, index=True)
    patient_id: int = Field(foreign_key="patients.id")
    doctor_id: int = Field(foreign_key="doctors.id")
    medications: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    instructions: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
