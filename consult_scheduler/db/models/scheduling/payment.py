from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime


class Payment(SQLModel, table=True):
    __tablename__ = "payments"
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    amount: int
    type: str = Field(max_length=20)  # PAYMENT / REFUND
    status: str = Field(default="PENDING", max_length=20)
    challan_number: str = Field(max_length=50, index=True)
    refund_reason: Optional[str] = Field(default=None)
    refund_initiated_by: Optional[str] = Field(default=None, max_length=20)
    transaction_date: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
