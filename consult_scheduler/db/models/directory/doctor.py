# Read-side projection of the directory service's doctor records
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime


class Doctor(SQLModel, table=True):
    __tablename__ = "doctors"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    email: Optional[str] = Field(default=None, max_length=100)
    specialization: Optional[str] = Field(default=None, max_length=100)
    is_approved: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
