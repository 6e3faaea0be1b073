from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    id: Optional[int] = Field(default=None, primary_key=True)
    recipient_role: str = Field(max_length=20, index=True)
    recipient_id: Optional[int] = Field(default=None, index=True)
    type: str = Field(max_length=60)
    title: str
    message: str
    read: bool = Field(default=False)
    data: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
