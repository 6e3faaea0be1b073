# app/schemas/common.py
from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class ErrorResponse(BaseModel):
    success: bool = False
    data: Optional[Any] = None
    error: str
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class MessageResponse(BaseModel):
    message: str


class SchedulerJob(BaseModel):
    id: str
    name: str
    next_run_time: Optional[str] = None
    trigger: str


class HealthResponse(BaseModel):
    status: str
    database: bool
    scheduler_running: bool
    jobs: List[SchedulerJob] = []
