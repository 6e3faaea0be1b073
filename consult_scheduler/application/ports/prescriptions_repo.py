from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
from datetime import datetime


@dataclass
class PrescriptionDto:
    appointment_id: int
    patient_id: int
    doctor_id: int
    instructions: str
    medications: List[Dict[str, Any]] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None


class PrescriptionsRepository(Protocol):
    def add(self, prescription: PrescriptionDto) -> PrescriptionDto:
        ...

    def get_by_id(self, prescription_id: int) -> Optional[PrescriptionDto]:
        ...
