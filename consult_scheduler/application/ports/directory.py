from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class DoctorDto:
    id: int
    name: str
    email: Optional[str] = None
    specialization: Optional[str] = None
    is_approved: bool = True


@dataclass
class PatientDto:
    id: int
    name: str
    email: Optional[str] = None
    is_active: bool = True


class DirectoryService(Protocol):
    """Read-only view of the identity/directory service."""

    def get_doctor(self, doctor_id: int) -> Optional[DoctorDto]:
        ...

    def get_patient(self, patient_id: int) -> Optional[PatientDto]:
        ...
