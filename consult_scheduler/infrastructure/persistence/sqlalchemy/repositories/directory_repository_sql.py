from typing import Optional
from sqlmodel import Session, select

from .....db.models import Doctor, Patient
from .....application.ports.directory import DirectoryService, DoctorDto, PatientDto


class SqlDirectoryRepository(DirectoryService):
    def __init__(self, session: Session):
        self.session = session

    def get_doctor(self, doctor_id: int) -> Optional[DoctorDto]:
        d = self.session.exec(select(Doctor).where(Doctor.id == doctor_id)).first()
        if not d:
            return None
        return DoctorDto(id=d.id, name=d.name, email=d.email, specialization=d.specialization, is_approved=bool(d.is_approved))

    def get_patient(self, patient_id: int) -> Optional[PatientDto]:
        p = self.session.exec(select(Patient).where(Patient.id == patient_id)).first()
        if not p:
            return None
        return PatientDto(id=p.id, name=p.name, email=p.email, is_active=bool(p.is_active))
