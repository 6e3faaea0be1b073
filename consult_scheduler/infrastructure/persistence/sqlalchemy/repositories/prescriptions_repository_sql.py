from typing import Optional
from sqlmodel import Session, select

from .....db.models import Prescription
from .....application.ports.prescriptions_repo import PrescriptionDto, PrescriptionsRepository


class SqlPrescriptionsRepository(PrescriptionsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, p: Prescription) -> PrescriptionDto:
        return PrescriptionDto(
            id=p.id,
            appointment_id=p.appointment_id,
            patient_id=p.patient_id,
            doctor_id=p.doctor_id,
            medications=list(p.medications or []),
            instructions=p.instructions,
            created_at=p.created_at,
        )

    def add(self, prescription: PrescriptionDto) -> PrescriptionDto:
        row = Prescription(
            appointment_id=prescription.appointment_id,
            patient_id=prescription.patient_id,
            doctor_id=prescription.doctor_id,
            medications=list(prescription.medications),
            instructions=prescription.instructions,
        )
        if prescription.created_at is not None:
            row.created_at = prescription.created_at
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return self._to_dto(row)

    def get_by_id(self, prescription_id: int) -> Optional[PrescriptionDto]:
        p = self.session.exec(select(Prescription).where(Prescription.id == prescription_id)).first()
        return self._to_dto(p) if p else None
