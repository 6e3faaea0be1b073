from typing import Dict, Optional

from ....application.ports.prescriptions_repo import PrescriptionDto, PrescriptionsRepository


class InMemoryPrescriptionsRepository(PrescriptionsRepository):
    def __init__(self) -> None:
        self.rows: Dict[int, PrescriptionDto] = {}

    def add(self, prescription: PrescriptionDto) -> PrescriptionDto:
        prescription.id = len(self.rows) + 1
        self.rows[prescription.id] = prescription
        return prescription

    def get_by_id(self, prescription_id: int) -> Optional[PrescriptionDto]:
        return self.rows.get(prescription_id)
