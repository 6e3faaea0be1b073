from typing import Dict, Optional

from ....application.ports.directory import DirectoryService, DoctorDto, PatientDto


class InMemoryDirectory(DirectoryService):
    def __init__(self) -> None:
        self.doctors: Dict[int, DoctorDto] = {}
        self.patients: Dict[int, PatientDto] = {}

    def add_doctor(self, doctor: DoctorDto) -> DoctorDto:
        self.doctors[doctor.id] = doctor
        return doctor

    def add_patient(self, patient: PatientDto) -> PatientDto:
        self.patients[patient.id] = patient
        return patient

    def get_doctor(self, doctor_id: int) -> Optional[DoctorDto]:
        return self.doctors.get(doctor_id)

    def get_patient(self, patient_id: int) -> Optional[PatientDto]:
        return self.patients.get(patient_id)
