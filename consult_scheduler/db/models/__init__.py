# Models package (re-export feature modules for stable imports)
from .directory.doctor import Doctor
from .directory.patient import Patient
from .scheduling.appointment import Appointment
from .scheduling.payment import Payment
from .scheduling.emergency import EmergencyCancellationRequest, DoctorEmergencyRescheduleRequest
from .scheduling.prescription import Prescription
from .notifications.notification import Notification

__all__ = [
    "Doctor",
    "Patient",
    "Appointment",
    "Payment",
    "EmergencyCancellationRequest",
    "DoctorEmergencyRescheduleRequest",
    "Prescription",
    "Notification",
]
