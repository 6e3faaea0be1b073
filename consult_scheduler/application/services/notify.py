import logging
from typing import Any, Dict

from ..ports.appointments_repo import AppointmentDto
from ..ports.notifier import NotificationDispatcher, NotificationEvent, Recipient

logger = logging.getLogger(__name__)


def appointment_payload(appointment: AppointmentDto) -> Dict[str, Any]:
    return {
        "appointment_id": appointment.id,
        "patient_id": appointment.patient_id,
        "doctor_id": appointment.doctor_id,
        "appointment_date": appointment.appointment_date.isoformat(),
        "slot_start_time": appointment.slot_start_time,
        "appointment_type": appointment.appointment_type.value,
        "status": appointment.status.value,
    }


def notify(dispatcher: NotificationDispatcher, recipient: Recipient, template_key: str, **payload) -> None:
    """Best-effort dispatch. A failed delivery never undoes the transition that triggered it."""
    try:
        dispatcher.dispatch(NotificationEvent(recipient=recipient, template_key=template_key, payload=payload))
    except Exception as e:
        logger.error(f"Failed to dispatch {template_key} to {recipient}: {e}")
