from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class Recipient:
    role: str  # patient, doctor, admin
    id: Optional[int] = None

    @classmethod
    def patient(cls, patient_id: int) -> "Recipient":
        return cls("patient", patient_id)

    @classmethod
    def doctor(cls, doctor_id: int) -> "Recipient":
        return cls("doctor", doctor_id)

    @classmethod
    def admins(cls) -> "Recipient":
        return cls("admin")

    def __str__(self) -> str:
        return f"{self.role}:{self.id}" if self.id is not None else self.role


@dataclass
class NotificationEvent:
    recipient: Recipient
    template_key: str
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def dispatch(self, event: NotificationEvent) -> None:
        ...
