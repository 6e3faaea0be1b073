import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from .config import settings
from .database import engine, get_session
from .exceptions import Unauthorized
from .utils import decode_jwt_token
from .application.ports.appointments_repo import Actor
from .application.ports.audit_logger import AuditLogger
from .application.services.appointments_service import AppointmentsService
from .application.services.context import SchedulingContext
from .application.services.emergency_review_service import EmergencyReviewService
from .application.services.reschedule_service import RescheduleService
from .application.services.scheduler_service import SchedulerService
from .application.services.scheduling_policy import SchedulingPolicy
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.clock.system_clock import SystemClock
from .infrastructure.notifications.logging_dispatcher import LoggingNotificationDispatcher
from .infrastructure.notifications.sql_dispatcher import SqlNotificationDispatcher
from .infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.directory_repository_sql import SqlDirectoryRepository
from .infrastructure.persistence.sqlalchemy.repositories.emergency_requests_repository_sql import SqlEmergencyRequestsRepository
from .infrastructure.persistence.sqlalchemy.repositories.payments_repository_sql import SqlPaymentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.prescriptions_repository_sql import SqlPrescriptionsRepository

logger = logging.getLogger(__name__)

# Auth scheme
oauth2_scheme = HTTPBearer()


@dataclass
class CurrentActor:
    user_id: str
    role: Actor
    profile_id: Optional[int] = None


def get_current_actor(credentials: HTTPAuthorizationCredentials = Depends(oauth2_scheme)) -> CurrentActor:
    payload = decode_jwt_token(credentials.credentials)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token: missing user ID")

    try:
        role = Actor(str(payload.get("role", "")).upper())
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token: unknown role")
    if role == Actor.SYSTEM:
        raise HTTPException(status_code=401, detail="Invalid token: unknown role")

    profile_id = payload.get("profile_id")
    if role in (Actor.PATIENT, Actor.DOCTOR):
        try:
            profile_id = int(profile_id)
        except (ValueError, TypeError):
            raise HTTPException(status_code=401, detail="Invalid token: missing profile ID")
    return CurrentActor(user_id=str(user_id), role=role, profile_id=profile_id)


def require_role(*roles: Actor):
    def dependency(actor: CurrentActor = Depends(get_current_actor)) -> CurrentActor:
        if actor.role not in roles:
            allowed = ", ".join(r.value.lower() for r in roles)
            raise Unauthorized(f"This action is only available to: {allowed}")
        return actor
    return dependency


require_patient = require_role(Actor.PATIENT)
require_doctor = require_role(Actor.DOCTOR)
require_admin = require_role(Actor.ADMIN)


def build_context(session: Session) -> SchedulingContext:
    directory = SqlDirectoryRepository(session)
    if settings.NOTIFICATION_CHANNEL.lower() == "log":
        notifier = LoggingNotificationDispatcher(directory)
    else:
        notifier = SqlNotificationDispatcher(session, directory)
    return SchedulingContext(
        appointments=SqlAppointmentsRepository(session),
        payments=SqlPaymentsRepository(session),
        emergency_requests=SqlEmergencyRequestsRepository(session),
        prescriptions=SqlPrescriptionsRepository(session),
        directory=directory,
        notifier=notifier,
        clock=SystemClock(settings.CLINIC_TIMEZONE),
        policy=SchedulingPolicy.from_settings(settings),
    )


def get_scheduling_context(session: Session = Depends(get_session)) -> SchedulingContext:
    return build_context(session)


def get_appointments_service(ctx: SchedulingContext = Depends(get_scheduling_context)) -> AppointmentsService:
    return AppointmentsService(ctx)


def get_reschedule_service(ctx: SchedulingContext = Depends(get_scheduling_context)) -> RescheduleService:
    return RescheduleService(ctx)


def get_emergency_service(ctx: SchedulingContext = Depends(get_scheduling_context)) -> EmergencyReviewService:
    return EmergencyReviewService(ctx)


_audit_logger = StdAuditLogger()


def get_audit_logger() -> AuditLogger:
    return _audit_logger


@contextmanager
def scheduler_service_scope() -> Iterator[SchedulerService]:
    with Session(engine) as session:
        yield SchedulerService(build_context(session))
