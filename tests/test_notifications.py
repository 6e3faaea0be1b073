import json
import logging

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from consult_scheduler.database import create_db_and_tables
from consult_scheduler.db.models import Notification
from consult_scheduler.application.ports.notifier import NotificationEvent, Recipient
from consult_scheduler.infrastructure.notifications.logging_dispatcher import LoggingNotificationDispatcher
from consult_scheduler.infrastructure.notifications.sql_dispatcher import SqlNotificationDispatcher
from consult_scheduler.infrastructure.notifications.templates import render

from conftest import DOCTOR, PATIENT


def test_render_fills_names_from_directory(directory):
    title, message = render(
        "appointment.confirmed",
        {"doctor_id": DOCTOR, "patient_id": PATIENT, "appointment_date": "2025-06-11", "slot_start_time": "10:00"},
        directory,
    )
    assert title == "Appointment confirmed"
    assert message == "Dr. Asha Rao confirmed your appointment on 2025-06-11 at 10:00."


def test_render_tolerates_unknown_keys_and_missing_values():
    assert render("something.new", {}) == ("something.new", "")
    _, message = render("payment.required", {"amount": 1000})
    assert message == "Please pay 1000 using challan ."


def test_logging_dispatcher_writes_one_line(caplog, directory):
    with caplog.at_level(logging.INFO):
        LoggingNotificationDispatcher(directory).dispatch(
            NotificationEvent(Recipient.patient(PATIENT), "appointment.reminder", {"appointment_date": "2025-06-11", "slot_start_time": "10:00"})
        )
    assert "patient:10 [appointment.reminder]" in caplog.text


def test_sql_dispatcher_stores_rendered_notification(directory):
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_db_and_tables(bind=engine)
    with Session(engine) as session:
        SqlNotificationDispatcher(session, directory).dispatch(
            NotificationEvent(Recipient.admins(), "emergency.cancellation_requested", {"appointment_id": 7})
        )
        stored = session.exec(select(Notification)).all()

    assert len(stored) == 1
    assert stored[0].recipient_role == "admin"
    assert stored[0].recipient_id is None
    assert stored[0].message == "Emergency cancellation requested for appointment #7."
    assert json.loads(stored[0].data) == {"appointment_id": 7}
