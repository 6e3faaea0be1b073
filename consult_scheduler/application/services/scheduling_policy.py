from dataclasses import dataclass


@dataclass(frozen=True)
class SchedulingPolicy:
    """Clinic constants that every scheduling rule reads from."""

    appointment_fee: int = 1000
    cancellation_deduction: int = 250
    challan_prefix: str = "HLX"
    default_location: str = "Main Branch"
    slot_duration_minutes: int = 30
    working_hours_start: int = 9
    working_hours_end: int = 17
    break_start: int = 13
    break_end: int = 14
    min_booking_days_advance: int = 3
    max_booking_days_advance: int = 30
    min_patient_cancel_hours: int = 24
    min_doctor_cancel_hours: int = 24
    emergency_review_window_hours: int = 12
    request_expiry_hours: int = 24
    unpaid_auto_cancel_hours: int = 24

    @classmethod
    def from_settings(cls, settings) -> "SchedulingPolicy":
        return cls(
            appointment_fee=settings.APPOINTMENT_FEE,
            cancellation_deduction=settings.CANCELLATION_DEDUCTION,
            challan_prefix=settings.CHALLAN_PREFIX,
            default_location=settings.DEFAULT_LOCATION,
            slot_duration_minutes=settings.SLOT_DURATION_MINUTES,
            working_hours_start=settings.WORKING_HOURS_START,
            working_hours_end=settings.WORKING_HOURS_END,
            break_start=settings.BREAK_START,
            break_end=settings.BREAK_END,
            min_booking_days_advance=settings.MIN_BOOKING_DAYS_ADVANCE,
            max_booking_days_advance=settings.MAX_BOOKING_DAYS_ADVANCE,
            min_patient_cancel_hours=settings.MIN_PATIENT_CANCEL_HOURS,
            min_doctor_cancel_hours=settings.MIN_DOCTOR_CANCEL_HOURS,
            emergency_review_window_hours=settings.EMERGENCY_REVIEW_WINDOW_HOURS,
            request_expiry_hours=settings.REQUEST_EXPIRY_HOURS,
            unpaid_auto_cancel_hours=settings.UNPAID_AUTO_CANCEL_HOURS,
        )
