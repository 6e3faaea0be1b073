#config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from typing import List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")
    # Application Settings
    APP_NAME: str = "Consultation Scheduling API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True  # Can disable in production

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./consult_scheduler.db")

    # Security Settings (tokens are issued by the identity service, we only verify them)
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"

    # CORS Settings (accept comma-separated strings to avoid JSON parsing in env)
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")
    ALLOWED_METHODS: str = os.environ.get("ALLOWED_METHODS", "GET,POST,PUT,DELETE,OPTIONS")
    ALLOWED_HEADERS: str = os.environ.get("ALLOWED_HEADERS", "*")
    CORS_ALLOW_CREDENTIALS: bool = True

    # Middleware settings
    GZIP_MIN_SIZE: int = 500  # bytes

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Clinic
    CLINIC_TIMEZONE: str = "UTC"
    DEFAULT_LOCATION: str = "Main Branch"
    CHALLAN_PREFIX: str = "HLX"
    NOTIFICATION_CHANNEL: str = "database"  # database / log

    # Fees (in rupees)
    APPOINTMENT_FEE: int = 1000
    CANCELLATION_DEDUCTION: int = 250

    # Slot grid
    SLOT_DURATION_MINUTES: int = 30
    WORKING_HOURS_START: int = 9
    WORKING_HOURS_END: int = 17
    BREAK_START: int = 13
    BREAK_END: int = 14

    # Booking and cancellation windows
    MIN_BOOKING_DAYS_ADVANCE: int = 3
    MAX_BOOKING_DAYS_ADVANCE: int = 30
    MIN_PATIENT_CANCEL_HOURS: int = 24
    MIN_DOCTOR_CANCEL_HOURS: int = 24
    EMERGENCY_REVIEW_WINDOW_HOURS: int = 12
    REQUEST_EXPIRY_HOURS: int = 24
    UNPAID_AUTO_CANCEL_HOURS: int = 24

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    EXPIRE_REQUESTS_INTERVAL_MINUTES: int = 60
    UNPAID_SWEEP_INTERVAL_HOURS: int = 6
    MARK_PAST_INTERVAL_MINUTES: int = 15
    REMINDER_HOUR: int = 9

    # Accept comma-separated strings for list envs in addition to JSON arrays
    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def allowed_methods_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_METHODS)

    @property
    def allowed_headers_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_HEADERS)


@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # Normalize ALLOWED_ORIGINS if provided as comma-separated string env var CORS_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
