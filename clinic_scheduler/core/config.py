# clinic_scheduler/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

from ..application.models import WorkingHoursConfig

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra='ignore')

    # Application Settings
    APP_NAME: str = "Clinic Scheduler API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Appointment store (REST backend)
    STORE_BASE_URL: str = os.environ.get("STORE_BASE_URL", "http://localhost:8080/api")
    STORE_API_TOKEN: Optional[str] = os.environ.get("STORE_API_TOKEN", None)
    STORE_TIMEOUT_SECONDS: float = 15.0
    STORE_DATETIME_FORMAT: str = "%Y-%m-%dT%H:%M:%S"

    # Working hours (process-wide default, callers may override per query)
    WORK_START_HOUR: int = 9
    WORK_END_HOUR: int = 17
    BREAK_START_HOUR: int = 12
    BREAK_END_HOUR: int = 13
    SLOT_MINUTES: int = 30

    DEFAULT_APPOINTMENT_TYPE: str = "checkup"

    # CORS Settings
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Helper methods for list envs
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

    def working_hours(self) -> WorkingHoursConfig:
        return WorkingHoursConfig(
            start_hour=self.WORK_START_HOUR,
            end_hour=self.WORK_END_HOUR,
            break_start=self.BREAK_START_HOUR,
            break_end=self.BREAK_END_HOUR,
            slot_minutes=self.SLOT_MINUTES,
        )


@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # CORS_ORIGINS is accepted as an alias for ALLOWED_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
