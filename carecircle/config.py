"""
Runtime settings read from the Lambda environment.

Table names and the SES sender are deployment concerns and come from the
environment. The retry budget and the delivery timeout are fixed constants.
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator

MAX_RETRY_COUNT = 3
NOTIFICATION_TIMEOUT_SECONDS = 30.0

DEFAULT_FROM_EMAIL = "noreply@healthcare-monitoring.com"
DEFAULT_NOTIFICATIONS_TABLE = "healthcare-notifications-dev"


class Settings(BaseModel):
    env: str = Field(default="local", description="Deployment environment; 'local' targets LocalStack")
    region: str = Field(default="us-east-1")
    users_table: str = Field(default="healthcare-users-dev")
    care_circle_table: str = Field(default="healthcare-care-circle-dev")
    notifications_table: str = Field(default=DEFAULT_NOTIFICATIONS_TABLE)
    audit_logs_table: str = Field(default="", description="Empty disables the audit table write")
    ses_from_email: str = Field(default=DEFAULT_FROM_EMAIL)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("users_table", "care_circle_table", "notifications_table")
    @classmethod
    def table_name_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Table name must not be empty")
        return v.strip()

    @property
    def is_local(self) -> bool:
        return self.env == "local"


def _level(val: str) -> str:
    v = val.strip().upper()
    return v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO"


def load_settings_from_env() -> Settings:
    """Build settings from environment variables, falling back to dev defaults."""
    return Settings(
        env=os.environ.get("ENV", "local"),
        region=os.environ.get("AWS_REGION", "us-east-1"),
        users_table=os.environ.get("USERS_TABLE", "healthcare-users-dev"),
        care_circle_table=os.environ.get("CARE_CIRCLE_TABLE", "healthcare-care-circle-dev"),
        notifications_table=os.environ.get("NOTIFICATIONS_TABLE") or DEFAULT_NOTIFICATIONS_TABLE,
        audit_logs_table=os.environ.get("AUDIT_LOGS_TABLE", ""),
        ses_from_email=os.environ.get("SES_FROM_EMAIL") or DEFAULT_FROM_EMAIL,
        log_level=_level(os.environ.get("LOG_LEVEL", "INFO")),
    )


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per warm container."""
    return load_settings_from_env()
