"""
Runtime configuration.

Values come from the environment (after .env files are loaded by
``create_app``). Settings are built once per process and handed to the
``AppContext``; nothing else reads ``os.environ`` directly.
"""

import os
from typing import List

from pydantic import BaseModel, Field, field_validator


MIN_FILE_TTL_SECONDS = 15 * 60
MAX_FILE_TTL_SECONDS = 2 * 60 * 60

DEFAULT_MEDIA_HOSTS = "api.twilio.com,media.twiliocdn.com,mms.twiliocdn.com"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    # Twilio settings
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_from: str = ""
    template_sid: str = ""
    validate_signature: bool = False
    media_allowed_hosts: List[str] = Field(default_factory=lambda: DEFAULT_MEDIA_HOSTS.split(","))

    # Storage
    redis_url: str = ""

    # Output
    public_base_url: str = "http://localhost:8000"
    output_format: str = "xlsx"
    file_ttl_seconds: int = MIN_FILE_TTL_SECONDS
    file_password: bool = False
    csv_bom: bool = True

    # Access
    allowed_numbers: List[str] = Field(default_factory=list)

    node_env: str = "development"
    log_level: str = "INFO"

    model_config = {"frozen": True}

    @field_validator("output_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("csv", "xlsx"):
            raise ValueError("OUTPUT_FORMAT must be 'csv' or 'xlsx'")
        return value

    @field_validator("file_ttl_seconds")
    @classmethod
    def _clamp_ttl(cls, value: int) -> int:
        return max(MIN_FILE_TTL_SECONDS, min(MAX_FILE_TTL_SECONDS, value))

    @field_validator("public_base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.node_env == "production"

    @property
    def template_enabled(self) -> bool:
        return bool(self.template_sid)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            twilio_whatsapp_from=os.getenv("TWILIO_WHATSAPP_FROM", ""),
            template_sid=os.getenv("TWILIO_TEMPLATE_SID", ""),
            validate_signature=_env_bool("TWILIO_VALIDATE_SIGNATURE", False),
            media_allowed_hosts=_env_list("MEDIA_ALLOWED_HOSTS", DEFAULT_MEDIA_HOSTS),
            redis_url=os.getenv("REDIS_URL", ""),
            public_base_url=os.getenv("BASE_URL", "http://localhost:8000"),
            output_format=os.getenv("OUTPUT_FORMAT", "xlsx"),
            file_ttl_seconds=int(os.getenv("FILE_TTL_SECONDS", str(MIN_FILE_TTL_SECONDS))),
            file_password=_env_bool("FILE_PASSWORD_ENABLED", False),
            csv_bom=_env_bool("CSV_BOM", True),
            allowed_numbers=_env_list("ALLOWED_NUMBERS"),
            node_env=os.getenv("NODE_ENV", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
