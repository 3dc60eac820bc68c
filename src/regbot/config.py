from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    bot_token: str = Field(..., alias="BOT_TOKEN")
    database_url: str = Field(..., alias="DATABASE_URL")
    tz: str = Field("Europe/Moscow", alias="TZ")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    admin_group: int = Field(..., alias="ADMIN_GROUP")
    members_group: int = Field(..., alias="MEMBERS_GROUP")
    bot_admins: list[int] = Field(default_factory=list, alias="BOT_ADMINS")
    default_locale: str = Field("ru", alias="DEFAULT_LOCALE")

    payment_iban: str = Field(..., alias="PAYMENT_IBAN")
    payment_recipient: str = Field(..., alias="PAYMENT_RECIPIENT")

    reminder_frequency_s: float = Field(30.0, alias="REMINDER_FREQUENCY_S")
    reminder_error_backoff_s: float = Field(60.0, alias="REMINDER_ERROR_BACKOFF_S")
    reminder_jitter_s: float = Field(2.5, alias="REMINDER_JITTER_S")
    reminder_time_hh: int = Field(15, alias="REMINDER_TIME_HH", ge=0, le=23)
    send_timeout_s: float = Field(30.0, alias="SEND_TIMEOUT_S")

    @property
    def zoneinfo(self) -> ZoneInfo:
        return ZoneInfo(self.tz)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
