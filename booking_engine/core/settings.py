from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict


class Env(str, Enum):
    DEV = "dev"
    HML = "hml"
    PROD = "prod"


class Settings(BaseSettings):
    APP_ENV: Env = Env.DEV
    DEBUG: bool = False

    DATABASE_URL: str = "sqlite:///./booking.db"

    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"

    # Fuso usado quando o tenant não define o seu
    DEFAULT_TIMEZONE: str = "America/Sao_Paulo"

    # Padrões de disponibilidade (profissional > tenant > estes valores)
    DEFAULT_SLOT_INTERVAL: int = 30
    DEFAULT_MIN_ADVANCE_BOOKING_HOURS: int = 1
    DEFAULT_MAX_ADVANCE_BOOKING_DAYS: int = 30

    RECURRENCE_MAX_OCCURRENCES: int = 52
    AVAILABILITY_MAX_RANGE_DAYS: int = 31

    # Conflito de escrita no banco: uma nova tentativa após este intervalo
    CONFLICT_RETRY_BACKOFF_SECONDS: float = 0.05

    # 1 = leituras sequenciais (útil com SQLite em memória)
    CALENDAR_READ_CONCURRENCY: int = 3

    REMINDER_OFFSETS_HOURS: list[int] = [24, 2]
    CONFIRMATION_TIMEOUT_MINUTES: int = 1440
    NO_SHOW_GRACE_MINUTES: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# cria instância global
settings = Settings()
