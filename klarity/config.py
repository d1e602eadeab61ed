from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KLARITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Telegram Bot
    bot_token: str
    bot_username: str = ""

    # Database (PostgreSQL)
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "klarity"
    db_user: str = "klarity"
    db_password: str

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None

    # OpenAI booking agent
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.2
    chat_history_max_messages: int = 20

    # Google Calendar
    google_application_credentials: str = ""
    google_calendar_id: str = ""
    google_personal_calendar_id: str = ""

    # Waiver mini-app
    form_url: str = ""

    # Availability fallback (used when no default rule is stored in the DB)
    practitioner_timezone: str = "America/Chicago"
    weekly_availability: dict[str, list[dict[str, str]]] = {}
    max_advance_days: int = 60
    min_notice_hours: int = 24
    buffer_time_minutes: int = 30
    max_bookings_per_day: int = 4
    slot_increment_minutes: int = 15

    # Slot search
    slot_search_window_days: int = 14
    session_durations: dict[str, int] = {"private": 90}
    default_session_duration_minutes: int = 60
    # Bookable session types are the keys of session_durations plus this one
    default_session_type: str = "standard"

    # Collaborator timeouts
    agent_timeout_seconds: float = 60.0
    tool_timeout_seconds: float = 15.0

    # Rate limits
    agent_rate_limit_per_minute: int = 20
    agent_rate_limit_per_hour: int = 150
    message_rate_limit_per_minute: int = 60

    # Pending bookings without a calendar event expire after this
    pending_booking_ttl_minutes: int = 30

    # App
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = False

    # Logging
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        from urllib.parse import quote_plus
        return (
            f"postgresql+asyncpg://{quote_plus(self.db_user)}:{quote_plus(self.db_password)}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def database_url_sync(self) -> str:
        from urllib.parse import quote_plus
        return (
            f"postgresql://{quote_plus(self.db_user)}:{quote_plus(self.db_password)}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def redis_url(self) -> str:
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def session_types(self) -> list[str]:
        return [self.default_session_type, *(t for t in self.session_durations if t != self.default_session_type)]

    def session_duration_minutes(self, session_type: str | None) -> int:
        """Look up the slot duration for a session type, falling back to the default."""
        if session_type and session_type in self.session_durations:
            return self.session_durations[session_type]
        return self.default_session_duration_minutes


settings = Settings()  # type: ignore[call-arg]
