"""
Configuration Management for Personal Organizer

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Storage locations, auto-save timing, reminder behaviour and display
preferences are validated once at startup.
"""

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Local persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORGANIZER_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding all collection files"
    )

    # One JSON array per entity family
    tasks_filename: str = Field(default="tasks.json")
    accounts_filename: str = Field(default="accounts.json")
    transactions_filename: str = Field(default="transactions.json")
    budgets_filename: str = Field(default="budgets.json")
    bills_filename: str = Field(default="bills.json")
    savings_goals_filename: str = Field(default="savings_goals.json")
    events_filename: str = Field(default="events.json")

    # Key-value blob store used by notes
    preferences_filename: str = Field(
        default="preferences.json",
        description="Key-value blob file holding notes and folders"
    )
    notes_key: str = Field(default="savedNotes")
    folders_key: str = Field(default="savedFolders")

    audit_log_filename: str = Field(
        default="audit.jsonl",
        description="Append-only audit trail"
    )

    notes_debounce_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Quiet period before a burst of note edits is written"
    )
    write_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a collection write before giving up"
    )

    def path_for(self, filename: str) -> Path:
        """Resolve a collection file inside the data directory."""
        return self.data_dir.expanduser() / filename


class NotificationSettings(BaseSettings):
    """Reminder scheduling configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORGANIZER_NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    snooze_minutes: int = Field(
        default=15,
        ge=1,
        le=24 * 60,
        description="Offset applied by the snooze action"
    )
    reminder_title: str = Field(
        default="Task Reminder",
        description="Title shown on task reminder alerts"
    )
    backend: str = Field(
        default="memory",
        pattern="^(memory|apscheduler)$",
        description="Notification center implementation"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="ORGANIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    seed_sample_data: bool = Field(
        default=True,
        description="Populate sample tasks on first run"
    )
    async_effects: bool = Field(
        default=True,
        description="Run persistence and scheduling on a background worker"
    )

    # Display
    display_timezone: str = Field(
        default="UTC",
        description="IANA timezone used to group history by calendar day"
    )
    history_date_format: str = Field(
        default="%b %d, %Y",
        description="strftime format for history group labels"
    )
    base_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO 4217 code applied to new money amounts"
    )

    # Validation thresholds
    large_transaction_amount: float = Field(
        default=10000.0,
        gt=0,
        description="Amounts above this are flagged for review"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future a transaction date can be"
    )

    @field_validator("display_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names at startup."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("base_currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def tzinfo(self) -> ZoneInfo:
        """Display timezone as a tzinfo object."""
        return ZoneInfo(self.display_timezone)


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an
    ``<name>_error`` entry for each section that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("storage", "notifications", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
