"""
Configuration Management for Money Manager

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet holds every document, one row per document
    documents_sheet_name: str = Field(
        default="Documents",
        description="Name of the sheet holding the documents"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the financial advisor."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    # Slight creativity for advice, still grounded in the data
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class LoanSettings(BaseSettings):
    """Loan ledger limits and policies."""

    model_config = SettingsConfigDict(
        env_prefix="LOAN_",
        extra="ignore"
    )

    # Hosted document stores cap an atomic batch at 500 writes
    max_batch_operations: int = Field(
        default=400,
        ge=2,
        le=500,
        description="Maximum write operations per atomic batch"
    )
    max_term_months: int = Field(
        default=360,
        ge=1,
        description="Longest loan term accepted by the loan form"
    )
    allow_out_of_order_payments: bool = Field(
        default=False,
        description="Allow marking an entry paid while an earlier one is unpaid"
    )
    max_interest_rate_percent: float = Field(
        default=100.0,
        gt=0,
        description="Annual rate above which a warning is raised"
    )

    @model_validator(mode='after')
    def validate_term_fits_batch(self) -> 'LoanSettings':
        """A new loan writes term + 1 documents in one batch."""
        if self.max_term_months > self.max_batch_operations - 1:
            raise ValueError(
                f"max_term_months ({self.max_term_months}) must leave room for the loan "
                f"record in a batch of {self.max_batch_operations} operations"
            )
        return self


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
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
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)"
    )

    # Display
    currency_code: str = Field(
        default="VND",
        min_length=3,
        max_length=3,
        description="ISO currency code of all amounts (whole units)"
    )
    thousands_separator: str = Field(
        default=".",
        max_length=1,
        description="Digit grouping separator for displayed amounts"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


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

    # Load all sub-settings
    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def loans(self) -> LoanSettings:
        return LoanSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "gemini", "loans", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
