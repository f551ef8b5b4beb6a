import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # API settings
    DEBUG: bool = False
    PROJECT_NAME: str = "Student Tutor Relay"

    # Directory settings
    DATA_DIR: str = "api/data"

    # DeepSeek answer generation (OpenAI-compatible chat completions API)
    DEEPSEEK_API_KEY: str = ""
    DEEPSEEK_API_URL: str = "https://api.deepseek.com/v1/chat/completions"
    DEEPSEEK_MODEL: str = "deepseek-chat"
    ANSWER_SYSTEM_PROMPT: str = (
        "You are an expert tutor. Explain concepts simply with proper math notation."
    )
    ANSWER_MAX_RETRIES: int = 2  # 3 attempts in total
    ANSWER_RETRY_DELAY_MS: int = 1000  # Multiplied by the attempt number
    ANSWER_TIMEOUT_SECONDS: float = 30.0
    ANSWER_MAX_TOKENS: int = 1000
    ANSWER_TEMPERATURE: float = 0.7
    ANSWER_SIMPLIFIED_TIMEOUT_SECONDS: float = 15.0
    ANSWER_SIMPLIFIED_MAX_TOKENS: int = 100
    ANSWER_SIMPLIFIED_TEMPERATURE: float = 0.5

    # Telegram (student-facing messaging channel)
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_FILE_BASE_URL: str = "https://api.telegram.org/file/bot"
    ATTACHMENT_DOWNLOAD_TIMEOUT_SECONDS: float = 15.0

    # Slack (teacher review channel)
    SLACK_BOT_TOKEN: str = ""
    SLACK_CHANNEL_ID: str = "testing"
    SLACK_SIGNING_SECRET: str = ""  # Empty disables request signature checks

    # Google Sheets (training-data archive)
    GOOGLE_SHEETS_SPREADSHEET_ID: str = ""
    GOOGLE_SHEETS_SHEET_NAME: str = "Sheet1"
    GOOGLE_CREDENTIALS_FILE: str = "/etc/secrets/google-credentials.json"

    # Duplicate approve/edit callbacks: False = log and ignore, True = re-send
    # the stored final answer to the student
    REVIEW_REDELIVER_ON_DUPLICATE: bool = False

    # Archive export (X-API-Key header); empty disables the admin routes
    ADMIN_API_KEY: str = ""

    # Environment settings
    ENVIRONMENT: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
    )

    @property
    def QUESTION_DB_PATH(self) -> str:
        """Complete path to the SQLite question/profile database"""
        return os.path.join(self.DATA_DIR, "tutor_relay.db")

    @property
    def TEMP_DIR_PATH(self) -> str:
        """Directory for downloaded attachments awaiting extraction"""
        return os.path.join(self.DATA_DIR, "temp")

    @property
    def DEBUG_IMAGE_DIR_PATH(self) -> str:
        """Directory for debug copies of processed images"""
        return os.path.join(self.DATA_DIR, "debug")

    @property
    def DEAD_LETTER_FILE_PATH(self) -> str:
        """Complete path to the dead-letter JSONL file"""
        return os.path.join(self.DATA_DIR, "dead_letter.jsonl")

    @property
    def is_production(self) -> bool:
        environment = self.ENVIRONMENT.strip().lower()
        return environment in {"production", "prod"}

    def missing_credentials(self) -> list[str]:
        """Names of required credentials that are not configured.

        Returns:
            List of setting names whose value is empty
        """
        required = {
            "TELEGRAM_BOT_TOKEN": self.TELEGRAM_BOT_TOKEN,
            "SLACK_BOT_TOKEN": self.SLACK_BOT_TOKEN,
            "DEEPSEEK_API_KEY": self.DEEPSEEK_API_KEY,
            "GOOGLE_SHEETS_SPREADSHEET_ID": self.GOOGLE_SHEETS_SPREADSHEET_ID,
        }
        return [name for name, value in required.items() if not value.strip()]

    @field_validator("ANSWER_TEMPERATURE", "ANSWER_SIMPLIFIED_TEMPERATURE")
    @classmethod
    def validate_temperature(cls, v: float, info: ValidationInfo) -> float:
        """Validate answer temperatures are within the accepted range.

        Args:
            v: Temperature value
            info: Validation info carrying the field name

        Returns:
            Validated temperature value

        Raises:
            ValueError: If temperature is outside acceptable range
        """
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"{info.field_name} must be between 0.0 and 2.0, got {v}")
        return v

    @field_validator("ANSWER_MAX_RETRIES", "ANSWER_RETRY_DELAY_MS")
    @classmethod
    def validate_non_negative(cls, v: int, info: ValidationInfo) -> int:
        if v < 0:
            raise ValueError(f"{info.field_name} must not be negative, got {v}")
        return v

    @field_validator("DEEPSEEK_API_URL", "TELEGRAM_FILE_BASE_URL")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensure URLs carry a scheme and no surrounding whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("URL settings must be non-empty")
        if "://" not in v:
            v = "https://" + v
        return v

    @field_validator("SLACK_CHANNEL_ID")
    @classmethod
    def validate_slack_channel(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("SLACK_CHANNEL_ID must be non-empty")
        return v

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Make paths absolute
        self.DATA_DIR = os.path.abspath(self.DATA_DIR)

    def ensure_data_dirs(self) -> None:
        """Create required data directories if they don't exist.

        Called during application startup (lifespan) to avoid import-time I/O.
        """
        Path(self.DATA_DIR).mkdir(parents=True, exist_ok=True)
        Path(self.TEMP_DIR_PATH).mkdir(parents=True, exist_ok=True)
        Path(self.DEBUG_IMAGE_DIR_PATH).mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings instance with lazy initialization.

    Settings are only created once on first access, then cached for subsequent calls.

    Returns:
        Settings: Application settings object
    """
    return Settings()


def reset_settings() -> None:
    """Reset the cached settings instance.

    Useful for testing when you need to reload settings with different values.
    """
    get_settings.cache_clear()
