"""Configuration settings for the statement import and reconciliation system."""

import os
import json
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

# Document Configuration
MAX_FILE_SIZE_MB = int(os.getenv("MAX_FILE_SIZE_MB", "25"))
MIN_TEXT_LENGTH = int(os.getenv("MIN_TEXT_LENGTH", "20"))
PDF_LAYOUT_FALLBACK = os.getenv("PDF_LAYOUT_FALLBACK", "False").lower() == "true"

# Parsing Configuration
SEGMENT_LOOKAHEAD = int(os.getenv("SEGMENT_LOOKAHEAD", "50"))
AMOUNT_UPPER_BOUND = os.getenv("AMOUNT_UPPER_BOUND", "100000000000")
DESCRIPTION_MAX_LENGTH = 500
REFERENCE_MAX_LENGTH = 100

# Reconciliation Configuration
MATCH_DATE_WINDOW_DAYS = int(os.getenv("MATCH_DATE_WINDOW_DAYS", "3"))
MATCH_DESCRIPTION_THRESHOLD = float(os.getenv("MATCH_DESCRIPTION_THRESHOLD", "25"))
MATCH_CONFIDENCE_THRESHOLD = float(os.getenv("MATCH_CONFIDENCE_THRESHOLD", "70"))

# Database Configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///bankrec.db")

# Celery Configuration
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TIMEZONE = "UTC"

# File Paths
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
REPORTS_DIR = os.getenv("REPORTS_DIR", os.path.join(BASE_DIR, "reports"))
LOGS_DIR = os.getenv("LOGS_DIR", os.path.join(BASE_DIR, "logs"))

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Excel Output Configuration
EXCEL_OUTPUT_FORMAT = os.getenv("EXCEL_OUTPUT_FORMAT", "xlsx")

# Currency Configuration
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "IDR")

# Processing Configuration
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
RETRY_DELAY_SECONDS = int(os.getenv("RETRY_DELAY_SECONDS", "30"))


@dataclass
class Settings:
    """Configuration settings class."""

    # Document handling
    max_file_size_mb: int = MAX_FILE_SIZE_MB
    min_text_length: int = MIN_TEXT_LENGTH
    pdf_layout_fallback: bool = PDF_LAYOUT_FALLBACK

    # Parsing
    segment_lookahead: int = SEGMENT_LOOKAHEAD
    amount_upper_bound: str = AMOUNT_UPPER_BOUND

    # Reconciliation
    match_date_window_days: int = MATCH_DATE_WINDOW_DAYS
    match_description_threshold: float = MATCH_DESCRIPTION_THRESHOLD
    match_confidence_threshold: float = MATCH_CONFIDENCE_THRESHOLD

    # Storage
    database_url: str = DATABASE_URL

    # Output Configuration
    reports_dir: str = REPORTS_DIR
    logs_dir: str = LOGS_DIR
    log_level: str = "INFO"
    log_format: str = LOG_FORMAT

    # Currency Configuration
    default_currency: str = DEFAULT_CURRENCY

    # Celery Configuration
    celery_broker_url: str = CELERY_BROKER_URL
    celery_result_backend: str = CELERY_RESULT_BACKEND

    # Processing Configuration
    max_retries: int = MAX_RETRIES
    retry_delay_seconds: int = RETRY_DELAY_SECONDS

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables."""
        return cls(
            max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", "25")),
            min_text_length=int(os.getenv("MIN_TEXT_LENGTH", "20")),
            pdf_layout_fallback=os.getenv("PDF_LAYOUT_FALLBACK", "False").lower() == "true",
            segment_lookahead=int(os.getenv("SEGMENT_LOOKAHEAD", "50")),
            amount_upper_bound=os.getenv("AMOUNT_UPPER_BOUND", "100000000000"),
            match_date_window_days=int(os.getenv("MATCH_DATE_WINDOW_DAYS", "3")),
            match_description_threshold=float(os.getenv("MATCH_DESCRIPTION_THRESHOLD", "25")),
            match_confidence_threshold=float(os.getenv("MATCH_CONFIDENCE_THRESHOLD", "70")),
            database_url=os.getenv("DATABASE_URL", "sqlite:///bankrec.db"),
            reports_dir=os.getenv("REPORTS_DIR", REPORTS_DIR),
            logs_dir=os.getenv("LOGS_DIR", LOGS_DIR),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", LOG_FORMAT),
            default_currency=os.getenv("DEFAULT_CURRENCY", "IDR"),
            celery_broker_url=os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0"),
            celery_result_backend=os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0"),
            max_retries=int(os.getenv("MAX_RETRIES", "3")),
            retry_delay_seconds=int(os.getenv("RETRY_DELAY_SECONDS", "30")),
        )

    def validate(self) -> bool:
        """Validate settings."""
        return (
            self.max_file_size_mb > 0 and
            self.min_text_length >= 0 and
            30 <= self.segment_lookahead <= 50 and
            float(self.amount_upper_bound) > 0 and
            self.match_date_window_days >= 0 and
            0 <= self.match_description_threshold <= 100 and
            0 <= self.match_confidence_threshold <= 100 and
            self.max_retries >= 0 and
            len(self.default_currency) == 3
        )

    def get_log_level(self) -> str:
        """Get log level as string."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() in valid_levels:
            return self.log_level.upper()
        return "INFO"

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Create settings from dictionary."""
        return cls(**data)

    def update(self, data: Dict[str, Any]) -> None:
        """Update settings from dictionary."""
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def clone(self) -> "Settings":
        """Create a copy of settings."""
        return self.from_dict(self.to_dict())

    def get_retry_delay(self, attempt: int) -> int:
        """Get retry delay for attempt number."""
        # Exponential backoff starting at the configured delay
        return self.retry_delay_seconds * (2 ** max(attempt - 1, 0))


def load_config_from_file(file_path: str) -> Dict[str, Any]:
    """Load configuration from file."""
    with open(file_path, 'r') as f:
        return json.load(f)


def load_settings(file_path: Optional[str] = None) -> Settings:
    """Build settings from the environment, overlaid with an optional JSON file.

    Args:
        file_path: Optional path to a JSON file with setting overrides.

    Returns:
        Settings instance.
    """
    settings = Settings.from_env()
    if file_path and os.path.exists(file_path):
        settings.update(load_config_from_file(file_path))
    return settings
