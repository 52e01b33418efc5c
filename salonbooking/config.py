"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator


class SchedulingConfig(BaseModel):
    """Scheduling rules passed explicitly into availability and booking calls."""
    appointment_interval_minutes: int = 30
    reminder_offsets_minutes: List[int] = Field(default_factory=lambda: [24 * 60, 60])
    booking_lead_time_hours: int = 0
    booking_cancel_limit_hours: int = 0

    @field_validator("appointment_interval_minutes")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        """Appointment interval must be at least five minutes."""
        if value < 5:
            raise ValueError(f"appointment_interval_minutes must be at least 5, got {value}")
        return value

    @field_validator("reminder_offsets_minutes")
    @classmethod
    def validate_reminder_offsets(cls, value: List[int]) -> List[int]:
        """Ensure offsets are positive, deduplicated and ordered earliest reminder first."""
        invalid = [offset for offset in value if offset <= 0]
        if invalid:
            raise ValueError(f"reminder_offsets_minutes must be positive, got {invalid}")
        return sorted(set(value), reverse=True)

    @field_validator("booking_lead_time_hours", "booking_cancel_limit_hours")
    @classmethod
    def validate_hours(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"Hours must not be negative, got {value}")
        return value

    def interval_for(self, salon_interval: Optional[int]) -> int:
        """Salon-level interval wins over the configured default."""
        return salon_interval or self.appointment_interval_minutes


class NotificationConfig(BaseModel):
    """Delivery relay settings (n8n webhook feeding the WhatsApp instance)."""
    webhook_url: Optional[str] = None
    instance_name: Optional[str] = None
    timeout_seconds: int = 30
    send_confirmation: bool = True
    send_reminders: bool = True
    dispatch_batch_size: int = 50

    @field_validator("timeout_seconds", "dispatch_batch_size")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"Value must be greater than zero, got {value}")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    database_url: str = "sqlite:///salonbooking.db"
    echo_sql: bool = False
    timezone: str = "America/Sao_Paulo"
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject unknown IANA timezone names early."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
