"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import BusinessRules


def _parse_hhmm(value) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        # Unquoted HH:MM in YAML is read as a base-60 integer
        hours, minutes = divmod(value, 60)
        return time(hour=hours, minute=minutes)
    try:
        hours, minutes = (int(part) for part in str(value).split(":"))
        return time(hour=hours, minute=minutes)
    except ValueError as exc:
        raise ValueError(f"Time must be in HH:MM format, got {value!r}") from exc


class BusinessRulesConfig(BaseModel):
    """Opening hours, buffers and provider pay rates."""
    opening_hour: int = 9
    closing_hour: int = 17
    default_buffer_before_minutes: int = 0
    default_buffer_after_minutes: int = 15
    min_advance_hours: float = 2
    daytime_hourly_rate: Decimal = Decimal("90")
    afterhours_hourly_rate: Decimal = Decimal("105")
    weekend_hourly_rate: Optional[Decimal] = None

    @field_validator("opening_hour", "closing_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("default_buffer_before_minutes", "default_buffer_after_minutes", "min_advance_hours")
    @classmethod
    def validate_non_negative(cls, value):
        if value < 0:
            raise ValueError("Buffers and advance notice cannot be negative")
        return value

    @field_validator("daytime_hourly_rate", "afterhours_hourly_rate", "weekend_hourly_rate")
    @classmethod
    def validate_rate(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        if value is not None and value < 0:
            raise ValueError("Hourly rates cannot be negative")
        return value

    @model_validator(mode="after")
    def validate_hours_order(self) -> "BusinessRulesConfig":
        """Ensure the business opens before it closes."""
        if self.closing_hour <= self.opening_hour:
            raise ValueError("closing_hour must be later than opening_hour")
        return self

    def to_business_rules(self) -> BusinessRules:
        """Freeze the settings into the snapshot the engine consumes."""
        return BusinessRules(
            opening_hour=self.opening_hour,
            closing_hour=self.closing_hour,
            default_buffer_before_minutes=self.default_buffer_before_minutes,
            default_buffer_after_minutes=self.default_buffer_after_minutes,
            min_advance_hours=self.min_advance_hours,
            daytime_hourly_rate=self.daytime_hourly_rate,
            afterhours_hourly_rate=self.afterhours_hourly_rate,
            weekend_hourly_rate=self.weekend_hourly_rate,
        )


class PricingConfig(BaseModel):
    """Settings for customer pricing and quotes."""
    max_gift_card_redemption: Optional[Decimal] = None
    weekend_rule_start: time = time(8, 0)
    weekend_rule_end: time = time(18, 0)
    minimum_quote_minutes: int = 120

    @field_validator("weekend_rule_start", "weekend_rule_end", mode="before")
    @classmethod
    def parse_time(cls, value) -> time:
        return _parse_hhmm(value)

    @field_validator("minimum_quote_minutes")
    @classmethod
    def validate_minimum(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("minimum_quote_minutes must be greater than zero")
        return value

    @model_validator(mode="after")
    def validate_window(self) -> "PricingConfig":
        if self.weekend_rule_end <= self.weekend_rule_start:
            raise ValueError("weekend_rule_end must be later than weekend_rule_start")
        return self


class EngineConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Australia/Sydney"
    business_rules: BusinessRulesConfig = Field(default_factory=BusinessRulesConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    data_file: str = "data.yaml"
    settings_cache_ttl_seconds: int = 300

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("settings_cache_ttl_seconds")
    @classmethod
    def validate_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError("settings_cache_ttl_seconds cannot be negative")
        return value

    def resolve_data_file(self, config_path: Optional[Path] = None) -> Path:
        """Resolve data_file relative to the config file's directory."""
        path = Path(self.data_file)
        if path.is_absolute() or config_path is None:
            return path
        return config_path.parent / path

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "EngineConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            EngineConfig instance

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
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
