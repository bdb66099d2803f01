"""
Configuration management using pydantic models loaded from YAML.
"""

from datetime import datetime, time
from pathlib import Path
from typing import List, Optional, Sequence

import pendulum
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .domain.exceptions import ConfigurationError
from .domain.models import BusinessHours, SearchWindow


class BusinessHoursConfig(BaseModel):
    """Daily business hours and the minimum slot length."""
    start: time = time(9, 0)
    end: time = time(18, 0)
    minimum_minutes: int = 30
    exclude_days: List[int] = Field(default_factory=lambda: [5, 6])  # Saturday, Sunday

    @field_validator("start", "end", mode="before")
    @classmethod
    def reject_sexagesimal(cls, value):
        """YAML 1.1 reads unquoted 10:00 as the integer 600."""
        if isinstance(value, int):
            raise ValueError(
                f"Got number {value} instead of a time of day; quote times in YAML, e.g. '10:00'"
            )
        return value

    @field_validator("minimum_minutes")
    @classmethod
    def validate_minimum_minutes(cls, value: int) -> int:
        """Ensure the minimum slot length is positive."""
        if value <= 0:
            raise ValueError("minimum_minutes must be greater than zero")
        return value

    @field_validator("exclude_days")
    @classmethod
    def validate_exclude_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"exclude_days must be between 0 and 6, got {invalid_days}")
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def validate_hours_order(self) -> "BusinessHoursConfig":
        """Ensure business hours open before they close."""
        if self.end <= self.start:
            raise ValueError("business_hours.end must be later than business_hours.start")
        return self

    def to_business_hours(self) -> BusinessHours:
        return BusinessHours(
            start_time=self.start,
            end_time=self.end,
            minimum_minutes=self.minimum_minutes,
            exclude_weekdays=list(self.exclude_days),
        )


class CalendarEntry(BaseModel):
    """A calendar that can be searched, addressed by alias or id."""
    name: str  # Used as alias
    calendar_id: str


class SearchConfig(BaseModel):
    """Optional fixed search window."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_window(self) -> "SearchConfig":
        if (self.start is None) != (self.end is None):
            raise ValueError("search.start and search.end must be given together")
        if self.start is not None and self.end is not None and self.end <= self.start:
            raise ValueError("search.end must be later than search.start")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Asia/Tokyo"
    client_id: Optional[str] = None
    tenant_id: Optional[str] = None
    business_hours: BusinessHoursConfig = Field(default_factory=BusinessHoursConfig)
    calendars: List[CalendarEntry] = Field(default_factory=list)
    search: SearchConfig = Field(default_factory=SearchConfig)
    output_file: Optional[Path] = None
    mock_data_file: Optional[Path] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("calendars")
    @classmethod
    def validate_calendars(cls, value: List[CalendarEntry]) -> List[CalendarEntry]:
        """Ensure calendar aliases and ids are unique."""
        seen_names: set[str] = set()
        seen_ids: set[str] = set()
        for calendar in value:
            name_key = calendar.name.lower()
            id_key = calendar.calendar_id.lower()
            if name_key in seen_names:
                raise ValueError(f"Duplicate calendar name detected: {calendar.name}")
            if id_key in seen_ids:
                raise ValueError(f"Duplicate calendar id detected: {calendar.calendar_id}")
            seen_names.add(name_key)
            seen_ids.add(id_key)
        return value

    def get_authority_url(self) -> str:
        """Get the formatted authority URL."""
        return f"https://login.microsoftonline.com/{self.tenant_id}"

    def require_graph_credentials(self) -> None:
        """Ensure the Microsoft Graph application ids are configured."""
        if not self.client_id or not self.tenant_id:
            raise ConfigurationError(
                "client_id and tenant_id are required to access Microsoft Graph. "
                "Add them to the config file or run with --mock."
            )

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            ConfigurationError: If the file is missing or its content is invalid
        """
        if not config_path.exists():
            raise ConfigurationError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping at the root level.")

        try:
            config = cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration in {config_path}:\n{exc}") from exc

        # Relative data paths are resolved against the config file location
        base_dir = config_path.parent
        if config.output_file is not None and not config.output_file.is_absolute():
            config.output_file = base_dir / config.output_file
        if config.mock_data_file is not None and not config.mock_data_file.is_absolute():
            config.mock_data_file = base_dir / config.mock_data_file

        return config

    def get_search_window(self) -> SearchWindow | None:
        """Return the configured search window in the configured timezone, if any."""
        if self.search.start is None or self.search.end is None:
            return None

        return SearchWindow(
            start=pendulum.instance(self.search.start, tz=self.timezone).in_timezone(self.timezone),
            end=pendulum.instance(self.search.end, tz=self.timezone).in_timezone(self.timezone),
        )

    def find_calendar_by_name(self, name: str) -> CalendarEntry | None:
        """Find a calendar by its name (alias)."""
        for calendar in self.calendars:
            if calendar.name.lower() == name.lower():
                return calendar
        return None

    def resolve_calendar(self, identifier: str) -> str:
        """
        Resolve a calendar alias or raw calendar id to a calendar id.

        Raises:
            ConfigurationError: If identifier cannot be resolved
        """
        calendar = self.find_calendar_by_name(identifier)
        if calendar:
            return calendar.calendar_id

        # Raw ids look like mail addresses
        if "@" in identifier:
            return identifier

        raise ConfigurationError(
            f"Unknown calendar identifier: '{identifier}'. "
            f"Use a calendar id or a configured name."
        )

    def resolve_calendars(self, identifiers: Sequence[str]) -> List[str]:
        """
        Resolve multiple calendar identifiers, ensuring uniqueness.

        Without identifiers every configured calendar is used.

        Raises:
            ConfigurationError: If nothing is left to search or an
                identifier is unknown
        """
        if not identifiers:
            identifiers = [calendar.name for calendar in self.calendars]

        if not identifiers:
            raise ConfigurationError(
                "No calendars provided. Pass calendar ids or configure 'calendars'."
            )

        resolved_ids: List[str] = []
        unknown_identifiers: List[str] = []

        for identifier in identifiers:
            try:
                calendar_id = self.resolve_calendar(identifier)
            except ConfigurationError:
                unknown_identifiers.append(identifier)
                continue

            if calendar_id not in resolved_ids:
                resolved_ids.append(calendar_id)

        if unknown_identifiers:
            missing = ", ".join(sorted(set(unknown_identifiers)))
            raise ConfigurationError(
                f"Unknown calendar identifier(s): {missing}. "
                "Ensure they exist in the configuration or provide valid calendar ids."
            )

        return resolved_ids


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Try in the project root
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
