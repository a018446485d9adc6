"""Configuration for the Cloud Objects SDK.

Uses Pydantic v2 for validation with sensible defaults. Every model is
frozen; derive variants with ``with_overrides``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidConfigError
from .models import RetryPolicy


class Region(StrEnum):
    """Hosting regions of the Cloud Objects API."""

    EU_WEST_1 = "euWest1"
    EU_WEST_1_BETA = "euWest1Beta"


REGION_HOSTS: dict[Region, str] = {
    Region.EU_WEST_1: "api.retter.io",
    Region.EU_WEST_1_BETA: "test-api.retter.io",
}

DEFAULT_CULTURE = "en-us"


class RetryConfig(BaseModel):
    """Default retry policy for calls answered with the overloaded status."""

    model_config = ConfigDict(frozen=True)

    delay: Annotated[float, Field(gt=0, le=60)] = 0.05
    count: Annotated[int, Field(ge=0, le=20)] = 3
    rate: Annotated[float, Field(ge=1.0, le=10.0)] = 1.5

    def to_policy(
        self,
        *,
        delay: float | None = None,
        count: int | None = None,
        rate: float | None = None,
    ) -> RetryPolicy:
        """Build a fresh policy for one call, applying call-specific overrides."""
        return RetryPolicy(
            delay=self.delay if delay is None else delay,
            count=self.count if count is None else count,
            rate=self.rate if rate is None else rate,
        )


class TelemetryConfig(BaseModel):
    """Logging and tracing configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    service_name: str = "cloud-objects-sdk"
    log_level: str = "INFO"


class ClientConfig(BaseModel):
    """Main configuration for the Cloud Objects SDK."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    # Required
    project_id: str = Field(..., min_length=1)

    # Host resolution
    url: str | None = None
    region: Region = Region.EU_WEST_1

    # Request decoration
    culture: str = DEFAULT_CULTURE
    platform: str | None = None

    # HTTP settings
    timeout: Annotated[float, Field(gt=0, le=300)] = 30.0
    connect_timeout: Annotated[float, Field(gt=0, le=60)] = 10.0
    verify_ssl: bool = True

    # Sub-configurations
    retry: RetryConfig = Field(default_factory=RetryConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        """Project ids become URL path and host segments."""
        if "/" in v or v.strip() != v:
            msg = f"Invalid project id: {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("url")
    @classmethod
    def strip_url(cls, v: str | None) -> str | None:
        """Accept override hosts with or without scheme."""
        if v is None:
            return None
        v = v.removeprefix("https://").removeprefix("http://").rstrip("/")
        return v or None

    @property
    def host(self) -> str:
        """Explicit override host, otherwise the project's regional host."""
        if self.url:
            return self.url
        return f"{self.project_id}.{REGION_HOSTS[self.region]}"

    @property
    def token_storage_key(self) -> str:
        """Storage key of the account's credential."""
        return f"CLOUD_OBJECTS_TOKENS.{self.project_id}"

    def with_overrides(self, **kwargs: Any) -> Self:
        """Create new config with overridden values."""
        data = self.model_dump()
        data.update(kwargs)
        return self.__class__(**data)

    @classmethod
    def from_env(cls, prefix: str = "CLOUD_OBJECTS_") -> Self:
        """Create config from environment variables.

        Raises:
            InvalidConfigError: If a variable is missing or holds an invalid value.
        """
        import os

        def get_env(key: str, default: Any = None) -> Any:
            return os.environ.get(f"{prefix}{key}", default)

        project_id = get_env("PROJECT_ID")
        if not project_id:
            msg = f"{prefix}PROJECT_ID environment variable is required"
            raise InvalidConfigError(msg, field="project_id")

        try:
            return cls(
                project_id=project_id,
                url=get_env("URL"),
                region=get_env("REGION", Region.EU_WEST_1.value),
                culture=get_env("CULTURE", DEFAULT_CULTURE),
                platform=get_env("PLATFORM"),
                timeout=get_env("TIMEOUT", "30.0"),
            )
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            msg = f"Invalid {prefix}{field.upper()}: {first['msg']}"
            raise InvalidConfigError(msg, field=field) from e
