"""Configuration system for push-dispatch.

The main configuration schema is a set of Pydantic models validated once at
startup. String values may reference environment variables with
``${VARIABLE_NAME}`` syntax; references are resolved before validation so
secrets such as the provider API key never have to live in the YAML file.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from push_dispatch.core.errors import PushDispatchError

# Matches ${VARIABLE_NAME} where the name holds uppercase letters, digits and underscores
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")


class DispatchConfig(BaseModel):
    """Throughput, concurrency, retry and latency settings for the engine.

    Durations are configured in milliseconds, matching the units operators
    see in the delivery logs. The ``*_seconds`` properties convert them for
    the asyncio APIs.
    """

    model_config = ConfigDict(frozen=True)

    rate_limit_per_second: Annotated[
        float,
        Field(gt=0, description="Token bucket refill rate (provider calls per second)"),
    ] = 700
    burst_capacity: Annotated[
        int | None,
        Field(gt=0, description="Token bucket capacity; defaults to the refill rate"),
    ] = None
    max_concurrent_sends: Annotated[
        int,
        Field(ge=1, description="Maximum provider calls in flight at once"),
    ] = 100
    max_retries: Annotated[
        int,
        Field(ge=0, description="Retries after the first attempt for retryable errors"),
    ] = 2
    initial_retry_delay_ms: Annotated[
        float,
        Field(ge=0, description="Backoff before the first retry"),
    ] = 50
    max_retry_delay_ms: Annotated[
        float,
        Field(ge=0, description="Upper bound for any single backoff"),
    ] = 2000
    retry_jitter_percent: Annotated[
        float,
        Field(ge=0, le=100, description="Random +/- spread applied to each backoff"),
    ] = 0
    early_response_threshold_ms: Annotated[
        float,
        Field(gt=0, description="Deadline after which dispatch answers 'delivering'"),
    ] = 300
    provider_timeout_ms: Annotated[
        float,
        Field(gt=0, description="Hard timeout for one provider call"),
    ] = 8000
    shutdown_grace_ms: Annotated[
        float,
        Field(ge=0, description="How long shutdown waits for background deliveries"),
    ] = 10000

    @model_validator(mode="after")
    def validate_retry_delays(self) -> Self:
        if self.max_retry_delay_ms < self.initial_retry_delay_ms:
            msg = (
                f"max_retry_delay_ms ({self.max_retry_delay_ms}) must be >= "
                f"initial_retry_delay_ms ({self.initial_retry_delay_ms})"
            )
            raise ValueError(msg)
        return self

    @property
    def effective_burst_capacity(self) -> float:
        if self.burst_capacity is not None:
            return float(self.burst_capacity)
        return self.rate_limit_per_second

    @property
    def initial_retry_delay_seconds(self) -> float:
        return self.initial_retry_delay_ms / 1000

    @property
    def max_retry_delay_seconds(self) -> float:
        return self.max_retry_delay_ms / 1000

    @property
    def early_response_threshold_seconds(self) -> float:
        return self.early_response_threshold_ms / 1000

    @property
    def provider_timeout_seconds(self) -> float:
        return self.provider_timeout_ms / 1000

    @property
    def shutdown_grace_seconds(self) -> float:
        return self.shutdown_grace_ms / 1000


class FormattingConfig(BaseModel):
    """Notification text rendering settings."""

    model_config = ConfigDict(frozen=True)

    max_text_length: Annotated[
        int,
        Field(ge=4, description="Body length before truncation with '...'"),
    ] = 100
    max_title_length: Annotated[
        int,
        Field(ge=4, description="Title length before truncation with '...'"),
    ] = 50
    default_sender_name: Annotated[
        str,
        Field(min_length=1, description="Sender name used when the directory has none"),
    ] = "Someone"
    deep_link_scheme: Annotated[
        str,
        Field(
            pattern=r"^[a-z][a-z0-9+.-]*$",
            description="URL scheme of the chat deep link",
        ),
    ] = "app"


class ProviderConfig(BaseModel):
    """Connection settings for the REST messaging provider."""

    model_config = ConfigDict(frozen=True)

    endpoint: Annotated[
        str,
        Field(description="Provider API base URL, e.g. https://cloud.example.com/v1"),
    ]
    project_id: Annotated[
        str,
        Field(min_length=1, description="Provider project identifier"),
    ]
    api_key: Annotated[
        str,
        Field(min_length=1, description="Provider API key (use ${PUSH_API_KEY})"),
    ]

    @field_validator("endpoint", mode="after")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Require an absolute HTTPS URL and drop any trailing slash.

        Raises:
            ValueError: If the endpoint is not an https:// URL
        """
        if not v.startswith("https://") or len(v) <= len("https://"):
            msg = f"Provider endpoint must be an https:// URL, got: {v!r}"
            raise ValueError(msg)
        return v.rstrip("/")


class ApplicationConfig(BaseModel):
    """Application-level settings."""

    model_config = ConfigDict(frozen=True)

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    dry_run: Annotated[
        bool,
        Field(description="Dry-run mode: log notifications without sending"),
    ] = False
    syslog_enabled: Annotated[
        bool,
        Field(description="Enable syslog integration"),
    ] = False


class MainConfig(BaseModel):
    """Main application configuration schema.

    Every section has defaults; only the provider section is mandatory, and
    only when dry-run mode is off.
    """

    model_config = ConfigDict(frozen=True)

    dispatch: Annotated[
        DispatchConfig,
        Field(description="Dispatch engine configuration"),
    ] = DispatchConfig()
    formatting: Annotated[
        FormattingConfig,
        Field(description="Notification formatting configuration"),
    ] = FormattingConfig()
    provider: Annotated[
        ProviderConfig | None,
        Field(description="Push provider connection configuration"),
    ] = None
    application: Annotated[
        ApplicationConfig,
        Field(description="Application-level configuration"),
    ] = ApplicationConfig()

    @model_validator(mode="after")
    def validate_provider_present(self) -> Self:
        if self.provider is None and not self.application.dry_run:
            msg = "provider section is required unless application.dry_run is true"
            raise ValueError(msg)
        return self

    def with_application_overrides(
        self,
        *,
        dry_run: bool | None = None,
        log_level: str | None = None,
        syslog_enabled: bool | None = None,
    ) -> "MainConfig":
        """Return a revalidated copy with command-line overrides applied.

        Raises:
            ConfigurationError: If the overridden configuration is invalid
        """
        application = self.application.model_dump()
        if dry_run is not None:
            application["dry_run"] = dry_run
        if log_level is not None:
            application["log_level"] = log_level.upper()
        if syslog_enabled is not None:
            application["syslog_enabled"] = syslog_enabled

        data = self.model_dump()
        data["application"] = application
        try:
            return MainConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(format_validation_error(e, source="command line")) from e


class EnvironmentVariableError(PushDispatchError):
    """Raised when a referenced environment variable is not set.

    The message names the variable but never includes any value.
    """


class ConfigurationError(PushDispatchError):
    """Raised when configuration loading or validation fails.

    Messages are multi-line and name the failing source along with a fix.
    """


def resolve_env_var(value: str) -> str:
    """Resolve ``${VARIABLE_NAME}`` references in a string value.

    Raises:
        EnvironmentVariableError: If a referenced variable is not set

    Examples:
        >>> os.environ["PUSH_API_KEY"] = "k"
        >>> resolve_env_var("${PUSH_API_KEY}")
        'k'
        >>> resolve_env_var("no variables here")
        'no variables here'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg)
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _resolve_item(value: object) -> object:
    if isinstance(value, str):
        return resolve_env_var(value)
    if isinstance(value, dict):
        return resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(value, list):
        return [_resolve_item(item) for item in value]  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    return value


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in a YAML mapping.

    Nested mappings and lists are walked; non-string scalars are kept as-is.

    Raises:
        EnvironmentVariableError: If a referenced variable is not set

    Examples:
        >>> os.environ["SECRET"] = "my_secret"
        >>> resolve_env_vars_in_dict({"provider": {"api_key": "${SECRET}"}})
        {'provider': {'api_key': 'my_secret'}}
    """
    return {key: _resolve_item(value) for key, value in data.items()}


def format_validation_error(error: ValidationError, *, source: str) -> str:
    """Render a Pydantic ``ValidationError`` as per-field diagnostics."""
    error_lines = ["Configuration validation failed:", ""]
    for err in error.errors():
        field_path = " → ".join(str(loc) for loc in err["loc"]) or "(root)"
        error_lines.append(f"  Field: {field_path}")
        error_lines.append(f"  Error: {err['msg']}")
        error_lines.append(f"  Type: {err['type']}")
        error_lines.append("")

    error_lines.append(f"Configuration source: {source}")
    error_lines.append("Please fix the above errors and try again.")
    return "\n".join(error_lines)


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate the main configuration from a YAML file.

    An empty file is treated as an empty mapping, so every default applies.

    Args:
        config_path: Path to the configuration YAML file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigurationError: If the file cannot be loaded, references an
            unset environment variable, or fails validation
    """
    if not config_path.exists():
        msg = (
            f"Configuration file not found: {config_path}\n"
            f"Please create a configuration file at this location.\n"
            f"See config.example.yaml for the file format."
        )
        raise ConfigurationError(msg)

    try:
        with config_path.open("r") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML configuration file: {config_path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {config_path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg) from e

    if raw_data is None:
        raw_data = {}

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid configuration file format: {config_path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}\n"
            f"Configuration file must contain key-value pairs."
        )
        raise ConfigurationError(msg)

    try:
        resolved_data = resolve_env_vars_in_dict(raw_data)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    except EnvironmentVariableError as e:
        msg = (
            f"Environment variable resolution failed in: {config_path}\n"
            f"{e}\n"
            f"Set the required environment variable before starting the application."
        )
        raise ConfigurationError(msg) from e

    try:
        return MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        raise ConfigurationError(format_validation_error(e, source=str(config_path))) from e
