"""Tests for configuration models and YAML loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from push_dispatch.core.config import (
    ConfigurationError,
    DispatchConfig,
    EnvironmentVariableError,
    FormattingConfig,
    MainConfig,
    ProviderConfig,
    load_main_config,
    resolve_env_var,
    resolve_env_vars_in_dict,
)

PROVIDER_YAML = """
provider:
  endpoint: https://push.example.com/v1/
  project_id: chat-app
  api_key: ${PUSH_API_KEY}
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    _ = path.write_text(content)
    return path


class TestDispatchConfig:
    def test_defaults(self) -> None:
        config = DispatchConfig()

        assert config.rate_limit_per_second == 700
        assert config.effective_burst_capacity == 700
        assert config.max_concurrent_sends == 100
        assert config.max_retries == 2
        assert config.initial_retry_delay_seconds == pytest.approx(0.05)
        assert config.max_retry_delay_seconds == pytest.approx(2.0)
        assert config.early_response_threshold_seconds == pytest.approx(0.3)
        assert config.provider_timeout_seconds == pytest.approx(8.0)
        assert config.shutdown_grace_seconds == pytest.approx(10.0)

    def test_explicit_burst_capacity(self) -> None:
        assert DispatchConfig(rate_limit_per_second=10, burst_capacity=50).effective_burst_capacity == 50

    @pytest.mark.parametrize(
        "overrides",
        [
            {"rate_limit_per_second": 0},
            {"max_concurrent_sends": 0},
            {"max_retries": -1},
            {"early_response_threshold_ms": 0},
            {"retry_jitter_percent": 101},
            {"initial_retry_delay_ms": 500, "max_retry_delay_ms": 100},
        ],
    )
    def test_rejects_invalid_values(self, overrides: dict[str, float]) -> None:
        with pytest.raises(ValidationError):
            _ = DispatchConfig.model_validate(overrides)

    def test_is_frozen(self) -> None:
        config = DispatchConfig()
        with pytest.raises(ValidationError):
            config.max_retries = 5  # pyright: ignore[reportAttributeAccessIssue]


class TestProviderConfig:
    def test_endpoint_trailing_slash_is_dropped(self) -> None:
        config = ProviderConfig(endpoint="https://push.example.com/v1/", project_id="p", api_key="k")
        assert config.endpoint == "https://push.example.com/v1"

    @pytest.mark.parametrize("endpoint", ["http://push.example.com/v1", "push.example.com", "https://"])
    def test_endpoint_must_be_https(self, endpoint: str) -> None:
        with pytest.raises(ValidationError, match="https://"):
            _ = ProviderConfig(endpoint=endpoint, project_id="p", api_key="k")


class TestMainConfig:
    def test_provider_required_outside_dry_run(self) -> None:
        with pytest.raises(ValidationError, match="provider section is required"):
            _ = MainConfig()

    def test_dry_run_needs_no_provider(self) -> None:
        config = MainConfig.model_validate({"application": {"dry_run": True}})
        assert config.provider is None
        assert config.formatting == FormattingConfig()

    def test_overrides_are_revalidated(self) -> None:
        config = MainConfig.model_validate({"application": {"dry_run": True}})

        updated = config.with_application_overrides(log_level="debug", syslog_enabled=True)

        assert updated.application.log_level == "DEBUG"
        assert updated.application.syslog_enabled is True
        assert config.application.log_level == "INFO"

    def test_disabling_dry_run_without_provider_fails(self) -> None:
        config = MainConfig.model_validate({"application": {"dry_run": True}})

        with pytest.raises(ConfigurationError, match="command line"):
            _ = config.with_application_overrides(dry_run=False)

    def test_invalid_log_level_override(self) -> None:
        config = MainConfig.model_validate({"application": {"dry_run": True}})

        with pytest.raises(ConfigurationError, match="log_level"):
            _ = config.with_application_overrides(log_level="verbose")


class TestEnvironmentResolution:
    def test_resolves_set_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_API_KEY", "standard_abc")
        assert resolve_env_var("key=${PUSH_API_KEY}") == "key=standard_abc"

    def test_unset_variable_names_it_without_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MISSING_VAR", raising=False)

        with pytest.raises(EnvironmentVariableError, match="MISSING_VAR"):
            _ = resolve_env_var("${MISSING_VAR}")

    def test_lowercase_references_are_left_alone(self) -> None:
        assert resolve_env_var("${not_a_var}") == "${not_a_var}"

    def test_walks_nested_structures(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REGION", "eu")
        data = {"a": {"b": ["${REGION}", 3, {"c": "${REGION}-1"}]}, "flag": True}

        assert resolve_env_vars_in_dict(data) == {"a": {"b": ["eu", 3, {"c": "eu-1"}]}, "flag": True}


class TestLoadMainConfig:
    def test_loads_full_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_API_KEY", "standard_abc")
        path = _write(
            tmp_path,
            PROVIDER_YAML
            + """
dispatch:
  rate_limit_per_second: 50
  early_response_threshold_ms: 150
formatting:
  deep_link_scheme: chatapp
""",
        )

        config = load_main_config(path)

        assert config.provider is not None
        assert config.provider.endpoint == "https://push.example.com/v1"
        assert config.provider.api_key == "standard_abc"
        assert config.dispatch.rate_limit_per_second == 50
        assert config.dispatch.early_response_threshold_seconds == pytest.approx(0.15)
        assert config.formatting.deep_link_scheme == "chatapp"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            _ = load_main_config(tmp_path / "absent.yaml")

    def test_empty_file_still_requires_provider(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="provider section is required"):
            _ = load_main_config(_write(tmp_path, ""))

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="YAML parsing error"):
            _ = load_main_config(_write(tmp_path, "dispatch: [unclosed"))

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Expected YAML dictionary"):
            _ = load_main_config(_write(tmp_path, "- just\n- a list\n"))

    def test_unset_environment_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PUSH_API_KEY", raising=False)

        with pytest.raises(ConfigurationError, match="PUSH_API_KEY") as exc_info:
            _ = load_main_config(_write(tmp_path, PROVIDER_YAML))

        assert isinstance(exc_info.value.__cause__, EnvironmentVariableError)

    def test_validation_errors_name_field_and_source(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "application:\n  dry_run: true\ndispatch:\n  max_concurrent_sends: 0\n")

        with pytest.raises(ConfigurationError) as exc_info:
            _ = load_main_config(path)

        message = str(exc_info.value)
        assert "dispatch → max_concurrent_sends" in message
        assert str(path) in message

    def test_secret_values_never_appear_in_errors(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_API_KEY", "standard_topsecret")
        path = _write(tmp_path, PROVIDER_YAML + "dispatch:\n  max_retries: -3\n")

        with pytest.raises(ConfigurationError) as exc_info:
            _ = load_main_config(path)

        assert "standard_topsecret" not in str(exc_info.value)
