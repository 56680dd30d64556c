import json
import logging
from pathlib import Path

import pytest

import turnrelay
from turnrelay.config import ConfigError, RelayConfig, load_relay_config


def _write_config(path: Path, **values) -> Path:
    path.write_text(json.dumps({"config_version": 1, **values}), encoding="utf-8")
    return path


def test_defaults_identify_client_with_package_version() -> None:
    config = RelayConfig()

    assert config.logging_level == logging.WARNING
    assert config.client_info() == {"name": "turnrelay-client", "version": turnrelay.__version__}
    assert config.to_dict()["config_version"] == 1


def test_from_env_reads_values_and_falls_back_on_invalid_timeouts() -> None:
    config = RelayConfig.from_env(
        {
            "TURNRELAY_LOG_LEVEL": " debug ",
            "TURNRELAY_REQUEST_TIMEOUT_SECONDS": "not-a-number",
            "TURNRELAY_INTERRUPT_TIMEOUT_SECONDS": "-5",
            "TURNRELAY_FORWARD_URL": "http://hub.test/in",
        }
    )

    assert config.log_level == "DEBUG"
    assert config.request_timeout_seconds == 600.0
    assert config.interrupt_timeout_seconds == 30.0
    assert config.forward_url == "http://hub.test/in"


def test_from_env_with_empty_environment_uses_defaults() -> None:
    config = RelayConfig.from_env({"TURNRELAY_INTERRUPT_TIMEOUT_SECONDS": "2.5"})

    assert config.log_level == "WARNING"
    assert config.interrupt_timeout_seconds == 2.5
    assert config.forward_url is None


def test_invalid_level_and_timeouts_are_rejected() -> None:
    with pytest.raises(ConfigError, match="Unsupported log level"):
        RelayConfig(log_level="chatty")
    with pytest.raises(ConfigError, match="greater than zero"):
        RelayConfig(request_timeout_seconds=0)


def test_with_overrides_ignores_none_values() -> None:
    config = RelayConfig(log_level="info").with_overrides(log_level=None, forward_url="http://hub.test")

    assert config.log_level == "INFO"
    assert config.forward_url == "http://hub.test"


def test_load_relay_config_from_file(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path / "relay.json",
        log_level="error",
        interrupt_timeout_seconds=5,
        client_name="hub-bridge",
        developer_instructions="keep diffs small",
    )

    config = load_relay_config(path)

    assert config.log_level == "ERROR"
    assert config.interrupt_timeout_seconds == 5
    assert config.client_info()["name"] == "hub-bridge"
    assert config.developer_instructions == "keep diffs small"


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("{not json", "Invalid relay config JSON"),
        ("[]", "must be a JSON object"),
        ('{"config_version": 2}', "Unsupported relay config version"),
        ('{"config_version": 1, "plugins": []}', "unsupported keys: plugins"),
        ('{"config_version": 1, "request_timeout_seconds": "10"}', "must be a number"),
        ('{"config_version": 1, "request_timeout_seconds": true}', "must be a number"),
        ('{"config_version": 1, "forward_url": 8080}', "must be a string"),
    ],
)
def test_load_relay_config_rejects_malformed_files(tmp_path: Path, body: str, message: str) -> None:
    path = tmp_path / "relay.json"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_relay_config(path)


def test_load_relay_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_relay_config(tmp_path / "absent.json")
