from __future__ import annotations

from pathlib import Path

import pytest

from nfcbridge.core.config_loader import CONFIG_ENV_VAR, load_settings
from nfcbridge.core.errors import ConfigLoadError, ConfigValidationError
from nfcbridge.core.model import WatchSettings


def _write_config(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    return tmp_path / "cfg" / "nfcbridge" / "config.yaml"


def test_defaults_without_settings_file() -> None:
    loaded = load_settings()
    assert loaded.source is None
    assert loaded.settings == WatchSettings()
    assert loaded.settings.presence_timeout_s == 0.1
    assert loaded.settings.settle_delay_s == 0.05
    assert loaded.settings.read_attempts == 3
    assert loaded.settings.max_consecutive_errors == 3


def test_user_settings_override_defaults(isolated_config: Path) -> None:
    _write_config(
        isolated_config,
        """
settle_delay_s: 0.2
read_attempts: 5
stop_timeout_s: 2
""",
    )

    loaded = load_settings()
    assert loaded.source == isolated_config
    assert loaded.settings.settle_delay_s == 0.2
    assert loaded.settings.read_attempts == 5
    assert loaded.settings.stop_timeout_s == 2.0
    assert isinstance(loaded.settings.stop_timeout_s, float)
    assert loaded.settings.presence_timeout_s == 0.1


def test_empty_file_uses_defaults(isolated_config: Path) -> None:
    _write_config(isolated_config, "")
    assert load_settings().settings == WatchSettings()


def test_env_var_path_takes_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, isolated_config: Path) -> None:
    _write_config(isolated_config, "read_attempts: 2\n")
    env_file = tmp_path / "env.yaml"
    _write_config(env_file, "read_attempts: 4\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(env_file))

    assert load_settings().settings.read_attempts == 4
    assert load_settings(isolated_config).settings.read_attempts == 2


def test_missing_explicit_file_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_settings(tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "read_attempts: 0\n",
        "read_attempts: 1.5\n",
        "settle_delay_s: -1\n",
        "presence_timeout_s: true\n",
        "poll_everything: 1\n",
        "- a\n- b\n",
        "read_attempts: [\n",
    ],
)
def test_invalid_settings_rejected(isolated_config: Path, content: str) -> None:
    _write_config(isolated_config, content)
    with pytest.raises(ConfigValidationError):
        load_settings()


def test_duplicate_yaml_keys_rejected(isolated_config: Path) -> None:
    _write_config(
        isolated_config,
        """
read_attempts: 3
read_attempts: 4
""",
    )

    with pytest.raises(ConfigValidationError):
        load_settings()
