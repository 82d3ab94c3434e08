from __future__ import annotations

from pathlib import Path

import pytest

from bluehandle.core.config import Config, config_path, load_config
from bluehandle.core.errors import ConfigError


def _write_config(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_missing_file_uses_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("BLUEHANDLE_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))

    assert config_path() == tmp_path / "cfg" / "bluehandle" / "config.yaml"
    assert load_config() == Config()


def test_load_from_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("BLUEHANDLE_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    _write_config(
        tmp_path / "cfg" / "bluehandle" / "config.yaml",
        """
bus: session
call_timeout_s: 2.5
adapter: hci1
log_level: debug
""",
    )

    config = load_config()

    assert config.bus == "session"
    assert config.service == "org.bluez"
    assert config.call_timeout_s == 2.5
    assert config.adapter == "hci1"
    assert config.log_level == "DEBUG"


def test_env_override_and_null_timeout(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = _write_config(tmp_path / "custom.yaml", "call_timeout_s: null\n")
    monkeypatch.setenv("BLUEHANDLE_CONFIG", str(path))

    assert load_config().call_timeout_s is None


def test_empty_file_uses_defaults(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "empty.yaml", "")

    assert load_config(path) == Config()


def test_duplicate_keys_rejected(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "dup.yaml", "bus: system\nbus: session\n")

    with pytest.raises(ConfigError, match="Duplicate key 'bus'"):
        load_config(path)


def test_schema_violation_rejected(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "bad.yaml", "bus: usb\n")

    with pytest.raises(ConfigError, match="Schema validation failed"):
        load_config(path)


def test_unknown_key_rejected(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "extra.yaml", "timeout: 3\n")

    with pytest.raises(ConfigError):
        load_config(path)


def test_non_mapping_rejected(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "list.yaml", "- system\n")

    with pytest.raises(ConfigError, match="must contain a mapping"):
        load_config(path)
