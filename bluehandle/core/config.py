"""YAML configuration for bluehandle, validated against a packaged schema."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from bluehandle.core.errors import ConfigError

LOGGER = logging.getLogger(__name__)

CONFIG_ENV = "BLUEHANDLE_CONFIG"


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class Config:
    bus: str = "system"
    service: str = "org.bluez"
    call_timeout_s: float | None = 25.0
    adapter: str | None = None
    log_level: str = "WARNING"


def _load_schema_validator() -> Any:
    schema_text = resources.files("bluehandle.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def config_path() -> Path:
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override)
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "bluehandle/config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at root")
    return loaded


def load_config(path: Path | None = None) -> Config:
    """Load the config file, falling back to defaults when it does not exist."""
    path = path or config_path()
    if not path.exists():
        LOGGER.debug("No config file at %s, using defaults", path)
        return Config()

    doc = _read_yaml(path)
    try:
        _load_schema_validator().validate(doc)
    except ValidationError as exc:
        where = ".".join(str(p) for p in exc.path)
        where = f" ({where})" if where else ""
        raise ConfigError(f"Schema validation failed for {path}{where}: {exc.message}") from exc

    defaults = Config()
    timeout = doc.get("call_timeout_s", defaults.call_timeout_s)
    return Config(
        bus=doc.get("bus", defaults.bus),
        service=doc.get("service", defaults.service),
        call_timeout_s=float(timeout) if timeout is not None else None,
        adapter=doc.get("adapter", defaults.adapter),
        log_level=str(doc.get("log_level", defaults.log_level)).upper(),
    )
