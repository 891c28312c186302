"""Settings loading and validation for YAML-based nfcbridge configuration."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from nfcbridge.core.errors import ConfigLoadError, ConfigValidationError
from nfcbridge.core.model import WatchSettings

CONFIG_ENV_VAR = "NFCBRIDGE_CONFIG"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedSettings:
    settings: WatchSettings
    source: Path | None


def load_schema_validator(name: str) -> Any:
    schema_text = resources.files("nfcbridge.schemas").joinpath(name).read_text(encoding="utf-8")
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "nfcbridge/config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read settings file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Settings file {path} must contain a mapping at root")
    return loaded


def _build_settings(doc: dict[str, Any], source: Path) -> WatchSettings:
    validator = load_schema_validator("config.schema.json")
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    known = {f.name: f.type for f in fields(WatchSettings)}
    values: dict[str, Any] = {}
    for key, value in doc.items():
        values[key] = int(value) if known[key] == "int" else float(value)
    return WatchSettings(**values)


def _resolve_path(explicit: Path | None) -> tuple[Path | None, bool]:
    if explicit is not None:
        return explicit, True
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path), True
    candidate = default_config_path()
    if candidate.is_file():
        return candidate, False
    return None, False


def load_settings(path: Path | None = None) -> LoadedSettings:
    """Load watch settings, falling back to built-in defaults when no file is found.

    An explicitly requested file (argument or ``NFCBRIDGE_CONFIG``) must exist.
    """
    resolved, required = _resolve_path(path)
    if resolved is None:
        return LoadedSettings(settings=WatchSettings(), source=None)
    if required and not resolved.is_file():
        raise ConfigLoadError(f"Settings file {resolved} does not exist")

    settings = _build_settings(_read_yaml(resolved), resolved)
    LOGGER.debug("Loaded settings from %s: %s", resolved, settings)
    return LoadedSettings(settings=settings, source=resolved)
