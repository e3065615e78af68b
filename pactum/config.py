"""
Config system - layered engine configuration.

Merge order (later overrides earlier):
1. ``EngineConfig`` defaults
2. YAML files
3. ``.env`` file
4. ``PACTUM_*`` environment variables (``__`` separates nested keys)
5. Manual overrides
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from glob import glob
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .faults import ConfigFault, ConfigInvalidFault

logger = logging.getLogger("pactum.config")


@dataclass
class OpenAPISettings:
    """Document-level settings for ``ContractBuilder``."""
    title: str = "API"
    version: str = "1.0.0"
    description: str = ""
    servers: List[Dict[str, str]] = field(default_factory=list)
    security_schemes: Dict[str, Any] = field(default_factory=dict)
    # Names of security schemes required by every operation
    security: List[str] = field(default_factory=list)
    # Tag name -> description
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class EngineConfig:
    """
    Engine configuration.

    Attributes:
        codecs: Built-in codec names (``json``, ``xml``, ``yaml``, ``msgpack``);
            the first is the default codec
        max_body_size: Request body limit in bytes
        max_upload_size: Per-file multipart upload limit in bytes
        max_field_count: Maximum number of form fields
        openapi: Contract document settings
    """
    codecs: List[str] = field(default_factory=lambda: ["json", "xml"])
    max_body_size: int = 10_485_760
    max_upload_size: int = 33_554_432
    max_field_count: int = 1000
    openapi: OpenAPISettings = field(default_factory=OpenAPISettings)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        """Build a config from merged data; unknown keys are ignored."""
        data = dict(data)
        openapi_data = data.pop("openapi", None) or {}
        if not isinstance(openapi_data, Mapping):
            raise ConfigInvalidFault("openapi", "expected a mapping")

        kwargs = _known(cls, data)
        if "codecs" in kwargs:
            codecs = kwargs["codecs"]
            if isinstance(codecs, str):
                codecs = [name.strip() for name in codecs.split(",") if name.strip()]
            if not isinstance(codecs, list) or not codecs:
                raise ConfigInvalidFault("codecs", "expected a non-empty list of codec names")
            kwargs["codecs"] = [str(name).lower() for name in codecs]
        for key in ("max_body_size", "max_upload_size", "max_field_count"):
            if key in kwargs:
                value = kwargs[key]
                if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                    raise ConfigInvalidFault(key, f"expected a positive integer, got {value!r}")

        openapi_kwargs = _known(OpenAPISettings, openapi_data)
        for key in ("title", "version", "description"):
            if key in openapi_kwargs:
                openapi_kwargs[key] = str(openapi_kwargs[key])
        for key, kind in (("servers", list), ("security_schemes", dict), ("security", list), ("tags", dict)):
            if key in openapi_kwargs and not isinstance(openapi_kwargs[key], kind):
                raise ConfigInvalidFault(f"openapi.{key}", f"expected a {kind.__name__}")

        return cls(openapi=OpenAPISettings(**openapi_kwargs), **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def request_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``Request`` limits."""
        return {
            "max_body_size": self.max_body_size,
            "max_file_size": self.max_upload_size,
            "max_field_count": self.max_field_count,
        }


def _known(cls: type, data: Mapping[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        logger.debug("Ignoring unknown %s keys: %s", cls.__name__, ", ".join(sorted(unknown)))
    return {key: value for key, value in data.items() if key in names}


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Example::

        loader = ConfigLoader.load(paths=["pactum.yaml"], env_file=".env")
        config = loader.to_config()
    """

    def __init__(self, env_prefix: str = "PACTUM_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "PACTUM_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration with proper merge strategy.

        Args:
            paths: YAML config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
            environ: Environment mapping (defaults to ``os.environ``)
        """
        loader = cls(env_prefix=env_prefix)
        loader.config_data = EngineConfig().to_dict()

        for pattern in paths or ():
            matches = sorted(glob(pattern))
            if not matches:
                logger.debug("No config files match %s", pattern)
            for path_str in matches:
                loader._load_yaml_file(Path(path_str))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env(os.environ if environ is None else environ)

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigFault(
                code="CONFIG_PARSE",
                message=f"Invalid YAML in {path}: {exc}",
                metadata={"path": str(path)},
            ) from exc
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigFault(
                code="CONFIG_PARSE",
                message=f"Config file {path} must contain a mapping",
                metadata={"path": str(path)},
            )
        logger.debug("Loaded config file %s", path)
        self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        if not Path(path).exists():
            logger.debug("Env file %s not found", path)
            return
        for key, value in dotenv_values(path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self, environ: Mapping[str, str]):
        """Load config from environment variables."""
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert PACTUM_OPENAPI__TITLE to nested dict."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: Mapping):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, Mapping):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def to_config(self) -> EngineConfig:
        return EngineConfig.from_dict(self.config_data)


def load_config(
    paths: Optional[List[str]] = None,
    *,
    env_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """Shortcut for ``ConfigLoader.load(...).to_config()``."""
    return ConfigLoader.load(
        paths=paths,
        env_file=env_file,
        overrides=overrides,
        environ=environ,
    ).to_config()
