"""
AquilaMail Configuration — layered config loading and the ``mail_options`` section.

Sources are merged with precedence (later overrides earlier):

1. Config files (JSON or YAML)
2. A ``.env`` file (``AQ_MAIL_*`` keys only)
3. Environment variables (``AQ_MAIL_*``)
4. Manual overrides

Nested keys use a double underscore in env vars:
``AQ_MAIL_MAIL_OPTIONS__MAIL_SERVICES__DEFAULT__TRANSPORT=smtp``.
"""

from __future__ import annotations

import copy
import importlib
import json
import os
from dataclasses import dataclass, field
from glob import glob
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .faults import MailConfigFault

DEFAULT_ENV_PREFIX = "AQ_MAIL_"


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge *override* into a copy of *base*.

    Mappings merge key by key (override wins on scalars), lists are
    concatenated, everything else is replaced.
    """
    result: Dict[str, Any] = copy.copy(dict(base))
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = merge_config(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            result[key] = current + value
        else:
            result[key] = value
    return result


def import_string(path: str) -> Any:
    """
    Import an object from ``"package.module:attr"`` or ``"package.module.attr"``.

    Raises:
        MailConfigFault: If the module or attribute cannot be found.
    """
    if ":" in path:
        module_name, _, attr = path.partition(":")
    else:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise MailConfigFault(f"Invalid import path {path!r}", config_key=path)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise MailConfigFault(f"Cannot import module {module_name!r}: {e}", config_key=path) from e
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise MailConfigFault(
            f"Module {module_name!r} has no attribute {attr!r}", config_key=path,
        ) from e


class ConfigLoader:
    """
    Loads and merges mail configuration from multiple sources.

    Usage:
        loader = ConfigLoader.load(
            paths=["config/mail.yaml"],
            env_file=".env",
            overrides={"mail_options": {"mail_services": {"default": {"transport": "console"}}}},
        )
        options = MailOptions.from_config(loader.to_dict())
    """

    def __init__(self, env_prefix: str = DEFAULT_ENV_PREFIX):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from every source, in precedence order.

        Args:
            paths: Config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to a .env file
            overrides: Manual overrides (highest precedence)
            environ: Environment mapping (defaults to ``os.environ``)
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env(os.environ if environ is None else environ)

        if overrides:
            loader.config_data = merge_config(loader.config_data, overrides)

        return loader

    # ── Sources ─────────────────────────────────────────────────────

    def _load_from_files(self, pattern: str) -> None:
        matches = sorted(glob(pattern))
        if not matches and not any(ch in pattern for ch in "*?["):
            raise MailConfigFault(f"Config file not found: {pattern}", config_key=pattern)
        for path_str in matches:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise MailConfigFault(
                    f"Unsupported config file type: {path.suffix or path.name}",
                    config_key=str(path),
                )

    def _load_json_file(self, path: Path) -> None:
        with open(path, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise MailConfigFault(f"Invalid JSON in {path}: {e}", config_key=str(path)) from e
        self._merge_file_data(path, data)

    def _load_yaml_file(self, path: Path) -> None:
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise MailConfigFault(f"Invalid YAML in {path}: {e}", config_key=str(path)) from e
        if data:
            self._merge_file_data(path, data)

    def _merge_file_data(self, path: Path, data: Any) -> None:
        if not isinstance(data, Mapping):
            raise MailConfigFault(
                f"Top level of {path} must be a mapping", config_key=str(path),
            )
        self.config_data = merge_config(self.config_data, data)

    def _load_env_file(self, path: str) -> None:
        if not Path(path).exists():
            return
        for key, value in dotenv_values(path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self, environ: Mapping[str, str]) -> None:
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str) -> None:
        """Convert AQ_MAIL_MAIL_OPTIONS__EMAILS__WELCOME__SUBJECT to a nested dict."""
        parts = key[len(self.env_prefix):].lower().split("__")
        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = self._parse_value(value)

    @staticmethod
    def _parse_value(value: str) -> Any:
        """Parse a string value to the appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
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

    # ── Access ──────────────────────────────────────────────────────

    def get(self, path: str, default: Any = None) -> Any:
        """Get a config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config_data)


@dataclass
class MailOptions:
    """
    The ``mail_options`` section of the application config.

    Attributes:
        emails: Named email presets consumed by ``EmailBuilder``.
        mail_services: Named service definitions consumed by ``MailServiceBuilder``.
        attachment_parsers: Current-style attachment parser config.
        renderer: Template renderer config (``template_map``, ``template_path_stack``...).
    """

    emails: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    mail_services: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    attachment_parsers: Dict[str, Any] = field(default_factory=dict)
    renderer: Dict[str, Any] = field(default_factory=dict)

    CONFIG_KEY = "mail_options"

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "MailOptions":
        section = (config or {}).get(cls.CONFIG_KEY) or {}
        if not isinstance(section, Mapping):
            raise MailConfigFault(
                f"{cls.CONFIG_KEY!r} must be a mapping", config_key=cls.CONFIG_KEY,
            )
        values: Dict[str, Any] = {}
        for key in ("emails", "mail_services", "attachment_parsers", "renderer"):
            value = section.get(key) or {}
            if not isinstance(value, Mapping):
                raise MailConfigFault(
                    f"{cls.CONFIG_KEY}.{key} must be a mapping, got {type(value).__name__}",
                    config_key=f"{cls.CONFIG_KEY}.{key}",
                )
            values[key] = dict(value)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emails": self.emails,
            "mail_services": self.mail_services,
            "attachment_parsers": self.attachment_parsers,
            "renderer": self.renderer,
        }
