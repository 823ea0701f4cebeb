"""
Configuration Management Module for the txmerkle CLI

Settings come from four layers, later layers winning:

1. built-in defaults
2. a named profile (``--profile``)
3. one config file, given explicitly or found on the search path
4. ``TXMERKLE_<SECTION>_<KEY>`` environment variables

Only keys present in the defaults are read from the environment, and each
value is converted to the type of the default it overrides.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

# First existing file wins
CONFIG_SEARCH_PATHS = [
    Path.cwd() / '.txmerkle.yml',
    Path.cwd() / '.txmerkle.json',
    Path.home() / '.txmerkle' / 'config.yml',
    Path.home() / '.txmerkle' / 'config.json',
]

ENV_PREFIX = 'TXMERKLE_'

OUTPUT_FORMATS = ['table', 'json', 'yaml']

DEFAULT_CONFIG = {
    'cli': {
        'output_format': 'table',
        'verbose': 0,
    },
    'display': {
        'digest_chars': 16,
    },
}

PROFILES = {
    'quiet': {
        'cli': {'verbose': 0},
    },
    'debug': {
        'cli': {'verbose': 2},
        'display': {'digest_chars': 64},
    },
}


class ConfigurationError(Exception):
    """Raised when a configuration source cannot be read."""
    pass


class ConfigSource(NamedTuple):
    """One configuration layer and where it came from."""
    name: str
    values: Dict[str, Any]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# key path -> (check, error message template)
SETTING_CHECKS: Dict[str, Tuple[Callable[[Any], bool], str]] = {
    'cli.output_format': (
        lambda v: v in OUTPUT_FORMATS,
        "Invalid output format: {value}",
    ),
    'cli.verbose': (
        lambda v: _is_int(v) and v >= 0,
        "Verbosity must be a non-negative integer: {value}",
    ),
    'display.digest_chars': (
        lambda v: _is_int(v) and 1 <= v <= 64,
        "display.digest_chars must be between 1 and 64: {value}",
    ),
}


def merge_layers(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` updated recursively with ``override``; inputs are not modified."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = merge_layers(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def coerce_env_value(raw: str, default: Any) -> Any:
    """
    Convert an environment string to the type of ``default``.

    Values that do not convert are returned unchanged so validation can
    report them.
    """
    if isinstance(default, bool):
        return raw.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            return raw
    return raw


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Read one YAML or JSON config file.

    Raises:
        ConfigurationError: If the file has an unknown suffix, cannot be
            parsed, or does not hold a mapping
    """
    if path.suffix in ('.yml', '.yaml'):
        parse = yaml.safe_load
    elif path.suffix == '.json':
        parse = json.load
    else:
        raise ConfigurationError(f"Unknown config file format: {path}")

    try:
        with open(path, 'r') as f:
            data = parse(f)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to load config from {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


class ConfigurationManager:
    """Resolves CLI settings from defaults, profile, file and environment."""

    def __init__(self, config_file: Optional[str] = None, profile: Optional[str] = None,
                 search_paths: Optional[List[Path]] = None):
        """
        Args:
            config_file: Explicit configuration file path
            profile: Configuration profile to load (quiet, debug)
            search_paths: Files to try when no explicit file is given
        """
        self.logger = logger
        self.config_file = config_file
        self.profile = profile
        self.search_paths = CONFIG_SEARCH_PATHS if search_paths is None else search_paths
        self._resolved: Optional[Dict[str, Any]] = None
        self._sources: List[ConfigSource] = []

    def load(self) -> Dict[str, Any]:
        """
        Resolve all layers into one configuration mapping.

        The result is cached; later calls return the same mapping.

        Raises:
            ConfigurationError: For an unknown profile or an unreadable file
        """
        if self._resolved is None:
            self._sources = self._collect_sources()

            resolved: Dict[str, Any] = {}
            for source in self._sources:
                resolved = merge_layers(resolved, source.values)
            self._resolved = resolved

        return self._resolved

    def _collect_sources(self) -> List[ConfigSource]:
        sources = [ConfigSource("defaults", DEFAULT_CONFIG)]

        if self.profile:
            if self.profile not in PROFILES:
                raise ConfigurationError(f"Unknown profile: {self.profile}")
            sources.append(ConfigSource(f"profile:{self.profile}", PROFILES[self.profile]))

        config_path = self._find_config_file()
        if config_path is not None:
            sources.append(ConfigSource(f"file:{config_path}", read_config_file(config_path)))
            self.logger.debug(f"Loaded config from {config_path}")

        env_values = self._environment_overrides()
        if env_values:
            sources.append(ConfigSource("environment", env_values))

        return sources

    def _find_config_file(self) -> Optional[Path]:
        if self.config_file:
            path = Path(self.config_file)
            if not path.exists():
                raise ConfigurationError(f"Config file not found: {path}")
            return path

        return next((Path(p) for p in self.search_paths if Path(p).exists()), None)

    def _environment_overrides(self) -> Dict[str, Any]:
        """Read TXMERKLE_<SECTION>_<KEY> for every key that has a default."""
        overrides: Dict[str, Any] = {}

        for section, settings in DEFAULT_CONFIG.items():
            for key, default in settings.items():
                env_name = f"{ENV_PREFIX}{section}_{key}".upper()
                if env_name in os.environ:
                    overrides.setdefault(section, {})[key] = \
                        coerce_env_value(os.environ[env_name], default)

        return overrides

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'cli.output_format')
            default: Value returned when the path does not resolve
        """
        node: Any = self.load()
        for part in key_path.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def validate(self) -> List[str]:
        """Check every known setting; returns error messages, empty if valid."""
        errors = []
        for key_path, (check, message) in SETTING_CHECKS.items():
            value = self.get(key_path)
            if not check(value):
                errors.append(message.format(value=value))
        return errors

    def get_sources(self) -> List[str]:
        """Names of the layers that were applied, lowest precedence first."""
        self.load()
        return [source.name for source in self._sources]
