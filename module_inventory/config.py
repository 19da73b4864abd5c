"""
Configuration for the kernel module manager.

Settings are resolved in layers: built-in defaults, an optional JSON file,
then KMOD_MANAGER_* environment variables. Command-line flags are applied
on top by the CLI.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "KMOD_MANAGER_"

DEFAULT_MODULE_SUFFIXES = ['.ko', '.ko.zst', '.ko.xz', '.ko.gz']

RESIDENCY_MATCH_MODES = ('token', 'substring')
RESIDENCY_SOURCES = ('lsmod', 'proc')
METADATA_SOURCES = ('modinfo', 'elf')


@dataclass
class ManagerConfig:
    """Settings shared by the inventory components."""
    modules_root: str = "/lib/modules"
    kernel_release: Optional[str] = None          # None = running kernel
    module_suffixes: List[str] = field(default_factory=lambda: list(DEFAULT_MODULE_SUFFIXES))
    command_timeout: float = 30.0                 # Seconds per external command
    privileged_prefix: Optional[List[str]] = None  # None = sudo -n unless root
    force_unload: bool = True
    residency_match: str = "token"
    residency_source: str = "lsmod"
    proc_modules_path: str = "/proc/modules"
    metadata_source: str = "modinfo"

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check field values.

        Raises:
            ConfigError: If a value is out of range or of the wrong kind
        """
        if self.residency_match not in RESIDENCY_MATCH_MODES:
            raise ConfigError(f"residency_match must be one of {RESIDENCY_MATCH_MODES}, "
                              f"got '{self.residency_match}'")
        if self.residency_source not in RESIDENCY_SOURCES:
            raise ConfigError(f"residency_source must be one of {RESIDENCY_SOURCES}, "
                              f"got '{self.residency_source}'")
        if self.metadata_source not in METADATA_SOURCES:
            raise ConfigError(f"metadata_source must be one of {METADATA_SOURCES}, "
                              f"got '{self.metadata_source}'")
        if not isinstance(self.command_timeout, (int, float)) or self.command_timeout <= 0:
            raise ConfigError(f"command_timeout must be a positive number, got {self.command_timeout!r}")
        if not self.module_suffixes:
            raise ConfigError("module_suffixes must not be empty")
        if self.privileged_prefix is not None and not isinstance(self.privileged_prefix, list):
            raise ConfigError("privileged_prefix must be a list of command words")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ManagerConfig":
        """Create from dictionary.

        Raises:
            ConfigError: If the mapping contains unknown keys or invalid values
        """
        if not isinstance(data, Mapping):
            raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        try:
            return cls(**dict(data))
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(cls, path: str) -> "ManagerConfig":
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Configuration file not found: {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
        logger.debug("Loaded configuration from %s", path)
        return cls.from_dict(data)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "ManagerConfig":
        """
        Return a copy with KMOD_MANAGER_* environment overrides applied.

        List values are whitespace separated (e.g. KMOD_MANAGER_PRIVILEGED_PREFIX="doas");
        booleans accept 1/0, true/false, yes/no.
        """
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}

        for f in fields(self):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            overrides[f.name] = _coerce(f.name, getattr(self, f.name), raw)

        if overrides:
            logger.debug("Environment overrides: %s", ", ".join(sorted(overrides)))
        return self.merged(overrides)

    def merged(self, overrides: Mapping[str, Any]) -> "ManagerConfig":
        """Return a copy with the given non-None values replaced."""
        values = {key: value for key, value in overrides.items() if value is not None}
        if not values:
            return self
        try:
            return replace(self, **values)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def resolve_privileged_prefix(self) -> List[str]:
        """Command prefix used for load/unload; empty when already root."""
        if self.privileged_prefix is not None:
            return list(self.privileged_prefix)
        if os.geteuid() == 0:
            return []
        return ['sudo', '-n']


def load_config(path: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None) -> ManagerConfig:
    """Build the effective configuration from an optional file and the environment."""
    config = ManagerConfig.from_file(path) if path else ManagerConfig()
    return config.with_env(environ)


def _coerce(name: str, current: Any, raw: str) -> Any:
    if name in ('module_suffixes', 'privileged_prefix'):
        return raw.split()
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in ('1', 'true', 'yes', 'on'):
            return True
        if lowered in ('0', 'false', 'no', 'off'):
            return False
        raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be a boolean, got '{raw}'")
    if name == 'command_timeout':
        try:
            return float(raw)
        except ValueError as e:
            raise ConfigError(f"{ENV_PREFIX}{name.upper()} must be a number, got '{raw}'") from e
    if name == 'kernel_release' and not raw.strip():
        return None
    return raw
