"""Configuration file loader for depbump.

Handles discovery, loading, parsing, and validation of configuration files.
Supports two formats:

- ``depbump.toml`` — settings under ``[depbump]`` table
- ``pyproject.toml`` — settings under ``[tool.depbump]`` table

Discovery order:

1. Explicit path from ``--config`` or ``DEPBUMP_CONFIG``
2. ``depbump.toml`` in current directory
3. ``pyproject.toml`` with ``[tool.depbump]`` section

Configuration precedence: defaults < config file < CLI args.

Typical usage::

    config = load_config()  # Auto-discover
    config = load_config(Path("custom.toml"))  # Explicit path

Example (``depbump.toml``)::

    [depbump]
    target = "minor"
    dep = ["prod", "dev"]
    reject = ["typescript", "@types/*"]
    concurrency = 4
"""

from __future__ import annotations

import tomli as tomllib
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from depbump.exceptions import ConfigError
from depbump.utils.logger import get_logger
from depbump.models.target import TargetPolicy
from depbump.constants import (
    DEFAULT_CACHE_FILE,
    DEFAULT_CACHE_TTL,
    DEFAULT_CONCURRENCY,
    DEFAULT_PACKAGE_MANAGER,
    DEFAULT_REGISTRY,
    DEFAULT_SECTIONS,
    DEFAULT_TARGET,
    DEFAULT_TIMEOUT,
    DEPENDENCY_SECTIONS,
    LOCK_FILES,
)

logger = get_logger("config")

FilterSetting = Union[str, List[str], None]


@dataclass
class DepBumpConfig:
    """Parsed and validated depbump configuration.

    All fields have defaults, so empty config files are valid.

    Attributes:
        target: Target mode name or ``@tag``.
        pre: Prerelease preference; ``None`` keeps the per-target default.
        deprecated: Include deprecated versions.
        minimal: Skip upgrades already admitted by the declared range.
        dep: Dependency sections to check.
        concurrency: Packages resolved at once.
        timeout: Seconds allowed per registry fetch.
        cache: Persist registry responses between runs.
        cache_ttl: Seconds a cached response stays valid.
        cache_file: Cache file location.
        registry: Registry base URL.
        package_manager: ``npm``, ``yarn`` or ``pnpm``.
        filter: Only include matching package names.
        reject: Exclude matching package names.
        filter_version: Only include matching declared specifiers.
        reject_version: Exclude matching declared specifiers.
        source_path: Path to loaded config file, or ``None`` if using defaults.
    """

    target: str = DEFAULT_TARGET
    pre: Optional[bool] = None
    deprecated: bool = False
    minimal: bool = False
    dep: Tuple[str, ...] = DEFAULT_SECTIONS
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT
    cache: bool = False
    cache_ttl: int = DEFAULT_CACHE_TTL
    cache_file: str = DEFAULT_CACHE_FILE
    registry: str = DEFAULT_REGISTRY
    package_manager: str = DEFAULT_PACKAGE_MANAGER
    filter: FilterSetting = None
    reject: FilterSetting = None
    filter_version: FilterSetting = None
    reject_version: FilterSetting = None

    # Metadata (not a user-facing option)
    source_path: Optional[Path] = field(default=None, repr=False)

    def to_log_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary for debug logging."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "source_path"}


def discover_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Find the configuration file to load.

    Args:
        explicit_path: Explicit config path. If provided, must exist.

    Returns:
        Resolved path to config file, or ``None`` if not found.

    Raises:
        ConfigError: Explicit path provided but does not exist.
    """
    if explicit_path is not None:
        resolved = explicit_path.resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        logger.debug("Using explicit config: %s", resolved)
        return resolved

    cwd = Path.cwd()

    depbump_toml = cwd / "depbump.toml"
    if depbump_toml.is_file():
        logger.debug("Found depbump.toml: %s", depbump_toml)
        return depbump_toml

    pyproject_toml = cwd / "pyproject.toml"
    if pyproject_toml.is_file() and _pyproject_has_depbump_section(pyproject_toml):
        logger.debug("Found [tool.depbump] in pyproject.toml: %s", pyproject_toml)
        return pyproject_toml

    logger.debug("No configuration file found")
    return None


def _pyproject_has_depbump_section(path: Path) -> bool:
    """Check if pyproject.toml contains a ``[tool.depbump]`` section.

    A pyproject.toml that cannot be parsed is treated as having none; it
    belongs to another tool and must not break discovery.
    """
    try:
        raw = _read_toml(path)
    except ConfigError:
        return False
    tool = raw.get("tool", {})
    return isinstance(tool, dict) and "depbump" in tool


def load_config(config_path: Optional[Path] = None) -> DepBumpConfig:
    """Load and validate depbump configuration.

    Args:
        config_path: Explicit path to config file. If ``None``, uses
            auto-discovery (see :func:`discover_config_file`).

    Returns:
        Validated :class:`DepBumpConfig` with values from file or defaults.

    Raises:
        ConfigError: File cannot be parsed, has unknown keys, or invalid values.
    """
    resolved = discover_config_file(config_path)

    if resolved is None:
        logger.debug("No config file found, using defaults")
        return DepBumpConfig()

    logger.info("Loading configuration from %s", resolved)
    raw = _read_toml(resolved)

    if resolved.name == "pyproject.toml":
        section = raw.get("tool", {}).get("depbump", {})
    else:
        section = raw.get("depbump", {})

    if not section:
        logger.debug("Config file found but no depbump section, using defaults")
        return DepBumpConfig(source_path=resolved)

    config = _parse_section(section, config_path=str(resolved))
    config.source_path = resolved

    logger.debug("Loaded configuration: %s", config.to_log_dict())
    return config


def _read_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        ConfigError: File cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in {path.name}: {exc}",
            config_path=str(path),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}",
            config_path=str(path),
        ) from exc


# ---------------------------------------------------------------------------
# Option validators: each returns the normalized value or raises ValueError
# ---------------------------------------------------------------------------


def _bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"must be a boolean, got {type(value).__name__}")
    return value


def _str(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"must be a non-empty string, got {value!r}")
    return value


def _positive_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"must be a positive integer, got {value!r}")
    return value


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"must be a non-negative integer, got {value!r}")
    return value


def _positive_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"must be a positive number, got {value!r}")
    return float(value)


def _target(value: Any) -> str:
    TargetPolicy.parse(_str(value))
    return value


def _sections(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [part for part in value.replace(",", " ").split() if part]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError("must be a list of section names")
    unknown = [v for v in value if v not in DEPENDENCY_SECTIONS]
    if unknown:
        raise ValueError(
            f"unknown section(s) {', '.join(unknown)}; expected {', '.join(DEPENDENCY_SECTIONS)}"
        )
    return tuple(value)


def _package_manager(value: Any) -> str:
    if value not in LOCK_FILES:
        raise ValueError(f"must be one of {', '.join(LOCK_FILES)}, got {value!r}")
    return value


def _filter(value: Any) -> FilterSetting:
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValueError("must be a string or a list of strings")


_VALIDATORS: Dict[str, Callable[[Any], Any]] = {
    "target": _target,
    "pre": _bool,
    "deprecated": _bool,
    "minimal": _bool,
    "dep": _sections,
    "concurrency": _positive_int,
    "timeout": _positive_number,
    "cache": _bool,
    "cache_ttl": _non_negative_int,
    "cache_file": _str,
    "registry": _str,
    "package_manager": _package_manager,
    "filter": _filter,
    "reject": _filter,
    "filter_version": _filter,
    "reject_version": _filter,
}


def _parse_section(
    section: Dict[str, Any],
    *,
    config_path: str,
) -> DepBumpConfig:
    """Parse and validate the ``[depbump]`` or ``[tool.depbump]`` table.

    Raises:
        ConfigError: Unknown keys or invalid values.
    """
    unknown = set(section) - set(_VALIDATORS)
    if unknown:
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            config_path=config_path,
        )

    config = DepBumpConfig()
    for option, raw_value in section.items():
        try:
            value = _VALIDATORS[option](raw_value)
        except ValueError as exc:
            raise ConfigError(
                f"{option} {exc}",
                config_path=config_path,
                option=option,
            ) from exc
        setattr(config, option, value)

    return config
