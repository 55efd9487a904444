"""
Centralized constants for depbump.

This module defines immutable configuration values used across depbump,
including registry settings, dependency sections, package-manager files,
cache defaults and logging formats. All values are intended to be treated
as read-only.
"""

from typing import Final, Mapping, Sequence, Tuple

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = "depbump/{version}"

# ---------------------------------------------------------------------------
# Registry endpoints
# ---------------------------------------------------------------------------

#: Default npm registry base URL.
DEFAULT_REGISTRY: Final[str] = "https://registry.npmjs.org"

#: Accept header asking the registry for full packuments (deprecation info
#: is stripped from the abbreviated "corgi" format).
PACKUMENT_ACCEPT: Final[str] = "application/json"

# ---------------------------------------------------------------------------
# HTTP configuration
# ---------------------------------------------------------------------------

#: Default network timeout in seconds.
DEFAULT_TIMEOUT: Final[int] = 30

#: Maximum number of retries for failed HTTP requests.
DEFAULT_MAX_RETRIES: Final[int] = 3

#: Default number of packages resolved concurrently.
DEFAULT_CONCURRENCY: Final[int] = 8

# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------

#: Default target policy.
DEFAULT_TARGET: Final[str] = "latest"

#: Dist-tag consulted by the ``latest`` policy.
LATEST_TAG: Final[str] = "latest"

# ---------------------------------------------------------------------------
# Manifest layout
# ---------------------------------------------------------------------------

#: Default manifest file name.
MANIFEST_FILE: Final[str] = "package.json"

#: Short section alias → package.json key.
DEPENDENCY_SECTIONS: Final[Mapping[str, str]] = {
    "prod": "dependencies",
    "dev": "devDependencies",
    "optional": "optionalDependencies",
    "peer": "peerDependencies",
    "bundle": "bundleDependencies",
}

#: Sections checked when none are requested explicitly.
DEFAULT_SECTIONS: Final[Tuple[str, ...]] = ("prod", "dev", "optional")

#: Specifier prefixes that never point at the registry.
NON_REGISTRY_PREFIXES: Final[Sequence[str]] = (
    "file:",
    "link:",
    "git:",
    "git+",
    "github:",
    "gitlab:",
    "bitbucket:",
    "gist:",
    "http:",
    "https:",
    "workspace:",
    "portal:",
    "patch:",
    "npm:",
)

#: Lifecycle script run by a full install but skipped by ``--no-save``.
PREPARE_SCRIPT: Final[str] = "prepare"

#: Default script used by doctor mode to verify upgrades.
TEST_SCRIPT: Final[str] = "test"

# ---------------------------------------------------------------------------
# Package managers
# ---------------------------------------------------------------------------

#: Supported package managers → lock file name.
LOCK_FILES: Final[Mapping[str, str]] = {
    "npm": "package-lock.json",
    "yarn": "yarn.lock",
    "pnpm": "pnpm-lock.yaml",
}

#: Default package manager.
DEFAULT_PACKAGE_MANAGER: Final[str] = "npm"

# ---------------------------------------------------------------------------
# Resolution cache
# ---------------------------------------------------------------------------

#: Default cache lifetime in seconds (10 minutes).
DEFAULT_CACHE_TTL: Final[int] = 600

#: Default cache file location (expanded at runtime).
DEFAULT_CACHE_FILE: Final[str] = "~/.depbump-cache.json"

#: On-disk cache format version.
CACHE_FORMAT_VERSION: Final[int] = 1

# ---------------------------------------------------------------------------
# Security constraints
# ---------------------------------------------------------------------------

#: Maximum allowed file size (in bytes) when reading manifests.
MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024  # 10 MB

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for verbose logging.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format (non-verbose).
LOG_DEFAULT_FORMAT: Final[str] = "%(levelname)s: %(message)s"

#: Verbose log format including timestamp and logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
