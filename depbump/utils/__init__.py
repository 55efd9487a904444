"""
Utility helpers for depbump.

This package provides reusable utilities used across depbump, including:

- Console output helpers (Rich-based)
- Logging configuration and retrieval
- Filesystem safety helpers and project snapshots
- Async HTTP client utilities
- Package-manager process wrappers
- Version comparison helpers

Only symbols listed in ``__all__`` are considered part of the public API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Logging utilities
# ---------------------------------------------------------------------------

from depbump.utils.logger import (
    disable_logging,
    get_logger,
    is_logging_configured,
    level_for_verbosity,
    setup_logging,
)

# ---------------------------------------------------------------------------
# Filesystem utilities
# ---------------------------------------------------------------------------

from depbump.utils.filesystem import (
    JsonCacheStore,
    ProjectFiles,
    create_backup,
    remove_file,
    safe_read_bytes,
    safe_read_file,
    safe_write_file,
)

# ---------------------------------------------------------------------------
# Console utilities
# ---------------------------------------------------------------------------

from depbump.utils.console import (
    colorize_update_type,
    get_raw_console,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
    reconfigure_console,
)

# ---------------------------------------------------------------------------
# HTTP and process utilities
# ---------------------------------------------------------------------------

from depbump.utils.http import HTTPClient
from depbump.utils.process import CommandResult, PackageManager, run_command

# ---------------------------------------------------------------------------
# Version utilities
# ---------------------------------------------------------------------------

from depbump.utils.version_utils import get_update_type

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    # Console
    "print_info",
    "print_error",
    "print_table",
    "print_success",
    "print_warning",
    "get_raw_console",
    "reconfigure_console",
    "colorize_update_type",
    # Logging
    "get_logger",
    "setup_logging",
    "disable_logging",
    "level_for_verbosity",
    "is_logging_configured",
    # Filesystem
    "safe_read_file",
    "safe_read_bytes",
    "safe_write_file",
    "create_backup",
    "remove_file",
    "ProjectFiles",
    "JsonCacheStore",
    # HTTP / process
    "HTTPClient",
    "CommandResult",
    "PackageManager",
    "run_command",
    # Version utilities
    "get_update_type",
]
