"""
Version comparison utilities for depbump.

This module classifies the change between a declared specifier and its
replacement using semver ordering.
"""

from __future__ import annotations

import re
from typing import Optional

from semantic_version import Version

_LEADING_VERSION = re.compile(r"(\d+)(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?(?:-([0-9A-Za-z.-]+))?")


def _extract_version(value: str) -> Optional[Version]:
    """Pull the first version out of a specifier (``^1.2`` → ``1.2.0``)."""
    match = _LEADING_VERSION.search(value)
    if not match:
        return None

    major, minor, patch, prerelease = match.groups()
    parts = [major, minor, patch]
    numbers = [p if p is not None and p.isdigit() else "0" for p in parts]
    text = ".".join(numbers)
    if prerelease:
        text += f"-{prerelease}"
    try:
        return Version(text)
    except ValueError:
        return None


def get_update_type(
    current: Optional[str],
    target: Optional[str],
) -> str:
    """Determine the semantic update type between two specifiers.

    Args:
        current: Declared specifier, or ``None`` if there was none.
        target: Replacement specifier.

    Returns:
        One of:
            - ``"new"``       : No current specifier exists
            - ``"same"``      : Both name the same version
            - ``"downgrade"`` : Target is lower than current
            - ``"major"``     : Major version change
            - ``"minor"``     : Minor version change
            - ``"patch"``     : Patch-level change
            - ``"update"``    : Prerelease/metadata-only change
            - ``"unknown"``   : Not comparable

    Examples:
        >>> get_update_type("^1.0.0", "^2.0.0")
        'major'
        >>> get_update_type("~1.2.0", "~1.2.3")
        'patch'
    """
    if current is None and target is None:
        return "unknown"

    if current is None:
        return "new"

    if target is None:
        return "unknown"

    current_version = _extract_version(current)
    target_version = _extract_version(target)
    if current_version is None or target_version is None:
        return "unknown"

    if target_version == current_version:
        return "same"

    if target_version < current_version:
        return "downgrade"

    if target_version.major != current_version.major:
        return "major"

    if target_version.minor != current_version.minor:
        return "minor"

    if target_version.patch != current_version.patch:
        return "patch"

    return "update"
