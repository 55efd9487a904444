"""
depbump — find and verify newer versions of npm dependencies.

depbump reads the dependency declarations of a ``package.json``, decides
which specifiers can move to a newer release under a target policy
(latest, newest, greatest, minor, patch, semver or a dist-tag), and can
optionally verify the upgrades against the project's own test suite,
keeping only the ones that do not break it ("doctor" mode).
"""

from __future__ import annotations

from depbump.__version__ import __version__

# ---------------------------------------------------------------------------
# Package Metadata
# ---------------------------------------------------------------------------

__author__ = "depbump Contributors"
__license__ = "Apache-2.0"
__description__ = "Find newer versions of npm dependencies and verify them."

__all__ = [
    "__version__",
]
