"""
Unified data model exports for depbump.

This module re-exports all core data models to provide a stable and
convenient public API. Users can import models directly from
``depbump.models`` instead of individual submodules.

Example:
    >>> from depbump.models import VersionSet, TargetPolicy, UpgradeDecision
"""

from __future__ import annotations

from depbump.models.version_set import VersionSet, parse_semver
from depbump.models.manifest import Dependency, Manifest
from depbump.models.specifier import Comparator, ParsedSpecifier
from depbump.models.decision import DecisionReason, Diagnostic, UpgradeDecision
from depbump.models.target import Target, TargetMode, TargetPolicy, resolve_target

__all__ = [
    "VersionSet",
    "parse_semver",
    "Dependency",
    "Manifest",
    "Comparator",
    "ParsedSpecifier",
    "DecisionReason",
    "Diagnostic",
    "UpgradeDecision",
    "Target",
    "TargetMode",
    "TargetPolicy",
    "resolve_target",
]
