"""
Core functionality exports for depbump.

This module provides convenient access to the core subsystems of depbump.
Importing from here keeps user-facing imports clean and stable:

    from depbump.core import UpgradeEngine, DoctorSession
"""

from __future__ import annotations

from depbump.core.filters import FilterChain
from depbump.core.registry import NpmRegistry
from depbump.core.resolver import TargetResolver
from depbump.core.range_comparator import RangeComparator
from depbump.core.cache import CacheEntry, CacheKey, ResolutionCache
from depbump.core.engine import UpgradeEngine, UpgradeOptions, UpgradeResult
from depbump.core.doctor import DoctorReport, DoctorSession, DoctorState

__all__ = [
    "FilterChain",
    "NpmRegistry",
    "TargetResolver",
    "RangeComparator",
    "CacheEntry",
    "CacheKey",
    "ResolutionCache",
    "UpgradeEngine",
    "UpgradeOptions",
    "UpgradeResult",
    "DoctorReport",
    "DoctorSession",
    "DoctorState",
]
