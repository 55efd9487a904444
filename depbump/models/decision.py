"""
Upgrade decision data models for depbump.

:class:`UpgradeDecision` records what the resolver concluded for one
declared dependency; :class:`Diagnostic` records a non-fatal problem
(unreachable registry, unparseable target callback result) that forced a
"no change" outcome.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from depbump.utils.version_utils import get_update_type


class DecisionReason(str, Enum):
    """Why a dependency was or was not upgraded."""

    UPGRADE = "upgrade"
    UP_TO_DATE = "up-to-date"
    SATISFIED = "satisfied"
    NO_CANDIDATE = "no-candidate"
    DOWNGRADE = "downgrade"
    FILTERED = "filtered"
    UNSUPPORTED = "unsupported-specifier"
    INVALID_TARGET = "invalid-target"
    FETCH_FAILED = "fetch-failed"


@dataclass(frozen=True)
class UpgradeDecision:
    """Outcome of resolving one declared dependency.

    Attributes:
        name: Package name.
        current: Declared specifier (may be a non-string for comments).
        target: Replacement specifier when accepted.
        accepted: Whether the dependency should be rewritten.
        reason: Machine-readable reason.
        section: Manifest section the declaration came from.
    """

    name: str
    current: Any
    target: Optional[str]
    accepted: bool
    reason: DecisionReason
    section: Optional[str] = None

    @classmethod
    def upgrade(
        cls,
        name: str,
        current: str,
        target: str,
        *,
        section: Optional[str] = None,
    ) -> "UpgradeDecision":
        return cls(name, current, target, True, DecisionReason.UPGRADE, section)

    @classmethod
    def unchanged(
        cls,
        name: str,
        current: Any,
        reason: DecisionReason,
        *,
        section: Optional[str] = None,
    ) -> "UpgradeDecision":
        return cls(name, current, None, False, reason, section)

    @property
    def update_type(self) -> Optional[str]:
        if not self.accepted or not isinstance(self.current, str):
            return None
        return get_update_type(self.current, self.target)

    def to_json(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation."""
        entry: Dict[str, Any] = {
            "name": self.name,
            "current": self.current,
            "accepted": self.accepted,
            "reason": self.reason.value,
        }
        if self.section:
            entry["section"] = self.section
        if self.accepted:
            entry["target"] = self.target
            entry["update_type"] = self.update_type
        return entry

    def __str__(self) -> str:
        if self.accepted:
            return f"{self.name} {self.current} → {self.target}"
        return f"{self.name} {self.current} ({self.reason.value})"


@dataclass(frozen=True)
class Diagnostic:
    """A per-package problem that did not abort the run."""

    name: str
    message: str
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"{self.name}: {self.message}"
