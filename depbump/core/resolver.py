"""
Target resolution for depbump.

:class:`TargetResolver` picks the version a dependency should move to
under a target policy and decides whether the move is acceptable. It
performs no I/O: the published versions arrive as a
:class:`~depbump.models.version_set.VersionSet` and the result is an
immutable :class:`~depbump.models.decision.UpgradeDecision`.

Candidate selection per policy:

============  ========================================================
latest        version at the ``latest`` dist-tag; falls back to
              ``greatest`` selection when that version is deprecated
              (or a prerelease that is explicitly disallowed)
newest        greatest published version, prereleases included unless
              explicitly disallowed
greatest      greatest valid version
minor         greatest version sharing the current major
patch         greatest version sharing the current major.minor
semver        greatest version satisfying the declared range
dist-tag(T)   version at tag T, no fallback
============  ========================================================

Acceptance: numeric policies never move below the current version.
Dist-tag targets accept any switch within the same release triple, since
prerelease identifiers of different tags (``beta.0`` vs ``task-42.0``)
carry no meaningful order, and otherwise only move to a greater triple.
"""

from __future__ import annotations

from typing import Any, Optional

from semantic_version import Version

from depbump.utils.logger import get_logger
from depbump.exceptions import SpecifierError
from depbump.models.version_set import VersionSet
from depbump.models.specifier import ParsedSpecifier
from depbump.core.range_comparator import RangeComparator
from depbump.models.decision import DecisionReason, UpgradeDecision
from depbump.models.target import Target, TargetMode, TargetPolicy, resolve_target
from depbump.constants import LATEST_TAG

logger = get_logger("resolver")


def _release(version: Version) -> tuple:
    return (version.major, version.minor, version.patch)


def _precedence(version: Version) -> Version:
    """Drop build metadata, which never takes part in ordering."""
    return version.truncate("prerelease")


class TargetResolver:
    """Select and vet upgrade candidates.

    Args:
        include_deprecated: Consider versions the registry marks
            deprecated.
        minimal: Leave a dependency alone when its declared range already
            admits the candidate.
        comparator: Range parser/formatter; a private one is created when
            omitted.
    """

    def __init__(
        self,
        include_deprecated: bool = False,
        minimal: bool = False,
        comparator: Optional[RangeComparator] = None,
    ) -> None:
        self.include_deprecated = include_deprecated
        self.minimal = minimal
        self.comparator = comparator or RangeComparator()

    # ------------------------------------------------------------------
    # Candidate selection
    # ------------------------------------------------------------------

    def resolve(
        self,
        parsed: ParsedSpecifier,
        version_set: VersionSet,
        policy: TargetPolicy,
        allow_prerelease: Optional[bool] = None,
    ) -> Optional[str]:
        """Return the candidate version for *policy*, or ``None``.

        Args:
            parsed: The dependency's current specifier.
            version_set: Published versions of the package.
            policy: Fixed target policy.
            allow_prerelease: ``True`` lets ``greatest``, ``minor`` and
                ``patch`` select prereleases; otherwise they only follow a
                prerelease current version. ``newest`` and ``latest``
                surface prereleases unless this is explicitly ``False``.
        """
        current = self.comparator.current_version(parsed, version_set)
        current_is_prerelease = bool(current is not None and current.prerelease) or any(
            c.is_prerelease for c in parsed.comparators
        )

        prerelease_ok = bool(allow_prerelease) or current_is_prerelease
        surface_prerelease = allow_prerelease is not False

        mode = policy.mode

        if mode is TargetMode.DIST_TAG:
            return self._at_tag(version_set, policy.tag)

        if mode is TargetMode.LATEST:
            tagged = self._at_tag(version_set, LATEST_TAG)
            if tagged is not None and (surface_prerelease or not Version(tagged).prerelease):
                return tagged
            logger.debug(
                "%s: latest tag missing, deprecated or a disallowed prerelease; using greatest version",
                version_set.name,
            )
            return self._greatest(version_set, prerelease_ok and surface_prerelease)

        if mode is TargetMode.NEWEST:
            return self._greatest(version_set, surface_prerelease)

        if mode is TargetMode.GREATEST:
            return self._greatest(version_set, prerelease_ok)

        if mode is TargetMode.SEMVER:
            best = self.comparator.max_satisfying(
                parsed,
                version_set.eligible_versions(include_deprecated=self.include_deprecated),
            )
            return str(best) if best is not None else None

        if current is None:
            return None

        if mode is TargetMode.MINOR:
            return self._greatest(
                version_set,
                prerelease_ok,
                lambda v: v.major == current.major,
            )

        if mode is TargetMode.PATCH:
            return self._greatest(
                version_set,
                prerelease_ok,
                lambda v: (v.major, v.minor) == (current.major, current.minor),
            )

        raise ValueError(f"Unhandled target mode: {mode}")

    def _greatest(self, version_set: VersionSet, prerelease_ok: bool, predicate=None) -> Optional[str]:
        return version_set.max_version(
            include_prerelease=prerelease_ok,
            include_deprecated=self.include_deprecated,
            predicate=predicate,
        )

    def _at_tag(self, version_set: VersionSet, tag: str) -> Optional[str]:
        tagged = version_set.version_at_tag(tag)
        if tagged is None:
            return None
        if not self.include_deprecated and version_set.is_deprecated(tagged):
            return None
        return tagged

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    @staticmethod
    def is_same(current: Version, candidate: Version) -> bool:
        """Equality on (major, minor, patch, prerelease)."""
        return _precedence(current) == _precedence(candidate)

    def accepts(self, policy: TargetPolicy, current: Version, candidate: Version) -> bool:
        """Return True if moving from *current* to *candidate* is an upgrade."""
        if self.is_same(current, candidate):
            return False

        if policy.mode is TargetMode.DIST_TAG:
            if _release(candidate) == _release(current):
                return True
            return _release(candidate) > _release(current)

        return _precedence(candidate) > _precedence(current)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        name: str,
        specifier: Any,
        version_set: VersionSet,
        target: Target,
        allow_prerelease: Optional[bool] = None,
        section: Optional[str] = None,
    ) -> UpgradeDecision:
        """Resolve one dependency into an :class:`UpgradeDecision`."""
        try:
            parsed = self.comparator.parse(specifier)
        except SpecifierError as exc:
            logger.debug("%s: leaving %r unchanged: %s", name, specifier, exc)
            return UpgradeDecision.unchanged(
                name, specifier, DecisionReason.UNSUPPORTED, section=section
            )

        try:
            policy = resolve_target(target, name, parsed.comparators)
        except ValueError as exc:
            logger.warning("%s: %s", name, exc)
            return UpgradeDecision.unchanged(
                name, specifier, DecisionReason.INVALID_TARGET, section=section
            )

        candidate = self.resolve(parsed, version_set, policy, allow_prerelease)
        current = self.comparator.current_version(parsed, version_set)
        if candidate is None or current is None:
            return UpgradeDecision.unchanged(
                name, specifier, DecisionReason.NO_CANDIDATE, section=section
            )

        candidate_version = Version(candidate)
        if not self.accepts(policy, current, candidate_version):
            reason = (
                DecisionReason.UP_TO_DATE
                if self.is_same(current, candidate_version)
                else DecisionReason.DOWNGRADE
            )
            logger.debug("%s: %s -> %s not accepted (%s)", name, specifier, candidate, reason.value)
            return UpgradeDecision.unchanged(name, specifier, reason, section=section)

        if self.minimal and self.comparator.satisfies(parsed, candidate_version):
            return UpgradeDecision.unchanged(
                name, specifier, DecisionReason.SATISFIED, section=section
            )

        new_specifier = self.comparator.format(parsed, candidate)
        if new_specifier == specifier:
            return UpgradeDecision.unchanged(
                name, specifier, DecisionReason.UP_TO_DATE, section=section
            )

        logger.debug("%s: %s -> %s (%s)", name, specifier, new_specifier, policy)
        return UpgradeDecision.upgrade(name, specifier, new_specifier, section=section)
