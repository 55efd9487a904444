"""
Published-version data model for depbump.

A :class:`VersionSet` is the immutable snapshot of everything the
resolver needs to know about one package: the published release strings,
the dist-tag pointers and which releases the registry marks deprecated.
It is produced by the registry client (or restored from the cache file)
and shared read-only between every dependency that names the package.
"""

from __future__ import annotations

from types import MappingProxyType
from functools import cached_property
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from semantic_version import Version

#: Predicate applied to parsed versions by :meth:`VersionSet.max_version`.
VersionPredicate = Callable[[Version], bool]


def parse_semver(value: Any) -> Optional[Version]:
    """Parse *value* as a strict semver version, or return ``None``.

    Registry data routinely contains strings that are not valid semver
    (``0.4.0rc7``); those are ignored rather than treated as errors.
    """
    if not isinstance(value, str):
        return None
    try:
        return Version(value.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class VersionSet:
    """Immutable view of a package's published versions.

    Attributes:
        name: Package name as published.
        versions: Every published version string, in registry order.
        dist_tags: Dist-tag name → version string.
        deprecated: Versions flagged as deprecated by the registry.
    """

    name: str
    versions: Tuple[str, ...] = ()
    dist_tags: Mapping[str, str] = field(default_factory=dict)
    deprecated: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "versions", tuple(self.versions))
        object.__setattr__(self, "dist_tags", MappingProxyType(dict(self.dist_tags)))
        object.__setattr__(self, "deprecated", frozenset(self.deprecated))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @cached_property
    def parsed_versions(self) -> List[Tuple[str, Version]]:
        """Valid semver versions as ``(raw, Version)`` pairs, ascending."""
        parsed: List[Tuple[str, Version]] = []
        for raw in self.versions:
            version = parse_semver(raw)
            if version is not None:
                parsed.append((raw, version))
        parsed.sort(key=lambda item: item[1])
        return parsed

    def is_deprecated(self, version: str) -> bool:
        """Return True if the registry flags *version* as deprecated."""
        return version in self.deprecated

    def version_at_tag(self, tag: str) -> Optional[str]:
        """Return the version a dist-tag points at, if it is valid semver."""
        version = self.dist_tags.get(tag)
        if version is None or parse_semver(version) is None:
            return None
        return version

    def max_version(
        self,
        *,
        include_prerelease: bool = True,
        include_deprecated: bool = False,
        predicate: Optional[VersionPredicate] = None,
    ) -> Optional[str]:
        """Return the greatest version matching the given constraints.

        Args:
            include_prerelease: Consider versions with a prerelease tag.
            include_deprecated: Consider deprecated versions.
            predicate: Extra filter on the parsed version (e.g. same major).

        Returns:
            The raw version string, or ``None`` when nothing qualifies.
        """
        for raw, version in reversed(self.parsed_versions):
            if version.prerelease and not include_prerelease:
                continue
            if not include_deprecated and self.is_deprecated(raw):
                continue
            if predicate is not None and not predicate(version):
                continue
            return raw
        return None

    def eligible_versions(self, *, include_deprecated: bool = False) -> List[Version]:
        """Parsed versions, ascending, optionally without deprecated ones."""
        return [
            version
            for raw, version in self.parsed_versions
            if include_deprecated or not self.is_deprecated(raw)
        ]

    # ------------------------------------------------------------------
    # Construction & serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_packument(cls, name: str, packument: Mapping[str, Any]) -> "VersionSet":
        """Build a VersionSet from an npm registry packument.

        Only the ``versions`` and ``dist-tags`` members are read. A
        version is deprecated when its manifest carries a non-empty
        ``deprecated`` message.
        """
        raw_versions = packument.get("versions") or {}
        raw_tags = packument.get("dist-tags") or {}

        versions: List[str] = []
        deprecated = set()
        if isinstance(raw_versions, Mapping):
            for version, manifest in raw_versions.items():
                versions.append(version)
                if isinstance(manifest, Mapping) and manifest.get("deprecated"):
                    deprecated.add(version)

        dist_tags = {
            str(tag): str(version)
            for tag, version in (raw_tags.items() if isinstance(raw_tags, Mapping) else ())
            if isinstance(version, str)
        }

        return cls(
            name=str(packument.get("name") or name),
            versions=tuple(versions),
            dist_tags=dist_tags,
            deprecated=frozenset(deprecated),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "name": self.name,
            "versions": list(self.versions),
            "dist_tags": dict(self.dist_tags),
            "deprecated": sorted(self.deprecated),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VersionSet":
        """Inverse of :meth:`to_dict`."""
        return cls(
            name=str(data["name"]),
            versions=tuple(data.get("versions") or ()),
            dist_tags=dict(data.get("dist_tags") or {}),
            deprecated=frozenset(data.get("deprecated") or ()),
        )

    def __len__(self) -> int:
        return len(self.versions)
