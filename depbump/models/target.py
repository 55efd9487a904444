"""
Target policy model for depbump.

A target policy decides which published version a dependency should move
to. It is either one of the fixed modes below or a user callback that
picks a fixed mode per dependency; :func:`resolve_target` collapses both
into a :class:`TargetPolicy` so the resolver never has to care which one
it was given.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from depbump.constants import LATEST_TAG
from depbump.models.specifier import Comparator


class TargetMode(str, Enum):
    """Fixed version-selection modes."""

    LATEST = "latest"
    NEWEST = "newest"
    GREATEST = "greatest"
    MINOR = "minor"
    PATCH = "patch"
    SEMVER = "semver"
    DIST_TAG = "dist-tag"


#: Modes whose acceptance is a plain numeric comparison.
NUMERIC_MODES = frozenset(
    {
        TargetMode.LATEST,
        TargetMode.NEWEST,
        TargetMode.GREATEST,
        TargetMode.MINOR,
        TargetMode.PATCH,
        TargetMode.SEMVER,
    }
)


@dataclass(frozen=True)
class TargetPolicy:
    """A fixed target mode, plus the tag name for ``dist-tag`` targets."""

    mode: TargetMode
    tag: Optional[str] = None

    def __post_init__(self) -> None:
        if self.mode is TargetMode.DIST_TAG and not self.tag:
            raise ValueError("dist-tag target requires a tag name")
        if self.mode is not TargetMode.DIST_TAG and self.tag is not None:
            raise ValueError(f"target {self.mode.value!r} does not take a tag")

    @classmethod
    def dist_tag(cls, tag: str) -> "TargetPolicy":
        """Target the version published under *tag*.

        ``latest`` is the registry default tag and maps to the ``latest``
        mode, which also falls back when that version is deprecated.
        """
        tag = tag.lstrip("@")
        if tag == LATEST_TAG:
            return cls(TargetMode.LATEST)
        return cls(TargetMode.DIST_TAG, tag)

    @classmethod
    def parse(cls, value: Union[str, TargetMode, "TargetPolicy"]) -> "TargetPolicy":
        """Build a policy from a mode name, ``@tag`` string or policy.

        Raises:
            ValueError: *value* names no known mode.
        """
        if isinstance(value, TargetPolicy):
            return value
        if isinstance(value, TargetMode):
            return cls(value)
        if not isinstance(value, str):
            raise ValueError(f"invalid target: {value!r}")

        text = value.strip()
        if text.startswith("@"):
            if len(text) == 1:
                raise ValueError("empty dist-tag target")
            return cls.dist_tag(text[1:])

        try:
            mode = TargetMode(text.lower())
        except ValueError:
            valid = ", ".join(m.value for m in TargetMode if m is not TargetMode.DIST_TAG)
            raise ValueError(
                f"invalid target {value!r}; expected one of {valid} or @tag"
            ) from None
        return cls(mode)

    @property
    def is_numeric(self) -> bool:
        return self.mode in NUMERIC_MODES

    def __str__(self) -> str:
        if self.mode is TargetMode.DIST_TAG:
            return f"@{self.tag}"
        return self.mode.value


#: User callback: ``(name, comparators) -> mode`` where the mode may be a
#: name (``"minor"``), an ``@tag`` string or a :class:`TargetPolicy`.
TargetFunction = Callable[[str, Sequence[Comparator]], Union[str, TargetMode, TargetPolicy]]

#: Anything accepted wherever a target is configured.
Target = Union[str, TargetMode, TargetPolicy, TargetFunction]


def resolve_target(
    target: Target,
    name: str,
    comparators: Sequence[Comparator],
) -> TargetPolicy:
    """Reduce *target* to a fixed policy for one dependency.

    Raises:
        ValueError: The target (or the callback's answer) is not a mode.
    """
    if isinstance(target, (TargetPolicy, TargetMode, str)):
        return TargetPolicy.parse(target)
    if callable(target):
        return TargetPolicy.parse(target(name, list(comparators)))
    raise ValueError(f"invalid target: {target!r}")
