"""
Specifier data models for depbump.

A dependency's declared range (``^2.1.0``, ``>=1.2 <2``, ``1.x``,
``next``) is decomposed into :class:`Comparator` clauses held by a
:class:`ParsedSpecifier`. Parsing and formatting live in
:mod:`depbump.core.range_comparator`; these classes only carry state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from semantic_version import Version

#: Operators whose clause bounds the range from above and therefore
#: says nothing about the version currently in use.
UPPER_BOUND_OPERATORS = frozenset({"<", "<="})

#: Operator assigned to the upper clause of a hyphen range (``1.0.0 - 2.0.0``).
HYPHEN_OPERATOR = "-"


@dataclass(frozen=True)
class Comparator:
    """One clause of a version range.

    ``minor`` and ``patch`` are ``None`` when the clause omits them or
    writes them as wildcards; ``precision`` records how many numeric parts
    were written and ``wildcard``/``wildcard_parts`` how the rest were
    spelled, so formatting can reproduce the same shape.

    Attributes:
        operator: ``""``, ``=``, ``^``, ``~``, ``>=``, ``>``, ``<``, ``<=``
            or ``-`` for the upper end of a hyphen range.
        major: Major version number.
        minor: Minor version number, if written.
        patch: Patch version number, if written.
        prerelease: Dot-separated prerelease identifiers, if any.
        build: Dot-separated build metadata, if any.
        precision: Number of numeric parts written (1-3).
        wildcard: Wildcard character used for omitted parts (``x``, ``*``).
        wildcard_parts: How many parts were written as wildcards.
        raw: The clause text as written.
    """

    operator: str
    major: int
    minor: Optional[int] = None
    patch: Optional[int] = None
    prerelease: Optional[str] = None
    build: Optional[str] = None
    precision: int = 3
    wildcard: Optional[str] = None
    wildcard_parts: int = 0
    raw: str = ""

    @property
    def release(self) -> Tuple[int, int, int]:
        """Release triple with omitted parts filled in as zero."""
        return (self.major, self.minor or 0, self.patch or 0)

    @property
    def version(self) -> Version:
        """The lowest concrete version this clause names."""
        text = "%d.%d.%d" % self.release
        if self.prerelease:
            text += f"-{self.prerelease}"
        return Version(text)

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def prerelease_id(self) -> Optional[str]:
        """First non-numeric prerelease identifier (``beta`` in ``beta.2``)."""
        if not self.prerelease:
            return None
        for part in self.prerelease.split("."):
            if not part.isdigit():
                return part
        return None

    @property
    def prerelease_number(self) -> Optional[int]:
        """Trailing numeric prerelease counter (``2`` in ``beta.2``)."""
        if not self.prerelease:
            return None
        last = self.prerelease.split(".")[-1]
        return int(last) if last.isdigit() else None

    @property
    def describes_current(self) -> bool:
        """True if the clause names a version the project may be using."""
        return self.operator not in UPPER_BOUND_OPERATORS

    @property
    def is_exact(self) -> bool:
        return self.operator in ("", "=") and self.precision == 3 and not self.wildcard


@dataclass(frozen=True)
class ParsedSpecifier:
    """A specifier decomposed into comparator clauses.

    Attributes:
        raw: The specifier as declared.
        comparators: Clauses in declaration order.
        is_or_range: Whether alternatives were joined with ``||``.
        dist_tag: Tag name when the specifier is a bare dist-tag reference.
    """

    raw: str
    comparators: Tuple[Comparator, ...] = ()
    is_or_range: bool = False
    dist_tag: Optional[str] = None

    @property
    def is_dist_tag(self) -> bool:
        return self.dist_tag is not None

    @property
    def is_compound(self) -> bool:
        return len(self.comparators) > 1

    @property
    def is_hyphen_range(self) -> bool:
        return any(c.operator == HYPHEN_OPERATOR for c in self.comparators)
