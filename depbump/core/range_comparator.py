"""Range parsing and formatting for npm-style version specifiers.

A declared specifier is split into :class:`~depbump.models.specifier.Comparator`
clauses. Resolution only ever looks at the *dominant* clause: the clause
with the greatest version among those that describe a version the project
may currently be using (every operator except ``<`` and ``<=``). Full
range intersection is out of scope.

Formatting goes the other way: given a chosen version, produce a
replacement specifier in the style the author wrote::

    ^1.2        + 2.4.1  ->  ^2.4
    1.x         + 2.4.1  ->  2.x
    >=1.0 <2.0  + 2.4.1  ->  >=2.4
    >1.0.0      + 2.4.1  ->  >=2.4.1
    1.0 - 2.0.0 + 3.1.0  ->  1.0 - 3.1.0
    next        + 5.0.0  ->  5.0.0
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import List, Optional, Sequence

from semantic_version import NpmSpec, Version

from depbump.exceptions import SpecifierError
from depbump.models.version_set import VersionSet
from depbump.models.specifier import (
    HYPHEN_OPERATOR,
    Comparator,
    ParsedSpecifier,
)

_CLAUSE = re.compile(
    r"""
    ^(?P<op><=|>=|<|>|=|\^|~|)
    (?P<v>v?)
    (?P<major>\d+|[xX*])
    (?:\.(?P<minor>\d+|[xX*]))?
    (?:\.(?P<patch>\d+|[xX*]))?
    (?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?
    (?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$
    """,
    re.VERBOSE,
)

_HYPHEN = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")

_OPERATOR_GAP = re.compile(r"(<=|>=|<|>|=|\^|~)\s+")

_DIST_TAG = re.compile(r"^[A-Za-z][A-Za-z0-9._-]*$")

_WILDCARDS = frozenset({"*", "x", "X"})


def _parse_clause(token: str, operator: Optional[str] = None) -> Optional[Comparator]:
    """Parse one clause; ``None`` for a wildcard-only clause (``*``, ``>=x``).

    Raises:
        SpecifierError: *token* is not a comparator.
    """
    match = _CLAUSE.match(token)
    if not match:
        raise SpecifierError(f"Not a version range: {token!r}", specifier=token)

    major = match.group("major")
    if major in _WILDCARDS:
        return None

    precision = 1
    wildcard: Optional[str] = None
    wildcard_parts = 0
    numbers: List[Optional[int]] = []
    for part in (match.group("minor"), match.group("patch")):
        if part is None:
            numbers.append(None)
        elif part in _WILDCARDS:
            numbers.append(None)
            wildcard = wildcard or part
            wildcard_parts += 1
        else:
            if wildcard is not None:
                # 1.x.3 names nothing sensible
                raise SpecifierError(f"Not a version range: {token!r}", specifier=token)
            numbers.append(int(part))
            precision += 1

    comparator = Comparator(
        operator=match.group("op") if operator is None else operator,
        major=int(major),
        minor=numbers[0],
        patch=numbers[1],
        prerelease=match.group("pre"),
        build=match.group("build"),
        precision=precision,
        wildcard=wildcard,
        wildcard_parts=wildcard_parts,
        raw=token,
    )
    try:
        comparator.version
    except ValueError as exc:
        raise SpecifierError(f"Not a version range: {token!r}", specifier=token) from exc
    return comparator


def _parse_alternative(text: str) -> List[Comparator]:
    hyphen = _HYPHEN.match(text)
    if hyphen:
        lower_text, upper_text = hyphen.groups()
        lower = _parse_clause(lower_text, operator=">=")
        upper = _parse_clause(upper_text, operator=HYPHEN_OPERATOR)
        return [c for c in (lower, upper) if c is not None]

    clauses: List[Comparator] = []
    for token in _OPERATOR_GAP.sub(r"\1", text).split():
        clause = _parse_clause(token)
        if clause is not None:
            clauses.append(clause)
    return clauses


def parse_specifier(raw: object) -> ParsedSpecifier:
    """Decompose a declared specifier into comparator clauses.

    Raises:
        SpecifierError: *raw* is not a string, is not a semver range, or
            is a range with nothing to upgrade from (``*``, ``<2.0.0``).
    """
    if not isinstance(raw, str):
        raise SpecifierError(f"Specifier is not a string: {raw!r}")

    text = raw.strip()
    if not text or text in _WILDCARDS:
        raise SpecifierError("Wildcard range has no current version", specifier=raw)

    alternatives = [alt.strip() for alt in text.split("||")]
    comparators: List[Comparator] = []
    try:
        for alternative in alternatives:
            comparators.extend(_parse_alternative(alternative))
    except SpecifierError:
        if len(alternatives) == 1 and _DIST_TAG.match(text):
            return ParsedSpecifier(raw=raw, dist_tag=text)
        raise

    if not any(c.describes_current for c in comparators):
        raise SpecifierError("Range has no lower bound to upgrade from", specifier=raw)

    return ParsedSpecifier(
        raw=raw,
        comparators=tuple(comparators),
        is_or_range=len(alternatives) > 1,
    )


def dominant_comparator(parsed: ParsedSpecifier) -> Optional[Comparator]:
    """Return the clause with the greatest version that is not an upper bound."""
    dominant: Optional[Comparator] = None
    for comparator in parsed.comparators:
        if not comparator.describes_current:
            continue
        if dominant is None or comparator.version > dominant.version:
            dominant = comparator
    return dominant


def current_version(
    parsed: ParsedSpecifier,
    version_set: Optional[VersionSet] = None,
) -> Optional[Version]:
    """Return the version the specifier currently points at.

    A dist-tag reference is looked up in *version_set*; without one (or
    when the tag is missing) the current version is unknown.
    """
    if parsed.is_dist_tag:
        if version_set is None:
            return None
        tagged = version_set.version_at_tag(parsed.dist_tag)
        return Version(tagged) if tagged else None

    dominant = dominant_comparator(parsed)
    return dominant.version if dominant is not None else None


def _render(comparator: Comparator, version: Version, operator: Optional[str] = None) -> str:
    op = comparator.operator if operator is None else operator
    prefix = "v" if comparator.raw.lstrip("<>=^~").startswith("v") else ""

    if version.prerelease:
        body = "%d.%d.%d-%s" % (
            version.major,
            version.minor,
            version.patch,
            ".".join(version.prerelease),
        )
    else:
        parts = [str(version.major), str(version.minor), str(version.patch)]
        shown = parts[: comparator.precision]
        if comparator.wildcard:
            shown.extend([comparator.wildcard] * comparator.wildcard_parts)
        body = ".".join(shown)

    return f"{op}{prefix}{body}"


def format_specifier(parsed: ParsedSpecifier, version: str) -> str:
    """Render *version* in the style of *parsed*.

    Args:
        parsed: The original specifier.
        version: The chosen replacement version (valid semver).

    Returns:
        The replacement specifier text.
    """
    target = Version(version)

    if parsed.is_dist_tag:
        return str(target)

    if parsed.is_hyphen_range and not parsed.is_or_range:
        lower, upper = parsed.comparators[0], parsed.comparators[-1]
        if lower.operator != HYPHEN_OPERATOR and upper.operator == HYPHEN_OPERATOR:
            return f"{lower.raw} - {_render(upper, target, operator='')}"

    dominant = dominant_comparator(parsed)
    if dominant is None:
        raise SpecifierError("Range has no lower bound to upgrade from", specifier=parsed.raw)

    operator: Optional[str] = None
    if dominant.operator == HYPHEN_OPERATOR:
        operator = ""
    elif dominant.operator == ">":
        # the new range must admit the version it was resolved to
        operator = ">="
    return _render(dominant, target, operator=operator)


def max_satisfying(
    parsed: ParsedSpecifier,
    versions: Sequence[Version],
) -> Optional[Version]:
    """Return the greatest of *versions* that satisfies the declared range.

    npm's prerelease rule applies: a prerelease only satisfies a range
    that itself names a prerelease of the same release triple.
    """
    if parsed.is_dist_tag:
        return None
    try:
        spec = NpmSpec(parsed.raw.strip())
    except ValueError:
        return None
    return spec.select(versions)


def satisfies(parsed: ParsedSpecifier, version: Version) -> bool:
    """Return True if *version* is inside the declared range."""
    if parsed.is_dist_tag:
        return False
    try:
        return NpmSpec(parsed.raw.strip()).match(version)
    except ValueError:
        return False


class RangeComparator:
    """Memoizing front end for the functions in this module.

    Manifests routinely repeat the same specifier (``^1.0.0``) across many
    dependencies; parsing each distinct string once keeps resolution of
    large manifests cheap. Parse failures are not memoized.
    """

    def __init__(self, maxsize: int = 1024) -> None:
        self._parse = lru_cache(maxsize=maxsize)(parse_specifier)

    def parse(self, raw: object) -> ParsedSpecifier:
        if not isinstance(raw, str):
            return parse_specifier(raw)
        return self._parse(raw)

    dominant = staticmethod(dominant_comparator)
    current_version = staticmethod(current_version)
    format = staticmethod(format_specifier)
    max_satisfying = staticmethod(max_satisfying)
    satisfies = staticmethod(satisfies)
