"""
Dependency filtering for depbump.

A :class:`FilterChain` decides, before any network call, whether a declared
dependency takes part in the run. Name filters match the package name and
version filters match the *declared* specifier. Each accepts the same
forms:

- a plain string, or a comma/space separated list of them; for names
  these are ``fnmatch`` globs (``@babel/*``), for versions literal
  specifiers (``^1.0.0``)
- a ``/regex/`` string
- a compiled :class:`re.Pattern`
- a callable ``(name, comparators) -> bool`` for names, or
  ``(specifier) -> bool`` for versions
- an iterable mixing any of the above

Exclusion always wins over inclusion. Dependencies that do not point at
the registry (comment entries, ``file:``/``link:``/git/URL specifiers,
``npm:`` aliases) are excluded regardless of any filter.
"""

from __future__ import annotations

import re
from fnmatch import fnmatchcase
from typing import Any, Callable, Iterable, List, Optional, Pattern, Union

from depbump.utils.logger import get_logger
from depbump.models.manifest import Dependency
from depbump.exceptions import SpecifierError
from depbump.constants import NON_REGISTRY_PREFIXES
from depbump.core.range_comparator import parse_specifier

logger = get_logger("filters")

FilterValue = Union[str, Pattern[str], Callable[..., bool], Iterable[Any]]

_Matcher = Callable[[Dependency], bool]

_SPLIT = re.compile(r"[,\s]+")

#: Rejection reasons.
NOT_A_STRING = "not-a-string"
NON_REGISTRY = "non-registry"
NAME_FILTERED = "name-filtered"
NAME_REJECTED = "name-rejected"
VERSION_FILTERED = "version-filtered"
VERSION_REJECTED = "version-rejected"


def is_registry_specifier(specifier: Any) -> bool:
    """Return True if *specifier* is a string that names registry versions."""
    if not isinstance(specifier, str):
        return False
    text = specifier.strip()
    lowered = text.lower()
    if any(lowered.startswith(prefix) for prefix in NON_REGISTRY_PREFIXES):
        return False
    # Local paths, GitHub shorthands (user/repo) and URLs
    if "/" in text or text in (".", ".."):
        return False
    return True


def _regex_literal(text: str) -> Optional[Pattern[str]]:
    if len(text) > 2 and text.startswith("/") and text.endswith("/"):
        return re.compile(text[1:-1])
    return None


def _name_matchers(value: FilterValue) -> List[_Matcher]:
    if isinstance(value, str):
        pattern = _regex_literal(value.strip())
        if pattern is not None:
            return [lambda dep, p=pattern: p.search(dep.name) is not None]
        globs = [g for g in _SPLIT.split(value) if g]
        return [lambda dep, g=glob: fnmatchcase(dep.name, g) for glob in globs]

    if isinstance(value, re.Pattern):
        return [lambda dep: value.search(dep.name) is not None]

    if callable(value):
        return [lambda dep: bool(value(dep.name, _comparators(dep.specifier)))]

    matchers: List[_Matcher] = []
    for item in value:
        matchers.extend(_name_matchers(item))
    return matchers


def _version_matchers(value: FilterValue) -> List[_Matcher]:
    if isinstance(value, str):
        pattern = _regex_literal(value.strip())
        if pattern is not None:
            return [lambda dep, p=pattern: p.search(dep.specifier) is not None]
        literals = frozenset(v for v in _SPLIT.split(value) if v)
        return [lambda dep: dep.specifier.strip() in literals]

    if isinstance(value, re.Pattern):
        return [lambda dep: value.search(dep.specifier) is not None]

    if callable(value):
        return [lambda dep: bool(value(dep.specifier))]

    matchers: List[_Matcher] = []
    for item in value:
        matchers.extend(_version_matchers(item))
    return matchers


def _comparators(specifier: str) -> list:
    try:
        return list(parse_specifier(specifier).comparators)
    except SpecifierError:
        return []


class FilterChain:
    """Name and version inclusion/exclusion predicates.

    Args:
        filter: Only include dependencies whose name matches.
        reject: Exclude dependencies whose name matches.
        filter_version: Only include dependencies whose declared
            specifier matches.
        reject_version: Exclude dependencies whose declared specifier
            matches.

    Example:
        >>> chain = FilterChain(filter="react*", reject="react-dom")
        >>> chain.accepts(Dependency("react", "^18.0.0"))
        True
        >>> chain.rejection_reason(Dependency("react-dom", "^18.0.0"))
        'name-rejected'
    """

    def __init__(
        self,
        filter: Optional[FilterValue] = None,
        reject: Optional[FilterValue] = None,
        filter_version: Optional[FilterValue] = None,
        reject_version: Optional[FilterValue] = None,
    ) -> None:
        self._include = _name_matchers(filter) if filter else None
        self._exclude = _name_matchers(reject) if reject is not None else []
        self._include_version = (
            _version_matchers(filter_version) if filter_version else None
        )
        self._exclude_version = (
            _version_matchers(reject_version) if reject_version is not None else []
        )

    def rejection_reason(self, dependency: Dependency) -> Optional[str]:
        """Return why *dependency* is excluded, or ``None`` if it passes."""
        if not dependency.is_string:
            return NOT_A_STRING
        if not is_registry_specifier(dependency.specifier):
            return NON_REGISTRY

        if any(match(dependency) for match in self._exclude):
            return NAME_REJECTED
        if self._include is not None and not any(match(dependency) for match in self._include):
            return NAME_FILTERED

        if any(match(dependency) for match in self._exclude_version):
            return VERSION_REJECTED
        if self._include_version is not None and not any(
            match(dependency) for match in self._include_version
        ):
            return VERSION_FILTERED

        return None

    def accepts(self, dependency: Dependency) -> bool:
        reason = self.rejection_reason(dependency)
        if reason is not None:
            logger.debug("Skipping %s (%s)", dependency.name, reason)
        return reason is None

    def apply(self, dependencies: Iterable[Dependency]) -> List[Dependency]:
        """Return the dependencies that pass, in their original order."""
        return [dep for dep in dependencies if self.accepts(dep)]
