"""Upgrade orchestration for depbump.

:class:`UpgradeEngine` runs every declared dependency through the
pipeline::

    FilterChain -> ResolutionCache (registry fetch on miss) -> TargetResolver

Fetches run concurrently under a semaphore and a per-fetch timeout. A
package that cannot be fetched degrades to "no change" and is reported as
a :class:`~depbump.models.decision.Diagnostic`; it never aborts the batch.

Typical usage::

    engine = UpgradeEngine(registry, cache, options=UpgradeOptions(target="minor"))
    result = await engine.run(manifest.dependencies())
    for name, spec in result.upgrades.items():
        print(name, spec)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from depbump.core.filters import FilterChain
from depbump.utils.logger import get_logger
from depbump.core.resolver import TargetResolver
from depbump.models.manifest import Dependency
from depbump.core.cache import CacheKey, ResolutionCache
from depbump.models.target import Target
from depbump.models.version_set import VersionSet
from depbump.models.decision import DecisionReason, Diagnostic, UpgradeDecision
from depbump.constants import DEFAULT_CONCURRENCY, DEFAULT_TARGET, DEFAULT_TIMEOUT

logger = get_logger("engine")


class Registry(Protocol):
    """What the engine needs from a registry client."""

    @property
    def identity(self) -> str: ...

    async def fetch_version_set(self, name: str) -> VersionSet: ...


@dataclass
class UpgradeOptions:
    """Resolution settings shared by every dependency in a run.

    Attributes:
        target: Target mode, ``@tag`` or callback.
        allow_prerelease: ``None`` applies the per-mode default.
        include_deprecated: Consider deprecated versions.
        minimal: Skip upgrades the declared range already admits.
        concurrency: Maximum packages resolved at once.
        timeout: Seconds allowed per package fetch; ``None`` disables.
        filters: Name/version filters.
    """

    target: Target = DEFAULT_TARGET
    allow_prerelease: Optional[bool] = None
    include_deprecated: bool = False
    minimal: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: Optional[float] = DEFAULT_TIMEOUT
    filters: FilterChain = field(default_factory=FilterChain)

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass
class UpgradeResult:
    """Outcome of one engine run.

    Attributes:
        upgrades: name → new specifier, in declaration order. A name
            upgraded in several sections maps to its first accepted
            specifier; rewrite the manifest from :attr:`accepted`, which
            keeps the section of each decision.
        decisions: One decision per declared dependency, in declaration
            order (filtered ones included).
        diagnostics: Non-fatal per-package problems.
    """

    upgrades: Dict[str, str] = field(default_factory=dict)
    decisions: List[UpgradeDecision] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def accepted(self) -> List[UpgradeDecision]:
        return [d for d in self.decisions if d.accepted]

    def __bool__(self) -> bool:
        return bool(self.upgrades)


class UpgradeEngine:
    """Resolve a manifest's dependencies concurrently.

    Args:
        registry: Registry collaborator.
        cache: Shared resolution cache; a private in-memory one is used
            when omitted.
        resolver: Target resolver; built from *options* when omitted.
        options: Run settings.
    """

    def __init__(
        self,
        registry: Registry,
        cache: Optional[ResolutionCache] = None,
        resolver: Optional[TargetResolver] = None,
        options: Optional[UpgradeOptions] = None,
    ) -> None:
        self.registry = registry
        self.options = options or UpgradeOptions()
        self.cache = cache if cache is not None else ResolutionCache()
        self.resolver = resolver or TargetResolver(
            include_deprecated=self.options.include_deprecated,
            minimal=self.options.minimal,
        )

    async def run(self, dependencies: Sequence[Dependency]) -> UpgradeResult:
        """Resolve *dependencies* and collect the accepted upgrades."""
        options = self.options
        dependencies = list(dependencies)
        semaphore = asyncio.Semaphore(options.concurrency)

        slots: List[Optional[UpgradeDecision]] = []
        pending: List[int] = []
        tasks = []

        for dep in dependencies:
            reason = options.filters.rejection_reason(dep)
            if reason is not None:
                logger.debug("Skipping %s: %s", dep.name, reason)
                slots.append(
                    UpgradeDecision.unchanged(
                        dep.name, dep.specifier, DecisionReason.FILTERED, section=dep.section
                    )
                )
                continue
            pending.append(len(slots))
            slots.append(None)
            tasks.append(self._resolve_one(dep, semaphore))

        logger.info("Resolving %d of %d dependencies", len(tasks), len(slots))
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            await self.cache.cancel_pending()

        result = UpgradeResult()
        resolved: List[UpgradeDecision] = []
        for index, outcome in zip(pending, results):
            dep = dependencies[index]
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                result.diagnostics.append(self._diagnostic(dep, outcome))
                decision = UpgradeDecision.unchanged(
                    dep.name, dep.specifier, DecisionReason.FETCH_FAILED, section=dep.section
                )
            else:
                if outcome.reason is DecisionReason.INVALID_TARGET:
                    result.diagnostics.append(
                        Diagnostic(dep.name, f"target callback gave no valid mode for {dep.specifier!r}")
                    )
                decision = outcome
            resolved.append(decision)

        fetched = iter(resolved)
        for slot in slots:
            decision = slot if slot is not None else next(fetched)
            result.decisions.append(decision)
            if decision.accepted and decision.name not in result.upgrades:
                result.upgrades[decision.name] = decision.target

        logger.info(
            "%d upgrade(s), %d diagnostic(s)",
            len(result.upgrades),
            len(result.diagnostics),
        )
        return result

    async def _resolve_one(
        self,
        dep: Dependency,
        semaphore: asyncio.Semaphore,
    ) -> UpgradeDecision:
        key = CacheKey(dep.name, self.registry.identity)

        async with semaphore:
            fetch = self.cache.get_or_fetch(key, lambda: self.registry.fetch_version_set(dep.name))
            if self.options.timeout is not None:
                version_set = await asyncio.wait_for(fetch, self.options.timeout)
            else:
                version_set = await fetch

        return self.resolver.decide(
            dep.name,
            dep.specifier,
            version_set,
            self.options.target,
            allow_prerelease=self.options.allow_prerelease,
            section=dep.section,
        )

    def _diagnostic(self, dep: Dependency, error: Exception) -> Diagnostic:
        if isinstance(error, asyncio.TimeoutError):
            message = f"timed out after {self.options.timeout}s"
        else:
            message = str(error) or error.__class__.__name__
        logger.warning("Could not resolve %s: %s", dep.name, message)
        return Diagnostic(dep.name, message, error)

