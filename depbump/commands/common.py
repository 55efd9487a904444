"""Options and orchestration shared by the ``check`` and ``doctor`` commands.

Both commands resolve upgrades the same way; this module owns the Click
options for that, the merge of CLI flags over the loaded configuration,
and the async glue that wires :class:`HTTPClient`, :class:`NpmRegistry`,
:class:`ResolutionCache` and :class:`UpgradeEngine` together.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Callable, Optional, Sequence, TypeVar

import click

from depbump.config import DepBumpConfig
from depbump.core.filters import FilterChain
from depbump.core.registry import NpmRegistry
from depbump.models.manifest import Dependency
from depbump.models.decision import Diagnostic
from depbump.models.target import TargetPolicy
from depbump.core.cache import ResolutionCache
from depbump.core.engine import UpgradeEngine, UpgradeOptions, UpgradeResult
from depbump.utils import HTTPClient, JsonCacheStore, get_logger, print_warning
from depbump.constants import DEPENDENCY_SECTIONS

logger = get_logger("commands")

F = TypeVar("F", bound=Callable[..., Any])

#: CLI parameter name → config attribute, for flags that override config.
_OVERRIDES = {
    "target": "target",
    "pre": "pre",
    "deprecated": "deprecated",
    "minimal": "minimal",
    "dep": "dep",
    "concurrency": "concurrency",
    "timeout": "timeout",
    "cache": "cache",
    "cache_ttl": "cache_ttl",
    "cache_file": "cache_file",
    "registry": "registry",
    "filter_": "filter",
    "reject": "reject",
    "filter_version": "filter_version",
    "reject_version": "reject_version",
}


def resolution_options(func: F) -> F:
    """Attach the upgrade-resolution options to a Click command."""
    options = [
        click.option(
            "--target",
            "-t",
            default=None,
            help="latest, newest, greatest, minor, patch, semver or @tag.",
        ),
        click.option(
            "--pre/--no-pre",
            default=None,
            help="Include prerelease versions (default depends on --target).",
        ),
        click.option(
            "--deprecated/--no-deprecated",
            default=None,
            help="Include deprecated versions.",
        ),
        click.option(
            "--minimal/--no-minimal",
            default=None,
            help="Skip upgrades the declared range already allows.",
        ),
        click.option(
            "--filter",
            "-f",
            "filter_",
            multiple=True,
            help="Only check matching package names (glob, list or /regex/).",
        ),
        click.option(
            "--reject",
            "-x",
            multiple=True,
            help="Exclude matching package names (glob, list or /regex/).",
        ),
        click.option(
            "--filter-version",
            multiple=True,
            help="Only check dependencies whose declared range matches.",
        ),
        click.option(
            "--reject-version",
            multiple=True,
            help="Exclude dependencies whose declared range matches.",
        ),
        click.option(
            "--dep",
            default=None,
            help=f"Comma-separated sections to check ({', '.join(DEPENDENCY_SECTIONS)}).",
        ),
        click.option("--concurrency", type=click.IntRange(min=1), default=None),
        click.option(
            "--timeout",
            type=click.FloatRange(min=0, min_open=True),
            default=None,
            help="Seconds allowed per registry request.",
        ),
        click.option(
            "--cache/--no-cache",
            default=None,
            help="Reuse registry responses between runs.",
        ),
        click.option("--cache-ttl", type=click.IntRange(min=0), default=None),
        click.option("--cache-file", default=None),
        click.option("--registry", default=None, help="Registry base URL."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def merge_config(config: DepBumpConfig, **cli_values: Any) -> DepBumpConfig:
    """Return *config* with every CLI flag the user actually gave applied."""
    changes = {}
    for param, attr in _OVERRIDES.items():
        value = cli_values.get(param)
        if value is None or value == ():
            continue
        if attr == "dep":
            value = tuple(part for part in value.replace(",", " ").split() if part)
            unknown = [v for v in value if v not in DEPENDENCY_SECTIONS]
            if unknown:
                raise click.BadParameter(
                    f"unknown section(s): {', '.join(unknown)}", param_hint="--dep"
                )
        elif isinstance(value, tuple):
            value = list(value)
        changes[attr] = value
    return dataclasses.replace(config, **changes)


def build_upgrade_options(config: DepBumpConfig) -> UpgradeOptions:
    """Translate configuration into engine options.

    Raises:
        click.BadParameter: The target is not a known mode.
    """
    try:
        target = TargetPolicy.parse(config.target)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--target") from exc

    return UpgradeOptions(
        target=target,
        allow_prerelease=config.pre,
        include_deprecated=config.deprecated,
        minimal=config.minimal,
        concurrency=config.concurrency,
        timeout=config.timeout,
        filters=FilterChain(
            filter=config.filter,
            reject=config.reject,
            filter_version=config.filter_version,
            reject_version=config.reject_version,
        ),
    )


async def resolve_upgrades(
    config: DepBumpConfig,
    dependencies: Sequence[Dependency],
    *,
    http_client: Optional[HTTPClient] = None,
) -> UpgradeResult:
    """Resolve *dependencies* against the configured registry.

    The cache file, when enabled, is loaded first and flushed afterwards
    even if resolution fails part way.
    """
    options = build_upgrade_options(config)
    store = JsonCacheStore(config.cache_file) if config.cache else None
    cache = ResolutionCache(ttl=config.cache_ttl, store=store)
    cache.load()

    client = http_client or HTTPClient(
        timeout=config.timeout,
        max_concurrency=config.concurrency,
    )
    try:
        async with client:
            registry = NpmRegistry(client, config.registry)
            engine = UpgradeEngine(registry, cache, options=options)
            return await engine.run(dependencies)
    finally:
        cache.flush()


def report_diagnostics(diagnostics: Sequence[Diagnostic]) -> None:
    for diagnostic in diagnostics:
        print_warning(str(diagnostic))
