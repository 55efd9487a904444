"""Unit tests for depbump.core.engine module."""

from __future__ import annotations

import json
import asyncio
from typing import Dict, List, Optional

import pytest

from depbump.core.cache import ResolutionCache
from depbump.core.engine import UpgradeEngine, UpgradeOptions, UpgradeResult
from depbump.core.filters import FilterChain
from depbump.exceptions import RegistryError
from depbump.models.decision import DecisionReason
from depbump.models.manifest import Dependency, Manifest
from depbump.models.version_set import VersionSet


class FakeRegistry:
    """In-memory registry that records every fetch."""

    identity = "https://registry.test"

    def __init__(
        self,
        packages: Dict[str, VersionSet],
        delay: float = 0.0,
        slow: Optional[str] = None,
    ) -> None:
        self.packages = packages
        self.delay = delay
        self.slow = slow
        self.fetches: List[str] = []
        self.active = 0
        self.peak = 0

    async def fetch_version_set(self, name: str) -> VersionSet:
        self.fetches.append(name)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(10 if name == self.slow else self.delay)
            if name not in self.packages:
                raise RegistryError("Package not found", package_name=name, status_code=404)
            return self.packages[name]
        finally:
            self.active -= 1


def vs(name: str, *versions: str, latest: Optional[str] = None) -> VersionSet:
    return VersionSet(name, versions, {"latest": latest or versions[-1]})


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry(
        {
            "react": vs("react", "17.0.2", "18.2.0"),
            "lodash": vs("lodash", "4.17.20", "4.17.21"),
            "jest": vs("jest", "29.0.0", "29.7.0"),
            "left-pad": vs("left-pad", "1.3.0"),
        }
    )


@pytest.mark.unit
class TestUpgradeOptions:
    def test_defaults(self) -> None:
        options = UpgradeOptions()

        assert options.target == "latest"
        assert options.allow_prerelease is None
        assert options.concurrency == 8

    @pytest.mark.parametrize("kwargs", [{"concurrency": 0}, {"timeout": 0}, {"timeout": -1}])
    def test_validation(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            UpgradeOptions(**kwargs)


@pytest.mark.unit
class TestUpgradeEngine:
    """Tests for UpgradeEngine.run."""

    @pytest.mark.asyncio
    async def test_upgrades_in_declaration_order(self, registry: FakeRegistry) -> None:
        engine = UpgradeEngine(registry)
        deps = [
            Dependency("react", "^17.0.2"),
            Dependency("left-pad", "^1.3.0"),
            Dependency("lodash", "~4.17.20"),
        ]

        result = await engine.run(deps)

        assert list(result.upgrades.items()) == [("react", "^18.2.0"), ("lodash", "~4.17.21")]
        assert [d.name for d in result.decisions] == ["react", "left-pad", "lodash"]
        assert result.decisions[1].reason is DecisionReason.UP_TO_DATE
        assert result.diagnostics == []
        assert bool(result)

    @pytest.mark.asyncio
    async def test_filtered_dependencies_never_fetched(self, registry: FakeRegistry) -> None:
        options = UpgradeOptions(filters=FilterChain(reject="jest"))
        engine = UpgradeEngine(registry, options=options)
        deps = [
            Dependency("jest", "^29.0.0", "dev"),
            Dependency("local", "file:../local"),
            Dependency("//", ["comment"]),
            Dependency("react", "^17.0.2"),
        ]

        result = await engine.run(deps)

        assert registry.fetches == ["react"]
        assert list(result.upgrades) == ["react"]
        assert [d.reason for d in result.decisions[:3]] == [DecisionReason.FILTERED] * 3

    @pytest.mark.asyncio
    async def test_duplicate_names_fetch_once(self, registry: FakeRegistry) -> None:
        engine = UpgradeEngine(registry)
        deps = [
            Dependency("react", "^18.2.0", "prod"),
            Dependency("react", "^17.0.0", "dev"),
        ]

        result = await engine.run(deps)

        assert registry.fetches == ["react"]
        assert result.decisions[0].reason is DecisionReason.UP_TO_DATE
        assert result.decisions[1].target == "^18.2.0"
        assert result.upgrades == {"react": "^18.2.0"}

    @pytest.mark.asyncio
    async def test_first_accepted_decision_wins(self, registry: FakeRegistry) -> None:
        engine = UpgradeEngine(registry)
        deps = [
            Dependency("react", "^17.0.0", "prod"),
            Dependency("react", "~17.0.2", "dev"),
        ]

        result = await engine.run(deps)

        assert result.upgrades == {"react": "^18.2.0"}
        assert [d.section for d in result.accepted] == ["prod", "dev"]

    @pytest.mark.parametrize(
        "prod, dev, expected",
        [
            ("~18.2.0", "^17.0.0", {"dependencies": "~18.2.0", "devDependencies": "^18.2.0"}),
            ("^17.0.0", "~18.2.0", {"dependencies": "^18.2.0", "devDependencies": "~18.2.0"}),
        ],
    )
    @pytest.mark.asyncio
    async def test_duplicate_upgrade_rewrites_its_own_section(
        self, registry: FakeRegistry, prod: str, dev: str, expected: Dict[str, str]
    ) -> None:
        manifest = Manifest.parse(
            json.dumps({"dependencies": {"react": prod}, "devDependencies": {"react": dev}})
        )

        result = await UpgradeEngine(registry).run(manifest.dependencies())

        assert result.upgrades == {"react": "^18.2.0"}
        data = json.loads(manifest.with_upgrades(result.accepted))
        assert {section: data[section]["react"] for section in data} == expected

    @pytest.mark.asyncio
    async def test_fetch_failure_becomes_diagnostic(self, registry: FakeRegistry) -> None:
        engine = UpgradeEngine(registry)
        deps = [Dependency("missing-pkg", "^1.0.0"), Dependency("react", "^17.0.2")]

        result = await engine.run(deps)

        assert result.upgrades == {"react": "^18.2.0"}
        (diagnostic,) = result.diagnostics
        assert diagnostic.name == "missing-pkg"
        assert "Package not found" in diagnostic.message
        assert isinstance(diagnostic.error, RegistryError)
        assert result.decisions[0].reason is DecisionReason.FETCH_FAILED

    @pytest.mark.asyncio
    async def test_timeout_becomes_diagnostic(self) -> None:
        registry = FakeRegistry({"react": vs("react", "17.0.2", "18.2.0")}, slow="react")
        engine = UpgradeEngine(registry, options=UpgradeOptions(timeout=0.05))

        result = await engine.run([Dependency("react", "^17.0.2")])

        assert result.upgrades == {}
        assert result.diagnostics[0].message == "timed out after 0.05s"
        # the abandoned fetch is cancelled, not left running
        assert registry.active == 0

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        packages = {f"pkg-{i}": vs(f"pkg-{i}", "1.0.0", "1.1.0") for i in range(10)}
        registry = FakeRegistry(packages, delay=0.01)
        engine = UpgradeEngine(registry, options=UpgradeOptions(concurrency=3))

        result = await engine.run([Dependency(name, "^1.0.0") for name in packages])

        assert registry.peak <= 3
        assert len(result.upgrades) == 10

    @pytest.mark.asyncio
    async def test_invalid_target_callback_reported(self, registry: FakeRegistry) -> None:
        options = UpgradeOptions(target=lambda name, comparators: "nonsense")
        engine = UpgradeEngine(registry, options=options)

        result = await engine.run([Dependency("react", "^17.0.2")])

        assert result.upgrades == {}
        assert result.decisions[0].reason is DecisionReason.INVALID_TARGET
        assert result.diagnostics[0].name == "react"

    @pytest.mark.asyncio
    async def test_shared_cache_across_runs(self, registry: FakeRegistry) -> None:
        cache = ResolutionCache()
        deps = [Dependency("react", "^17.0.2")]

        await UpgradeEngine(registry, cache).run(deps)
        await UpgradeEngine(registry, cache).run(deps)

        assert registry.fetches == ["react"]

    @pytest.mark.asyncio
    async def test_empty_input(self, registry: FakeRegistry) -> None:
        result = await UpgradeEngine(registry).run([])

        assert result == UpgradeResult()
        assert not result
