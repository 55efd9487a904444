"""Unit tests for depbump.core.doctor module.

The package manager is faked: it "installs" by writing the resolved
specifiers to the lock file, and its test script fails while the lock
holds any broken specifier. Manifest and lock files are real files in
tmp_path.
"""

from __future__ import annotations

import sys
import asyncio
import json
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from depbump.utils.filesystem import ProjectFiles
from depbump.core.doctor import DoctorSession, DoctorState
from depbump.models.manifest import Manifest
from depbump.models.decision import DecisionReason, UpgradeDecision
from depbump.exceptions import (
    BaselineError,
    DoctorError,
    PackageManagerError,
    InconsistentEnvironmentError,
)

LOCK = b'{"lockfileVersion": 3}\n'


class FakePackageManager:
    """Package manager whose installed state lives in the lock file."""

    def __init__(
        self,
        project: ProjectFiles,
        *,
        broken: Set[Tuple[str, str]] = frozenset(),
        saves: bool = False,
        fail_install_after: Optional[int] = None,
        interrupt_run: Optional[int] = None,
        interrupt: Optional[BaseException] = None,
    ) -> None:
        self.project = project
        self.broken = set(broken)
        self.saves_on_single_install = saves
        self.fail_install_after = fail_install_after
        self.interrupt_run = interrupt_run
        self.interrupt = interrupt
        self.run_count = 0
        self.cwd = project.directory
        self.timeout = None
        self.calls: List[str] = []
        self.install_count = 0

    @property
    def installed(self) -> Dict[str, str]:
        """What the lock file says is installed."""
        lock = self.project.read_lock()
        data = json.loads(lock) if lock else {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write_lock(self, installed: Dict[str, str]) -> None:
        self.project.lock_path.write_text(json.dumps(installed, sort_keys=True))

    def _fail(self, what: str) -> None:
        raise PackageManagerError(f"{what} failed", command=["fake", what], returncode=1)

    async def install(self) -> None:
        self.calls.append("install")
        self.install_count += 1
        if self.fail_install_after is not None and self.install_count > self.fail_install_after:
            self._fail("install")
        manifest = json.loads(self.project.read_manifest())
        installed = dict(manifest.get("dependencies", {}))
        installed.update(manifest.get("devDependencies", {}))
        self._write_lock(installed)

    async def install_single(self, name: str, spec: str) -> None:
        self.calls.append(f"install {name}@{spec}")
        self._write_lock({**self.installed, name: spec})
        if self.saves_on_single_install:
            manifest = json.loads(self.project.read_manifest())
            manifest["dependencies"][name] = spec
            self.project.write_manifest(json.dumps(manifest).encode())

    async def run_script(self, script: str, args=()) -> None:
        self.calls.append(f"run {script}")
        self.run_count += 1
        if self.interrupt is not None and self.run_count == self.interrupt_run:
            raise self.interrupt
        if script == "test" and any(item in self.broken for item in self.installed.items()):
            self._fail("test")


def write_project(tmp_path: Path, scripts: Optional[dict] = None, lock: bool = True) -> ProjectFiles:
    manifest = {
        "name": "app",
        "scripts": {"test": "jest"} if scripts is None else scripts,
        "dependencies": {"a": "^1.0.0", "b": "^1.0.0", "c": "~1.0.0"},
        "devDependencies": {"jest": "^29.0.0"},
    }
    (tmp_path / "package.json").write_text(json.dumps(manifest, indent=2) + "\n")
    if lock:
        (tmp_path / "package-lock.json").write_bytes(LOCK)
    return ProjectFiles(tmp_path)


def upgrades(mapping: Dict[str, str]):
    async def source(manifest: Manifest) -> List[UpgradeDecision]:
        declared = {dep.name: dep for dep in reversed(manifest.dependencies())}
        return [
            UpgradeDecision.upgrade(
                name, declared[name].specifier, spec, section=declared[name].section
            )
            for name, spec in mapping.items()
        ]

    return source


def declared(project: ProjectFiles) -> Dict[str, str]:
    return json.loads(project.read_manifest())["dependencies"]


ALL = {"a": "^2.0.0", "b": "^2.0.0", "c": "~1.1.0"}


# ============================================================================
# Happy paths
# ============================================================================


@pytest.mark.unit
class TestDoctorSuccess:
    @pytest.mark.asyncio
    async def test_all_upgrades_pass(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        pm = FakePackageManager(project)
        session = DoctorSession(project, pm)

        report = await session.run(upgrades(ALL))

        assert report.state is DoctorState.VERIFIED_ALL
        assert report.all_passed
        assert report.accepted == ALL
        assert declared(project) == {"a": "^2.0.0", "b": "^2.0.0", "c": "~1.1.0"}
        assert pm.calls == ["install", "run test", "install", "run test"]

    @pytest.mark.asyncio
    async def test_nothing_to_upgrade(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        original = project.read_manifest()
        pm = FakePackageManager(project)

        report = await DoctorSession(project, pm).run(upgrades({}))

        assert report.state is DoctorState.DONE
        assert not report.changed
        assert project.read_manifest() == original
        assert pm.calls == ["install", "run test"]


# ============================================================================
# Bisection
# ============================================================================


@pytest.mark.unit
class TestDoctorBisection:
    """Tests for the one-at-a-time phase."""

    @pytest.mark.asyncio
    async def test_only_breaking_upgrade_rejected(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        pm = FakePackageManager(project, broken={("b", "^2.0.0")})
        session = DoctorSession(project, pm)

        report = await session.run(upgrades(ALL))

        assert report.state is DoctorState.DONE
        assert report.accepted == {"a": "^2.0.0", "c": "~1.1.0"}
        assert report.rejected == {"b": "^2.0.0"}
        assert report.rejected_count == 1
        assert "test failed" in report.errors["b"]
        assert declared(project) == {"a": "^2.0.0", "b": "^1.0.0", "c": "~1.1.0"}
        assert pm.calls[-1] == "install"
        assert pm.installed["b"] == "^1.0.0"

    @pytest.mark.asyncio
    async def test_manifest_formatting_preserved(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        pm = FakePackageManager(project, broken={("a", "^2.0.0")})

        await DoctorSession(project, pm).run(upgrades({"a": "^2.0.0", "b": "^2.0.0"}))

        text = project.manifest_path.read_text()
        assert text.startswith('{\n  "name": "app",')
        assert text.endswith("}\n")
        assert '"b": "^2.0.0"' in text
        assert '"a": "^1.0.0"' in text

    @pytest.mark.asyncio
    async def test_rejected_upgrade_restores_lock(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        pm = FakePackageManager(project, broken={("c", "~1.1.0")})
        session = DoctorSession(project, pm)

        await session.run(upgrades({"a": "^2.0.0", "c": "~1.1.0"}))

        # Snapshot after the good upgrade, before the bad one
        assert json.loads(session.current_lock)["a"] == "^2.0.0"
        assert "~1.1.0" not in session.current_lock.decode()

    @pytest.mark.asyncio
    async def test_all_rejected_leaves_manifest_unchanged(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        original = project.read_manifest()
        broken = {("a", "^2.0.0"), ("b", "^2.0.0")}
        pm = FakePackageManager(project, broken=broken)

        report = await DoctorSession(project, pm).run(upgrades({"a": "^2.0.0", "b": "^2.0.0"}))

        assert report.accepted == {}
        assert not report.changed
        assert project.read_manifest() == original

    @pytest.mark.asyncio
    async def test_saving_manager_manifest_reverted(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        pm = FakePackageManager(project, broken={("b", "^2.0.0")}, saves=True)

        report = await DoctorSession(project, pm).run(upgrades(ALL))

        assert report.rejected == {"b": "^2.0.0"}
        assert declared(project)["b"] == "^1.0.0"

    @pytest.mark.asyncio
    async def test_prepare_script_runs_after_single_install(self, tmp_path: Path) -> None:
        project = write_project(tmp_path, scripts={"test": "jest", "prepare": "tsc"})
        pm = FakePackageManager(project, broken={("b", "^2.0.0")})

        await DoctorSession(project, pm).run(upgrades({"a": "^2.0.0", "b": "^2.0.0"}))

        index = pm.calls.index("install a@^2.0.0")
        assert pm.calls[index : index + 3] == ["install a@^2.0.0", "run prepare", "run test"]


# ============================================================================
# Failures
# ============================================================================


@pytest.mark.unit
class TestDoctorFailures:
    @pytest.mark.asyncio
    async def test_missing_test_script(self, tmp_path: Path) -> None:
        project = write_project(tmp_path, scripts={})

        with pytest.raises(DoctorError, match='No "test" script'):
            await DoctorSession(project, FakePackageManager(project)).run(upgrades(ALL))

    @pytest.mark.asyncio
    async def test_baseline_test_failure(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        original = project.read_manifest()
        pm = FakePackageManager(project, broken={("jest", "^29.0.0")})
        session = DoctorSession(project, pm)

        with pytest.raises(BaselineError, match="Tests failed before upgrading"):
            await session.run(upgrades(ALL))

        assert session.state is DoctorState.FATAL
        assert project.read_manifest() == original

    @pytest.mark.asyncio
    async def test_baseline_install_failure(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        pm = FakePackageManager(project, fail_install_after=0)

        with pytest.raises(BaselineError, match="Install failed before upgrading"):
            await DoctorSession(project, pm).run(upgrades(ALL))

    @pytest.mark.asyncio
    async def test_reinstall_failure_is_inconsistent(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        original = project.read_manifest()
        # baseline and all-applied installs succeed, the rollback install fails
        pm = FakePackageManager(project, broken={("a", "^2.0.0")}, fail_install_after=2)
        session = DoctorSession(project, pm)

        with pytest.raises(InconsistentEnvironmentError):
            await session.run(upgrades(ALL))

        assert session.state is DoctorState.FATAL
        assert project.read_manifest() == original
        assert project.lock_path.read_bytes() == session.lock_snapshot

    @pytest.mark.asyncio
    async def test_lock_snapshot_taken_after_baseline_install(self, tmp_path: Path) -> None:
        project = write_project(tmp_path, lock=False)
        pm = FakePackageManager(project, broken={("a", "^2.0.0")}, fail_install_after=2)
        session = DoctorSession(project, pm)

        # the baseline install creates the lock, so the snapshot holds it
        with pytest.raises(InconsistentEnvironmentError):
            await session.run(upgrades({"a": "^2.0.0"}))

        assert session.lock_snapshot is not None
        assert project.lock_path.read_bytes() == session.lock_snapshot

    @pytest.mark.asyncio
    async def test_custom_test_command(self, tmp_path: Path) -> None:
        project = write_project(tmp_path, scripts={})
        pm = FakePackageManager(project)
        session = DoctorSession(project, pm, test_command=[sys.executable, "-c", "pass"])

        report = await session.run(upgrades({"a": "^2.0.0"}))

        assert report.all_passed
        assert "run test" not in pm.calls

    @pytest.mark.parametrize(
        "interrupt",
        [KeyboardInterrupt(), asyncio.CancelledError(), RuntimeError("disk full")],
        ids=["keyboard-interrupt", "cancelled", "unexpected-error"],
    )
    @pytest.mark.asyncio
    async def test_interrupted_all_applied_phase_restores_files(
        self, tmp_path: Path, interrupt: BaseException
    ) -> None:
        project = write_project(tmp_path)
        original = project.read_manifest()
        # run 1 is the baseline test, run 2 the all-applied test
        pm = FakePackageManager(project, interrupt_run=2, interrupt=interrupt)
        session = DoctorSession(project, pm)

        with pytest.raises(type(interrupt)):
            await session.run(upgrades(ALL))

        assert project.read_manifest() == original
        assert project.lock_path.read_bytes() == session.lock_snapshot
        assert pm.calls == ["install", "run test", "install", "run test"]


@pytest.mark.unit
class TestDoctorSections:
    """Tests for names declared in more than one section."""

    @pytest.mark.asyncio
    async def test_only_upgraded_section_is_rewritten(self, tmp_path: Path) -> None:
        manifest = {
            "name": "app",
            "scripts": {"test": "jest"},
            "dependencies": {"a": "~2.0.0", "b": "^1.0.0"},
            "devDependencies": {"a": "^1.0.0", "jest": "^29.0.0"},
        }
        (tmp_path / "package.json").write_text(json.dumps(manifest, indent=2) + "\n")
        (tmp_path / "package-lock.json").write_bytes(LOCK)
        project = ProjectFiles(tmp_path)
        pm = FakePackageManager(project, broken={("b", "^2.0.0")})

        async def source(baseline: Manifest) -> List[UpgradeDecision]:
            return [
                UpgradeDecision.unchanged("a", "~2.0.0", DecisionReason.UP_TO_DATE, section="prod"),
                UpgradeDecision.upgrade("b", "^1.0.0", "^2.0.0", section="prod"),
                UpgradeDecision.upgrade("a", "^1.0.0", "^2.0.0", section="dev"),
            ]

        report = await DoctorSession(project, pm).run(source)

        assert report.accepted == {"a": "^2.0.0"}
        assert report.rejected == {"b": "^2.0.0"}
        data = json.loads(project.read_manifest())
        assert data["dependencies"] == {"a": "~2.0.0", "b": "^1.0.0"}
        assert data["devDependencies"] == {"a": "^2.0.0", "jest": "^29.0.0"}

    @pytest.mark.asyncio
    async def test_sections_outside_session_are_ignored(self, tmp_path: Path) -> None:
        project = write_project(tmp_path)
        original = project.read_manifest()
        pm = FakePackageManager(project)

        report = await DoctorSession(project, pm, sections=("dev",)).run(upgrades(ALL))

        assert report.state is DoctorState.DONE
        assert project.read_manifest() == original
