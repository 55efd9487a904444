"""Doctor mode: verify upgrades against the project's own tests.

:class:`DoctorSession` applies every resolved upgrade at once and runs
the tests. When they fail it rolls back and retries the upgrades one at
a time, keeping each one that still passes. Every mutation of the
manifest or lock file is paired with a snapshot it can be restored from.

State machine::

    IDLE -> BASELINE_VERIFY -> ALL_APPLIED -> VERIFIED_ALL
                                           -> BISECTING -> DONE
    (any state) -> FATAL

Typical usage::

    session = DoctorSession(ProjectFiles("."), PackageManager("npm"))
    report = await session.run(resolve_upgrades)
    print(report.accepted, report.rejected_count)
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union

from depbump.utils.logger import get_logger
from depbump.utils.filesystem import ProjectFiles
from depbump.models.decision import UpgradeDecision
from depbump.models.manifest import Manifest, apply_upgrades
from depbump.utils.process import PackageManager, run_command, split_command
from depbump.exceptions import (
    BaselineError,
    DoctorError,
    DepBumpError,
    PackageManagerError,
    InconsistentEnvironmentError,
)
from depbump.constants import DEFAULT_SECTIONS, PREPARE_SCRIPT, TEST_SCRIPT

logger = get_logger("doctor")

#: Produces the accepted upgrade decisions for the baseline manifest.
UpgradeSource = Callable[[Manifest], Awaitable[Sequence[UpgradeDecision]]]


class DoctorState(str, Enum):
    IDLE = "idle"
    BASELINE_VERIFY = "baseline-verify"
    ALL_APPLIED = "all-applied"
    VERIFIED_ALL = "verified-all"
    BISECTING = "bisecting"
    DONE = "done"
    FATAL = "fatal"


@dataclass
class DoctorReport:
    """Outcome of a doctor run.

    Attributes:
        state: Final state (``VERIFIED_ALL`` or ``DONE``).
        accepted: Upgrades kept, in manifest order.
        rejected: Upgrades that broke the tests, in manifest order.
        errors: Failure message per rejected upgrade.
    """

    state: DoctorState
    accepted: Dict[str, str] = field(default_factory=dict)
    rejected: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    @property
    def all_passed(self) -> bool:
        return self.state is DoctorState.VERIFIED_ALL

    @property
    def changed(self) -> bool:
        return bool(self.accepted)


class DoctorSession:
    """Sequential install/test/rollback protocol for one project.

    Args:
        project: Manifest and lock file access.
        package_manager: Package manager collaborator.
        test_command: Shell-style command replacing ``<pm> run test``.
        sections: Dependency sections whose specifiers may be rewritten.
    """

    def __init__(
        self,
        project: ProjectFiles,
        package_manager: PackageManager,
        test_command: Union[str, Sequence[str], None] = None,
        sections: Iterable[str] = DEFAULT_SECTIONS,
    ) -> None:
        self.project = project
        self.package_manager = package_manager
        self.test_command = split_command(test_command) if test_command else None
        self.sections = tuple(sections)

        self.state = DoctorState.IDLE
        self.manifest_snapshot: Optional[bytes] = None
        self.lock_snapshot: Optional[bytes] = None
        self.current_lock: Optional[bytes] = None
        self.changes: List[UpgradeDecision] = []
        self.pending: Dict[str, str] = {}
        self.applied_good: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _enter(self, state: DoctorState) -> None:
        logger.debug("doctor: %s -> %s", self.state.value, state.value)
        self.state = state

    def _fatal(self, error: DoctorError, cause: Optional[BaseException] = None) -> None:
        self._enter(DoctorState.FATAL)
        if cause is not None:
            raise error from cause
        raise error

    async def _install(self) -> None:
        await self.package_manager.install()

    async def _test(self) -> None:
        if self.test_command is None:
            await self.package_manager.run_script(TEST_SCRIPT)
            return
        await run_command(
            self.test_command,
            cwd=self.package_manager.cwd,
            timeout=self.package_manager.timeout,
        )

    def _restore_snapshots(self, manifest: bytes, lock: Optional[bytes]) -> None:
        self.project.write_manifest(manifest)
        self.project.restore_lock(lock)

    def _load_manifest(self) -> Manifest:
        try:
            snapshot = self.project.read_manifest()
            manifest = Manifest.parse(
                snapshot.decode("utf-8"),
                self.project.manifest_path,
            )
        except (DepBumpError, UnicodeDecodeError) as exc:
            raise DoctorError(
                f"Cannot read manifest: {exc}",
                {"path": str(self.project.manifest_path)},
            ) from exc

        if self.test_command is None and not manifest.has_script(TEST_SCRIPT):
            raise DoctorError(
                'No "test" script in package.json; doctor needs tests to verify upgrades',
                {"path": str(self.project.manifest_path)},
            )
        return manifest

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    async def run(self, upgrade_source: UpgradeSource) -> DoctorReport:
        """Run the full protocol.

        Args:
            upgrade_source: Called once with the baseline manifest; returns
                the upgrades to verify.

        Raises:
            DoctorError: Preconditions failed.
            BaselineError: Install or tests fail before any change.
            InconsistentEnvironmentError: A restored state could not be
                reinstalled.
        """
        manifest = self._load_manifest()
        self.manifest_snapshot = snapshot = manifest.text.encode("utf-8")

        self._enter(DoctorState.BASELINE_VERIFY)
        try:
            await self._install()
        except PackageManagerError as exc:
            self._fatal(BaselineError(f"Install failed before upgrading: {exc.message}", exc.details), exc)
        self.lock_snapshot = self.project.read_lock()
        try:
            await self._test()
        except PackageManagerError as exc:
            self._fatal(
                BaselineError(
                    f"Tests failed before upgrading: {exc.message}. "
                    "Fix the failing tests first so upgrades can be verified",
                    exc.details,
                ),
                exc,
            )

        self.changes = [
            change
            for change in await upgrade_source(manifest)
            if change.accepted
            and change.target is not None
            and (change.section or "prod") in self.sections
        ]
        self.pending = {}
        for change in self.changes:
            self.pending.setdefault(change.name, change.target)
        if not self.pending:
            logger.info("All dependencies are up to date")
            self._enter(DoctorState.DONE)
            return DoctorReport(DoctorState.DONE)

        self._enter(DoctorState.ALL_APPLIED)
        installed = False
        try:
            self.project.write_manifest(manifest.with_upgrades(self.changes).encode("utf-8"))
            await self._install()
            installed = True
            await self._test()
        except PackageManagerError as exc:
            logger.info("Upgraded dependencies broke the build (%s); testing one at a time", exc.message)
        except BaseException:
            self._restore_snapshots(snapshot, self.lock_snapshot)
            raise
        else:
            self._enter(DoctorState.VERIFIED_ALL)
            self.applied_good = dict(self.pending)
            return DoctorReport(DoctorState.VERIFIED_ALL, accepted=dict(self.pending))

        self._enter(DoctorState.BISECTING)
        self._restore_snapshots(snapshot, self.lock_snapshot)
        if installed:
            try:
                await self._install()
            except PackageManagerError as exc:
                self._fatal(
                    InconsistentEnvironmentError(
                        "Reinstalling the original dependencies failed. Check your "
                        "network connection; node_modules may be partially installed",
                        exc.details,
                    ),
                    exc,
                )

        report = await self._bisect(manifest)

        self._enter(DoctorState.DONE)
        return report

    async def _bisect(self, manifest: Manifest) -> DoctorReport:
        report = DoctorReport(DoctorState.DONE)
        has_prepare = manifest.has_script(PREPARE_SCRIPT)
        saves = self.package_manager.saves_on_single_install

        last_good_text = manifest.text
        self.current_lock = self.lock_snapshot

        try:
            for name, spec in self.pending.items():
                try:
                    await self.package_manager.install_single(name, spec)
                    # --no-save installs skip lifecycle scripts
                    if has_prepare:
                        await self.package_manager.run_script(PREPARE_SCRIPT)
                    await self._test()
                except PackageManagerError as exc:
                    logger.info("✗ %s %s", name, spec)
                    report.rejected[name] = spec
                    report.errors[name] = str(exc)
                    self.project.restore_lock(self.current_lock)
                    if saves:
                        self.project.write_manifest(last_good_text.encode("utf-8"))
                    continue

                logger.info("✓ %s %s", name, spec)
                report.accepted[name] = spec
                last_good_text = apply_upgrades(
                    last_good_text, [c for c in self.changes if c.name == name]
                )
                self.current_lock = self.project.read_lock()
        except BaseException:
            self._restore_snapshots(last_good_text.encode("utf-8"), self.current_lock)
            raise

        self.applied_good = dict(report.accepted)

        if last_good_text != manifest.text:
            self.project.write_manifest(last_good_text.encode("utf-8"))
        try:
            await self._install()
        except PackageManagerError as exc:
            self._fatal(
                InconsistentEnvironmentError(
                    "Final install of the verified dependencies failed. Check your "
                    "network connection; node_modules may be partially installed",
                    exc.details,
                ),
                exc,
            )
        return report
