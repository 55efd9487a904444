"""Doctor command implementation for depbump.

Upgrades every dependency, runs the project's tests, and when they fail
finds which upgrades can be kept by retrying them one at a time. The
manifest and lock file are restored from snapshots whenever a step fails,
so the project is never left half-upgraded.

Typical usage::

    $ depbump doctor
    $ depbump doctor --package-manager yarn --test-command "yarn jest --ci"
"""

from __future__ import annotations

import click
import asyncio
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from depbump.models import Manifest, UpgradeDecision
from depbump.utils.process import SUPPORTED_MANAGERS
from depbump.context import pass_context, DepBumpContext
from depbump.core.doctor import DoctorReport, DoctorSession
from depbump.constants import LOCK_FILES, MANIFEST_FILE
from depbump.commands.common import (
    merge_config,
    report_diagnostics,
    resolve_upgrades,
    resolution_options,
)
from depbump.utils import (
    PackageManager,
    ProjectFiles,
    get_logger,
    print_info,
    print_success,
    print_table,
    print_warning,
)

logger = get_logger("commands.doctor")


@click.command()
@click.argument(
    "package_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=MANIFEST_FILE,
)
@click.option(
    "--package-manager",
    "-p",
    type=click.Choice(SUPPORTED_MANAGERS),
    default=None,
    help="Package manager used to install and test.",
)
@click.option(
    "--install-command",
    default=None,
    help="Command used instead of '<package manager> install'.",
)
@click.option(
    "--test-command",
    default=None,
    help="Command used instead of '<package manager> run test'.",
)
@click.option(
    "--process-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds allowed per install or test run.",
)
@resolution_options
@pass_context
def doctor(
    ctx: DepBumpContext,
    package_file: Path,
    package_manager: Optional[str],
    install_command: Optional[str],
    test_command: Optional[str],
    process_timeout: Optional[float],
    **resolution: Any,
) -> None:
    """Upgrade dependencies in PACKAGE_FILE that keep the tests passing.

    Installs and tests the project as-is first; a project whose tests
    already fail is left untouched.
    """
    config = merge_config(ctx.config, **resolution)
    manager_name = package_manager or config.package_manager
    directory = package_file.resolve().parent

    manager = PackageManager(
        manager_name,
        cwd=directory,
        timeout=process_timeout,
        install_command=install_command,
    )
    project = ProjectFiles(directory, LOCK_FILES[manager_name], package_file.name)
    session = DoctorSession(project, manager, test_command=test_command, sections=config.dep)

    async def upgrades(manifest: Manifest) -> Sequence[UpgradeDecision]:
        result = await resolve_upgrades(config, manifest.dependencies(config.dep))
        report_diagnostics(result.diagnostics)
        if result.upgrades:
            print_info(f"Verifying {len(result.upgrades)} upgrade(s) with {manager_name}")
        return result.accepted

    report = asyncio.run(session.run(upgrades))
    _display_report(report, package_file)


def _display_report(report: DoctorReport, package_file: Path) -> None:
    if not report.accepted and not report.rejected:
        print_success("All dependencies match the target versions")
        return

    if report.all_passed:
        print_success(f"All {len(report.accepted)} upgrades pass the tests")
    else:
        rows = [
            _row(name, spec, "pass") for name, spec in report.accepted.items()
        ] + [_row(name, spec, "fail") for name, spec in report.rejected.items()]
        print_table(
            rows,
            headers=["Package", "Upgrade", "Tests"],
            row_styler=lambda row: "success" if row["Tests"] == "pass" else "error",
        )
        for name, error in report.errors.items():
            logger.info("%s: %s", name, error)

    if report.accepted:
        print_success(f"Saved {len(report.accepted)} upgrade(s) to {package_file}")
    if report.rejected_count:
        print_warning(f"{report.rejected_count} upgrade(s) broke the tests and were skipped")


def _row(name: str, spec: str, outcome: str) -> Dict[str, str]:
    return {"Package": name, "Upgrade": spec, "Tests": outcome}
