"""Check command implementation for depbump.

Reads a ``package.json``, resolves every dependency against the registry
and reports the specifiers that can be upgraded. With ``--upgrade`` the
manifest is rewritten in place; only the changed specifier strings are
touched, so formatting and key order survive.

Typical usage::

    # Show available upgrades
    $ depbump check

    # Only minor/patch upgrades for dev dependencies, written back
    $ depbump check --target minor --dep dev -u

    # Machine-readable output
    $ depbump check --format json > upgrades.json
"""

from __future__ import annotations

import sys
import json
import click
import asyncio
from pathlib import Path
from typing import Any, Dict, List

from depbump.models import Manifest
from depbump.core.engine import UpgradeResult
from depbump.context import pass_context, DepBumpContext
from depbump.constants import MANIFEST_FILE
from depbump.commands.common import (
    merge_config,
    report_diagnostics,
    resolve_upgrades,
    resolution_options,
)
from depbump.utils import (
    get_logger,
    print_success,
    print_table,
    print_info,
    safe_write_file,
    colorize_update_type,
)

logger = get_logger("commands.check")


@click.command()
@click.argument(
    "package_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=MANIFEST_FILE,
)
@click.option(
    "--upgrade",
    "-u",
    is_flag=True,
    help="Write the upgraded specifiers back to the manifest.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.option(
    "--error-level",
    "-e",
    type=click.IntRange(1, 2),
    default=1,
    help="1: exit 0 on success. 2: exit 1 when upgrades are available and not applied.",
)
@resolution_options
@pass_context
def check(
    ctx: DepBumpContext,
    package_file: Path,
    upgrade: bool,
    output_format: str,
    error_level: int,
    **resolution: Any,
) -> None:
    """Check PACKAGE_FILE for dependencies with newer versions.

    Non-fatal problems (an unreachable registry, an unknown package) are
    listed as warnings and do not change the exit status.
    """
    config = merge_config(ctx.config, **resolution)
    logger.info("Checking %s", package_file)

    manifest = Manifest.load(package_file)
    dependencies = manifest.dependencies(config.dep)
    if not dependencies:
        print_info("No dependencies found")
        return

    result = asyncio.run(resolve_upgrades(config, dependencies))

    if output_format == "json":
        click.echo(json.dumps(_as_json(result), indent=2))
    else:
        _display_table(result)
        report_diagnostics(result.diagnostics)

    if not result.upgrades:
        if output_format == "table":
            print_success("All dependencies match the target versions")
        return

    if upgrade:
        text = manifest.with_upgrades(result.accepted)
        safe_write_file(package_file, text)
        if output_format == "table":
            print_success(f"Upgraded {len(result.upgrades)} dependencies in {package_file}")
        return

    if output_format == "table":
        print_info(f"\nRun depbump check -u to upgrade {package_file}")
    if error_level == 2:
        sys.exit(1)


def _display_table(result: UpgradeResult) -> None:
    rows: List[Dict[str, Any]] = []
    for decision in result.accepted:
        rows.append(
            {
                "Package": decision.name,
                "Section": decision.section or "",
                "Current": decision.current,
                "Upgrade": decision.target,
                "Type": colorize_update_type(decision.update_type),
            }
        )

    print_table(
        rows,
        headers=["Package", "Section", "Current", "Upgrade", "Type"],
        column_styles={
            "Package": {"style": "bold", "no_wrap": True},
            "Upgrade": {"style": "highlight"},
        },
    )


def _as_json(result: UpgradeResult) -> Dict[str, Any]:
    return {
        "upgrades": result.upgrades,
        "decisions": [d.to_json() for d in result.decisions],
        "diagnostics": [{"name": d.name, "message": d.message} for d in result.diagnostics],
    }

