"""
Command-line interface for depbump.

This module provides the main CLI entry point and handles global options,
configuration loading, and command registration.
"""

from __future__ import annotations

import sys
import logging
from pathlib import Path
from typing import Optional

import click

from depbump.config import load_config
from depbump.__version__ import __version__
from depbump.context import DepBumpContext
from depbump.exceptions import ConfigError, DepBumpError
from depbump.utils.logger import get_logger, level_for_verbosity, setup_logging
from depbump.utils.console import print_error, print_warning, reconfigure_console

logger = get_logger("cli")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file.",
    envvar="DEPBUMP_CONFIG",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (can be repeated: -v, -vv).",
)
@click.option(
    "--color/--no-color",
    default=None,
    help="Force colored output on or off (default: auto-detect).",
)
@click.version_option(
    version=__version__,
    prog_name="depbump",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: int,
    color: Optional[bool],
) -> None:
    """depbump — find newer versions of npm dependencies.

    \b
    Available commands:
      depbump check               List upgradable dependencies
      depbump check -u            Write the upgrades to package.json
      depbump doctor              Keep only upgrades that pass the tests

    \b
    Examples:
      depbump check --target minor
      depbump check --reject "@types/*" --dep prod
      depbump -v doctor --package-manager pnpm

    Use ``depbump COMMAND --help`` for command-specific options.
    """
    reconfigure_console(color)
    level = level_for_verbosity(verbose)
    setup_logging(level=level, verbose=verbose >= 2, color=color is not False)
    logger.debug("Logging initialized at %s level", logging.getLevelName(level))

    try:
        loaded_config = load_config(config)
    except ConfigError as exc:
        print_error(str(exc))
        raise SystemExit(1) from exc

    depbump_ctx = DepBumpContext()
    depbump_ctx.config_path = config or loaded_config.source_path
    depbump_ctx.color = color
    depbump_ctx.verbose = verbose
    depbump_ctx.config = loaded_config
    ctx.obj = depbump_ctx

    logger.debug("depbump v%s", __version__)
    logger.debug("Config path: %s", depbump_ctx.config_path)
    logger.debug("Verbosity: %s | Color: %s", verbose, color)


def _register_commands() -> None:
    from depbump.commands.check import check
    from depbump.commands.doctor import doctor

    cli.add_command(check)
    cli.add_command(doctor)


_register_commands()


def main() -> int:
    """Main entry point for the depbump CLI.

    Returns:
        Exit code:
            0   Success
            1   Unhandled or application error
            2   Usage error (Click)
            130 Interrupted by user (Ctrl+C)
    """
    try:
        cli(standalone_mode=False)
        return 0

    except click.exceptions.Exit as exc:
        return exc.exit_code

    except click.ClickException as exc:
        exc.show()
        return exc.exit_code

    except click.Abort:
        print_warning("\nOperation cancelled by user")
        return 130

    except SystemExit as exc:
        code = exc.code
        if code is None:
            return 0
        return code if isinstance(code, int) else 1

    except DepBumpError as exc:
        print_error(str(exc))
        logger.debug(
            "DepBumpError details: %s",
            exc.details or "<none>",
            exc_info=True,
        )
        return 1

    except KeyboardInterrupt:
        print_warning("\nOperation cancelled by user")
        return 130

    except Exception as exc:
        print_error(f"Unexpected error: {exc}")
        logger.exception("Unhandled exception in CLI")
        return 1


if __name__ == "__main__":
    sys.exit(main())
