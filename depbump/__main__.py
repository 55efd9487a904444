"""
Executable module for depbump.

Running:
    python -m depbump

is equivalent to:
    depbump
"""

from __future__ import annotations

import sys


def main() -> int:
    """
    Main entrypoint when executing `python -m depbump`.

    Returns:
        Exit code returned by the CLI.
    """
    try:
        from depbump.cli import main as cli_main
    except ImportError as exc:
        sys.stderr.write(f"depbump CLI could not be loaded: {exc}\n")
        sys.stderr.write(f"Python version : {sys.version}\n")
        return 1

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
