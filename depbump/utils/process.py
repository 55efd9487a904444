"""
External process helpers for depbump.

This module runs package-manager and test commands as asyncio
subprocesses. Every helper awaits the child to completion; a command that
exceeds its timeout is killed together with its process group and
reported as a failure, never left running in the background.
"""

from __future__ import annotations

import os
import shlex
import signal
import asyncio
from pathlib import Path
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple, Union

from depbump.utils.logger import get_logger
from depbump.exceptions import PackageManagerError
from depbump.constants import DEFAULT_PACKAGE_MANAGER, LOCK_FILES

logger = get_logger("process")

PathLike = Union[str, Path]

#: Supported package managers.
SUPPORTED_MANAGERS: Tuple[str, ...] = tuple(LOCK_FILES)

#: Children get their own process group so a kill reaches the test
#: runners and scripts they spawn.
_NEW_GROUP = os.name == "posix"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one finished process."""

    argv: Tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _kill(proc: "asyncio.subprocess.Process") -> None:
    """Kill *proc* and, on POSIX, every process left in its group."""
    if _NEW_GROUP:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        return
    if proc.returncode is None:
        proc.kill()


def split_command(command: Union[str, Sequence[str]]) -> Tuple[str, ...]:
    """Turn a shell-style command string into an argument vector."""
    if isinstance(command, str):
        argv = tuple(shlex.split(command))
    else:
        argv = tuple(command)
    if not argv:
        raise ValueError("empty command")
    return argv


async def run_command(
    argv: Sequence[str],
    *,
    cwd: Optional[PathLike] = None,
    timeout: Optional[float] = None,
    env: Optional[Mapping[str, str]] = None,
    check: bool = True,
) -> CommandResult:
    """Run *argv* and wait for it to exit.

    Args:
        argv: Program and arguments.
        cwd: Working directory.
        timeout: Seconds before the process is killed.
        env: Extra environment variables layered over ``os.environ``.
        check: Raise on a non-zero exit status.

    Raises:
        PackageManagerError: The program is missing, timed out, or (with
            *check*) exited non-zero.
    """
    command = list(argv)
    child_env = {**os.environ, **env} if env else None
    logger.debug("Running %s (cwd=%s)", shlex.join(command), cwd or ".")

    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd) if cwd is not None else None,
            env=child_env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=_NEW_GROUP,
        )
    except OSError as exc:
        raise PackageManagerError(
            f"Could not start {command[0]}: {exc}",
            command=command,
        ) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        _kill(proc)
        await proc.wait()
        raise PackageManagerError(
            f"{command[0]} timed out after {timeout}s",
            command=command,
        ) from None
    except asyncio.CancelledError:
        _kill(proc)
        await proc.wait()
        raise

    result = CommandResult(
        argv=tuple(command),
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )

    if check and not result.ok:
        raise PackageManagerError(
            f"{command[0]} exited with status {result.returncode}",
            command=command,
            returncode=result.returncode,
            stderr=result.stderr or result.stdout,
        )
    return result


class PackageManager:
    """npm, yarn or pnpm driven in one project directory.

    Args:
        name: ``npm``, ``yarn`` or ``pnpm``.
        cwd: Project directory.
        timeout: Seconds allowed per command; ``None`` waits forever.
        install_command: Replaces the default full-install command.
    """

    def __init__(
        self,
        name: str = DEFAULT_PACKAGE_MANAGER,
        cwd: PathLike = ".",
        timeout: Optional[float] = None,
        install_command: Union[str, Sequence[str], None] = None,
    ) -> None:
        if name not in SUPPORTED_MANAGERS:
            raise ValueError(
                f"Unsupported package manager {name!r}; expected one of {', '.join(SUPPORTED_MANAGERS)}"
            )
        self.name = name
        self.cwd = Path(cwd)
        self.timeout = timeout
        self._install_argv = split_command(install_command) if install_command else None

    @property
    def lock_file(self) -> str:
        return LOCK_FILES[self.name]

    @property
    def saves_on_single_install(self) -> bool:
        """True if installing one package also rewrites the manifest."""
        # npm honours --no-save; yarn and pnpm "add" always save
        return self.name != "npm"

    async def run(self, argv: Sequence[str]) -> CommandResult:
        return await run_command(argv, cwd=self.cwd, timeout=self.timeout)

    async def install(self) -> CommandResult:
        """Install everything the manifest declares."""
        argv = self._install_argv or (self.name, "install")
        logger.info("Installing dependencies with %s", argv[0])
        return await self.run(argv)

    async def run_script(self, script: str, args: Sequence[str] = ()) -> CommandResult:
        """Run a ``package.json`` script."""
        argv = [self.name, "run", script]
        if args:
            if self.name == "npm":
                argv.append("--")
            argv.extend(args)
        return await self.run(argv)

    async def install_single(self, name: str, specifier: str) -> CommandResult:
        """Install one package at *specifier*, saving only where unavoidable."""
        package = f"{name}@{specifier}"
        if self.name == "npm":
            argv = ["npm", "install", "--no-save", package]
        else:
            argv = [self.name, "add", package]
        logger.info("Installing %s", package)
        return await self.run(argv)

    def __repr__(self) -> str:
        return f"PackageManager(name={self.name!r}, cwd={str(self.cwd)!r})"
