"""
Filesystem utilities for depbump.

This module provides safe helpers for reading and atomically writing
project files, byte-level snapshots of the manifest and lock file for
doctor mode, and the JSON store behind the resolution cache. All
filesystem errors are normalized to ``FileOperationError``.
"""

from __future__ import annotations

import os
import json
import shutil
import tempfile
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, Optional, Union

from depbump.utils.logger import get_logger
from depbump.exceptions import FileOperationError
from depbump.constants import LOCK_FILES, MANIFEST_FILE, MAX_FILE_SIZE


logger = get_logger("filesystem")

PathLike = Union[str, Path]


def _validated_file(path: Path, *, operation: str = "read") -> Path:
    """Validate that *path* is an existing regular file and resolve it."""
    if not path.exists():
        raise FileOperationError(
            f"File not found: {path}",
            file_path=str(path),
            operation=operation,
        )
    if not path.is_file():
        raise FileOperationError(
            f"Not a file: {path}",
            file_path=str(path),
            operation=operation,
        )
    return path.resolve()


def _atomic_write(target: Path, content: bytes) -> None:
    """Atomically write bytes to a file using a temporary file + replace."""
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Optional[Path] = None

    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=str(target.parent),
            delete=False,
            prefix=f".{target.name}.",
            suffix=".tmp",
        ) as tmp:
            temp_path = Path(tmp.name)
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())

        temp_path.replace(target)

    except OSError as exc:
        if temp_path and temp_path.exists():
            try:
                temp_path.unlink()
                logger.debug("Cleaned up temporary file: %s", temp_path)
            except OSError as cleanup_exc:
                logger.warning(
                    "Failed to clean up temporary file %s: %s",
                    temp_path,
                    cleanup_exc,
                )

        raise FileOperationError(
            f"Atomic write failed: {exc}",
            file_path=str(target),
            operation="write",
            original_error=exc,
        ) from exc


def create_backup(file_path: PathLike) -> Path:
    """Copy *file_path* to a timestamped ``.backup`` sibling."""
    path = _validated_file(Path(file_path), operation="backup")
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_path = path.with_suffix(f"{path.suffix}.{timestamp}.backup")

    try:
        shutil.copy2(path, backup_path)
    except OSError as exc:
        raise FileOperationError(
            f"Failed to create backup: {exc}",
            file_path=str(path),
            operation="backup",
            original_error=exc,
        ) from exc

    logger.debug("Created backup: %s", backup_path)
    return backup_path


def safe_read_bytes(
    file_path: PathLike,
    *,
    max_size: Optional[int] = MAX_FILE_SIZE,
) -> bytes:
    """Read a file as bytes, refusing files above *max_size*."""
    path = _validated_file(Path(file_path))
    size = path.stat().st_size

    if max_size is not None and size > max_size:
        raise FileOperationError(
            f"File too large: {size} bytes (max {max_size})",
            file_path=str(path),
            operation="read",
        )

    try:
        return path.read_bytes()
    except OSError as exc:
        raise FileOperationError(
            f"Failed to read file: {exc}",
            file_path=str(path),
            operation="read",
            original_error=exc,
        ) from exc


def safe_read_file(
    file_path: PathLike,
    *,
    max_size: Optional[int] = MAX_FILE_SIZE,
    encoding: str = "utf-8",
) -> str:
    """Safely read a text file with optional size limits.

    Args:
        file_path: Path to the file.
        max_size: Maximum allowed file size in bytes (None disables limit).
        encoding: Text encoding.

    Returns:
        File contents as a string.
    """
    data = safe_read_bytes(file_path, max_size=max_size)
    try:
        return data.decode(encoding)
    except UnicodeDecodeError as exc:
        raise FileOperationError(
            f"Failed to decode file as {encoding}",
            file_path=str(file_path),
            operation="read",
            original_error=exc,
        ) from exc


def safe_write_file(
    file_path: PathLike,
    content: Union[str, bytes],
    *,
    create_backup_first: bool = False,
    encoding: str = "utf-8",
) -> Optional[Path]:
    """Atomically replace *file_path* with *content*.

    Args:
        file_path: Destination path.
        content: Text or bytes to write.
        create_backup_first: Copy the existing file aside first.
        encoding: Encoding used when *content* is text.

    Returns:
        Path to the created backup, if any.
    """
    path = Path(file_path)
    backup: Optional[Path] = None

    if create_backup_first and path.is_file():
        backup = create_backup(path)

    data = content.encode(encoding) if isinstance(content, str) else content
    _atomic_write(path, data)
    return backup


def remove_file(file_path: PathLike) -> bool:
    """Delete *file_path* if it exists; return whether anything was removed."""
    path = Path(file_path)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise FileOperationError(
            f"Failed to remove file: {exc}",
            file_path=str(path),
            operation="delete",
            original_error=exc,
        ) from exc
    return True


class ProjectFiles:
    """Byte-level access to a project's manifest and lock file.

    Doctor mode treats both files as opaque snapshots: whatever was read
    can be written back verbatim, and a lock file that did not exist is
    restored by removing it.

    Args:
        directory: Project root.
        lock_name: Lock file name (``package-lock.json``, ``yarn.lock``...).
        manifest_name: Manifest file name.
    """

    def __init__(
        self,
        directory: PathLike = ".",
        lock_name: str = LOCK_FILES["npm"],
        manifest_name: str = MANIFEST_FILE,
    ) -> None:
        self.directory = Path(directory)
        self.manifest_path = self.directory / manifest_name
        self.lock_path = self.directory / lock_name

    def read_manifest(self) -> bytes:
        return safe_read_bytes(self.manifest_path)

    def write_manifest(self, content: bytes) -> None:
        _atomic_write(self.manifest_path, content)

    def read_lock(self) -> Optional[bytes]:
        """Return the lock file bytes, or ``None`` if there is no lock file."""
        if not self.lock_path.exists():
            return None
        return safe_read_bytes(self.lock_path, max_size=None)

    def restore_lock(self, content: Optional[bytes]) -> None:
        """Write *content* back, or remove the lock file when it is ``None``."""
        if content is None:
            if remove_file(self.lock_path):
                logger.debug("Removed %s", self.lock_path)
            return
        _atomic_write(self.lock_path, content)


class JsonCacheStore:
    """JSON file persistence for :class:`~depbump.core.cache.ResolutionCache`.

    A missing or corrupt file loads as an empty mapping; the cache is an
    optimisation and must never block a run.
    """

    def __init__(self, path: PathLike) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable cache file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, data: Dict[str, Any]) -> None:
        _atomic_write(self.path, json.dumps(data, separators=(",", ":")).encode("utf-8"))
        logger.debug("Wrote cache file %s", self.path)
