"""
Custom exception hierarchy for depbump.

This module defines structured exception types used across depbump.
All exceptions inherit from :class:`DepBumpError` and support optional
structured metadata via the ``details`` attribute to improve diagnostics
and logging.
"""

from __future__ import annotations

from typing import Any, Mapping, MutableMapping, Optional, Sequence


class DepBumpError(Exception):
    """Base exception for all depbump errors.

    All depbump-specific exceptions should inherit from this class.
    It supports structured metadata via ``details`` for richer error
    reporting and debugging.

    Args:
        message: Human-readable error message.
        details: Optional structured metadata describing the error.
    """

    __slots__ = ("message", "details")

    def __init__(
        self,
        message: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message: str = message
        # Internally normalize to a mutable dict
        self.details: MutableMapping[str, Any] = dict(details) if details else {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        formatted = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({formatted})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, details={dict(self.details)!r})"
        )


def _add_if(details: MutableMapping[str, Any], key: str, value: Any) -> None:
    """Add a key to ``details`` only if ``value`` is not ``None``."""
    if value is not None:
        details[key] = value


def _truncate(text: str, max_length: int = 200) -> str:
    """Truncate long text for safe logging or error reporting."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class ParseError(DepBumpError):
    """Raised when a manifest cannot be parsed.

    Args:
        message: Error description.
        file_path: Path to the file being parsed.
        section: Manifest section involved, if any.
    """

    __slots__ = ("file_path", "section")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        section: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "file", file_path)
        _add_if(details, "section", section)

        super().__init__(message, details)

        self.file_path = file_path
        self.section = section


class SpecifierError(DepBumpError):
    """Raised when a version specifier is not a semver range.

    Callers treat this as "leave the dependency unchanged".

    Args:
        message: Error description.
        specifier: The offending specifier.
    """

    __slots__ = ("specifier",)

    def __init__(self, message: str, *, specifier: Optional[str] = None) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "specifier", specifier)
        super().__init__(message, details)
        self.specifier = specifier


class ConfigError(DepBumpError):
    """Raised when the configuration file is missing or invalid.

    Args:
        message: Error description.
        config_path: Path of the configuration file.
        option: Offending option name.
    """

    __slots__ = ("config_path", "option")

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        option: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", config_path)
        _add_if(details, "option", option)
        super().__init__(message, details)
        self.config_path = config_path
        self.option = option


class NetworkError(DepBumpError):
    """Raised when HTTP or network operations fail.

    Args:
        message: Error description.
        url: URL being accessed.
        status_code: HTTP status code, if available.
        response_body: Raw response body, truncated for safety.
    """

    __slots__ = ("url", "status_code", "response_body")

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "url", url)
        _add_if(details, "status_code", status_code)

        if response_body is not None:
            details["response"] = _truncate(response_body)

        super().__init__(message, details)

        self.url = url
        self.status_code = status_code
        self.response_body = response_body


class RegistryError(NetworkError):
    """Raised for failures related to the package registry.

    Args:
        message: Error description.
        package_name: Name of the package involved.
        **kwargs: Additional arguments forwarded to ``NetworkError``.
    """

    __slots__ = ("package_name",)

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        self.package_name = package_name
        if package_name is not None:
            self.details["package"] = package_name


class FileOperationError(DepBumpError):
    """Raised when file system operations fail.

    Args:
        message: Error description.
        file_path: Path to the file involved.
        operation: Operation being performed (read/write/delete).
        original_error: Original exception that triggered this error.
    """

    __slots__ = ("file_path", "operation", "original_error")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", file_path)
        _add_if(details, "operation", operation)
        _add_if(
            details,
            "original_error",
            str(original_error) if original_error else None,
        )

        super().__init__(message, details)

        self.file_path = file_path
        self.operation = operation
        self.original_error = original_error


class PackageManagerError(DepBumpError):
    """Raised when an external package-manager or test process fails.

    Args:
        message: Error description.
        command: Argument vector that was executed.
        returncode: Process exit status (``None`` when it timed out).
        stderr: Captured standard error, truncated for safety.
    """

    __slots__ = ("command", "returncode", "stderr")

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "command", " ".join(command) if command else None)
        _add_if(details, "returncode", returncode)
        if stderr:
            details["stderr"] = _truncate(stderr.strip())

        super().__init__(message, details)

        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = stderr


class DoctorError(DepBumpError):
    """Raised when doctor mode cannot continue.

    Every subclass names the invariant that could not be preserved.
    """


class BaselineError(DoctorError):
    """Raised when install or tests fail before any upgrade is applied.

    Nothing has been modified at this point, so there is nothing to roll
    back.
    """


class InconsistentEnvironmentError(DoctorError):
    """Raised when reinstalling a restored snapshot fails.

    The working tree may no longer match the manifest and lock file that
    depbump restored.
    """
