#!/usr/bin/env python3
"""
Exception types for the self updater.

Caller-side failures derive from UpdaterError. Failures inside the
companion process derive from HandoffError, which lives in the companion
module so that module stays importable on its own; they are re-exported
here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from .unpacker import (
    ArchiveInvalid,
    CallerLookupFailure,
    ExtractionFailure,
    HandoffError,
    HandoffUsageError,
    InteractiveInputDeclined,
)


class UpdaterError(Exception):
    """Base exception for all caller-side updater errors."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        **extra_context: Any,
    ):
        super().__init__(message)
        self.error_code = error_code or self.__class__.__name__.upper()
        self.original_error = original_error
        self.extra_context = extra_context

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to structured dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "error_code": self.error_code,
            "original_error": str(self.original_error) if self.original_error else None,
            "extra_context": self.extra_context,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={str(self)!r}, error_code={self.error_code!r})"


class ConfigurationError(UpdaterError):
    """The updater configuration file is missing or malformed."""

    def __init__(self, message: str, config_file: Optional[Path] = None, **kwargs: Any):
        self.config_file = config_file
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            config_file=str(config_file) if config_file else None,
            **kwargs,
        )


class ManifestError(UpdaterError):
    """Base class for manifest failures. Both abort the update check."""


class ManifestNotFound(ManifestError):
    """The local manifest does not exist."""

    def __init__(self, manifest_path: Path, **kwargs: Any):
        self.manifest_path = manifest_path
        super().__init__(
            f"Working version was not found: {manifest_path}",
            error_code="MANIFEST_NOT_FOUND",
            manifest_path=str(manifest_path),
            **kwargs,
        )


class ManifestUnreachable(ManifestError):
    """The remote manifest could not be fetched or decoded."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs: Any):
        self.url = url
        super().__init__(message, error_code="MANIFEST_UNREACHABLE", url=url, **kwargs)


class VersionArityMismatch(UpdaterError, ValueError):
    """Two compared version numbers have a different count of segments."""

    def __init__(self, working: str, incoming: str, **kwargs: Any):
        self.working = working
        self.incoming = incoming
        super().__init__(
            "Version lengths must match. "
            f"Current version: {working!r}, compared version: {incoming!r}",
            error_code="VERSION_ARITY_MISMATCH",
            **kwargs,
        )


class ArchiveAssemblyError(UpdaterError):
    """Downloading, copying or compressing the update payload failed."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs: Any):
        self.source = source
        super().__init__(message, error_code="ARCHIVE_ASSEMBLY_FAILED", source=source, **kwargs)


class LaunchError(UpdaterError):
    """The companion process could not be written out or started."""


__all__ = [
    "UpdaterError",
    "ConfigurationError",
    "ManifestError",
    "ManifestNotFound",
    "ManifestUnreachable",
    "VersionArityMismatch",
    "ArchiveAssemblyError",
    "LaunchError",
    "HandoffError",
    "HandoffUsageError",
    "InteractiveInputDeclined",
    "CallerLookupFailure",
    "ArchiveInvalid",
    "ExtractionFailure",
]
