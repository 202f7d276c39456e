# __init__.py
"""
Self Updater

This package lets a running application update itself in place. It compares
a local version manifest with a remote one, assembles the incoming release
from remote URLs, local directories and local files into a single archive,
and hands the archive over to a short-lived companion process that waits
for the application to exit, replaces its files and restarts it.

Features:
- Version manifests with remote, directory and file sources
- Version comparison with explicit arity checking
- Package assembly with optional extraction of nested archives
- Two-process handoff: the companion survives the caller's exit
- Heartbeat logging while waiting for the caller to terminate
- Usable both as a command-line tool and as a Python library
"""

from .exceptions import (
    UpdaterError,
    ConfigurationError,
    ManifestError,
    ManifestNotFound,
    ManifestUnreachable,
    VersionArityMismatch,
    ArchiveAssemblyError,
    LaunchError,
    HandoffError,
    HandoffUsageError,
    CallerLookupFailure,
    ArchiveInvalid,
    ExtractionFailure,
)
from .models import (
    CallerExitCode,
    ComparisonResult,
    PathLike,
    UnpackerExitCode,
    UpdateStatus,
    UpdaterConfig,
    VersionDescriptor,
)
from .version import compare_versions, cross_check, parse_version_points
from .manifest import fetch_incoming_version, load_working_version, parse_manifest
from .packaging import PackageAssembler
from .launcher import HandoffLauncher
from .unpacker import HandoffArgs, HandoffCoordinator
from .updater import SelfUpdater
from .core import Updater
from .logger import logger, setup_logging

__version__ = "1.0.0"
__license__ = "GPL-3.0-or-later"

__all__ = [
    # Core classes
    "SelfUpdater",
    "Updater",
    "PackageAssembler",
    "HandoffLauncher",
    "HandoffCoordinator",
    # Types
    "VersionDescriptor",
    "ComparisonResult",
    "HandoffArgs",
    "UpdaterConfig",
    "UpdateStatus",
    "CallerExitCode",
    "UnpackerExitCode",
    "PathLike",
    # Exceptions
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
    "CallerLookupFailure",
    "ArchiveInvalid",
    "ExtractionFailure",
    # Functions
    "compare_versions",
    "cross_check",
    "parse_version_points",
    "parse_manifest",
    "load_working_version",
    "fetch_incoming_version",
    "get_tool_info",
    # Logger
    "logger",
    "setup_logging",
]


def get_tool_info() -> dict:
    """
    Return metadata about this tool for discovery.

    Returns:
        Dict containing tool metadata including name, version, description,
        available functions, requirements, and platform compatibility.
    """
    return {
        "name": "self_updater",
        "version": __version__,
        "description": "In-place application updates through a companion handoff process",
        "license": __license__,
        "supported": True,
        "platform": ["windows", "linux", "macos"],
        "functions": [
            "check_for_updates",
            "assemble",
            "start",
            "update",
            "purge_old_update",
            "compare_versions",
            "cross_check",
        ],
        "requirements": [
            "aiohttp",
            "aiofiles",
            "loguru",
            "psutil",
            "pydantic",
            "requests",
            "tqdm",
        ],
        "capabilities": [
            "update_checking",
            "package_assembly",
            "nested_archive_extraction",
            "process_handoff",
            "restart_after_update",
        ],
        "classes": {
            "SelfUpdater": "Main async update cycle orchestrator",
            "Updater": "Synchronous wrapper",
            "HandoffCoordinator": "Companion-side handoff state machine",
        },
    }


# Entrypoint for CLI
if __name__ == "__main__":
    import sys
    from .cli import main

    sys.exit(main())
