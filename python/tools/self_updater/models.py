# models.py
"""Defines the core data models and types for the self updater."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, List, Optional, Protocol, Tuple, Union, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError
from .unpacker import ARCHIVE_EXTENSION, UnpackerExitCode
from .utils import is_absolute_url, is_valid_file_name, url_file_name

if TYPE_CHECKING:
    from .version import Ordering

# --- Type Definitions ---
PathLike = Union[str, os.PathLike, Path]

# --- Enums ---


class UpdateStatus(str, Enum):
    """Status codes for the update process."""
    IDLE = "idle"
    CHECKING = "checking"
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    ASSEMBLING = "assembling"
    DOWNLOADING = "downloading"
    COPYING = "copying"
    COMPRESSING = "compressing"
    LAUNCHING = "launching"
    FAILED = "failed"


class CallerExitCode(IntEnum):
    """Exit codes of the process orchestrating an update cycle."""
    HANDOFF = 0
    NOT_REQUIRED = 1
    UNAVAILABLE = -1


# --- Protocols ---


class ProgressCallback(Protocol):
    """Protocol for progress callback functions."""

    async def __call__(self, status: UpdateStatus,
                       progress: float, message: str) -> None: ...


# --- Version descriptor ---


class VersionDescriptor(BaseModel):
    """
    Immutable description of one release, decoded from a manifest.

    The wire names (productName, version, versionName, desc, files) are
    aliases of the attribute names.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    product_name: str = Field(default="", alias="productName")
    version_number: str = Field(alias="version")
    version_name: str = Field(default="", alias="versionName")
    description: str = Field(default="", alias="desc")
    sources: Tuple[str, ...] = Field(default=(), alias="files")

    @field_validator("product_name", "version_name", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("version_number", mode="before")
    @classmethod
    def _strip_version(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("sources", mode="before")
    @classmethod
    def _none_to_tuple(cls, v: Any) -> Any:
        return () if v is None else v

    def _matching(self, predicate) -> Iterator[str]:
        for source in self.sources:
            if predicate(source):
                yield source

    @property
    def remote_sources(self) -> List[str]:
        """Sources that are absolute URLs ending in a valid file name."""
        return list(self._matching(
            lambda s: is_absolute_url(s) and is_valid_file_name(url_file_name(s))))

    @property
    def directory_sources(self) -> List[str]:
        """Sources that are existing local directories."""
        return list(self._matching(lambda s: Path(s).is_dir()))

    @property
    def file_sources(self) -> List[str]:
        """Sources that are existing local files."""
        return list(self._matching(lambda s: Path(s).is_file()))

    def check(self, incoming: "VersionDescriptor",
              ordering: "Ordering" = "any_segment") -> "ComparisonResult":
        """Compare this (working) version against an incoming one."""
        from .version import cross_check
        return cross_check(self, incoming, ordering=ordering)

    def to_manifest(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

    def __str__(self) -> str:
        return f"{self.product_name}\n{self.version_name}, {self.version_number}.\n{self.description}"


@dataclass(frozen=True, slots=True)
class ComparisonResult:
    """Verdict of comparing a working version against an incoming one."""
    working: VersionDescriptor
    incoming: VersionDescriptor
    newest: VersionDescriptor
    same: bool
    is_newer: bool

    @property
    def is_older(self) -> bool:
        return not self.same and not self.is_newer


# --- Configuration Model ---


class UpdaterConfig(BaseModel):
    """Configuration for the SelfUpdater, validated by Pydantic."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    working_dir: Path = Field(default_factory=Path.cwd)
    manifest_name: str = "ver.upd"
    remote_manifest_url: Optional[str] = None
    archive_name: str = "update.zip"
    unpack_nested: bool = True
    restart: bool = False
    wait_for_input: bool = False
    connectivity_hosts: Tuple[str, ...] = ("google.com", "youtube.com", "bing.com")
    check_connectivity: bool = True
    request_timeout: float = 30.0
    temp_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    show_progress: bool = False
    progress_callback: Optional[Callable[[UpdateStatus, float, str], Awaitable[None]]] = None

    @field_validator("working_dir", "temp_root", mode="before")
    @classmethod
    def _ensure_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("archive_name")
    @classmethod
    def _check_archive_name(cls, v: str) -> str:
        if not is_valid_file_name(v) or not v.lower().endswith(ARCHIVE_EXTENSION):
            raise ValueError(f"archive name must be a plain '{ARCHIVE_EXTENSION}' file name: {v!r}")
        return v

    @property
    def manifest_path(self) -> Path:
        return self.working_dir / self.manifest_name

    @classmethod
    def from_file(cls, file_path: PathLike, **overrides: Any) -> "UpdaterConfig":
        """
        Load the configuration from a JSON file.

        Args:
            file_path: Path to the configuration file.
            **overrides: Values that take precedence over the file.

        Raises:
            ConfigurationError: If the file cannot be read or validated.
        """
        config_path = Path(file_path)
        if not config_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}", config_file=config_path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Config file is not valid JSON: {config_path}",
                config_file=config_path, original_error=e) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file must contain a JSON object: {config_path}", config_file=config_path)

        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {config_path}: {e}",
                config_file=config_path, original_error=e) from e


__all__ = [
    "PathLike",
    "UpdateStatus",
    "CallerExitCode",
    "UnpackerExitCode",
    "ProgressCallback",
    "VersionDescriptor",
    "ComparisonResult",
    "UpdaterConfig",
]
