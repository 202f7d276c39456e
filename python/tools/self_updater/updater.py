# updater.py
"""The core SelfUpdater class, orchestrating one update cycle asynchronously."""

import asyncio
import subprocess
from pathlib import Path
from typing import Optional

from loguru import logger

from .exceptions import ManifestError, UpdaterError
from .launcher import HandoffLauncher
from .manifest import fetch_incoming_version, load_working_version
from .models import (
    CallerExitCode, ComparisonResult, UpdateStatus, UpdaterConfig, VersionDescriptor
)
from .network import has_internet
from .packaging import PackageAssembler
from .version import Ordering, cross_check


class SelfUpdater:
    """
    Self updater for applications that replace their own files.

    This class orchestrates one update cycle:
    1. Probing connectivity.
    2. Reading the working manifest and fetching the incoming one.
    3. Comparing both versions.
    4. Assembling the incoming release into one archive.
    5. Handing the archive over to the companion process and exiting.
    """

    def __init__(
        self,
        config: UpdaterConfig,
        launcher: Optional[HandoffLauncher] = None,
        ordering: Ordering = "any_segment",
    ):
        """
        Initialize the SelfUpdater.

        Args:
            config: Configuration object for the updater.
            launcher: Launcher used for the handoff.
            ordering: Version ordering used by the comparison.
        """
        self.config = config
        self.launcher = launcher or HandoffLauncher(config.working_dir)
        self.ordering = ordering
        self.status: UpdateStatus = UpdateStatus.IDLE
        self.check: Optional[ComparisonResult] = None
        self._progress_callback = config.progress_callback

    async def _report_progress(self, status: UpdateStatus, progress: float, message: str) -> None:
        """
        Report progress to the callback if provided.
        """
        self.status = status
        logger.info(f"[{status.value}] {message} ({progress:.0%})")
        if self._progress_callback:
            await self._progress_callback(status, progress, message)

    async def is_online(self) -> bool:
        if not self.config.check_connectivity:
            return True
        return await asyncio.to_thread(has_internet, self.config.connectivity_hosts)

    async def check_for_updates(self) -> ComparisonResult:
        """
        Compare the working version with the incoming one.

        Returns:
            ComparisonResult: The verdict, also kept in ``self.check``.

        Raises:
            ManifestNotFound: If the working manifest is missing.
            ManifestUnreachable: If the incoming manifest cannot be fetched.
            VersionArityMismatch: If the version numbers cannot be compared.
        """
        await self._report_progress(UpdateStatus.CHECKING, 0.0, "Checking for updates...")

        working = await load_working_version(self.config.manifest_path)
        logger.info(f"Working version:\n{working}")
        incoming = await fetch_incoming_version(
            self.config.remote_manifest_url, timeout=self.config.request_timeout)

        self.check = cross_check(working, incoming, ordering=self.ordering)
        if self.check.is_newer:
            await self._report_progress(
                UpdateStatus.UPDATE_AVAILABLE, 1.0,
                f"Update available: {incoming.version_number}")
        else:
            await self._report_progress(
                UpdateStatus.UP_TO_DATE, 1.0,
                f"Update not required: {working.version_number}")
        return self.check

    async def assemble(self, descriptor: VersionDescriptor) -> Optional[Path]:
        """
        Build the update archive for a release in the working directory.

        Returns:
            Path of the archive, or None when the release lists no sources.
        """
        assembler = PackageAssembler(
            descriptor,
            temp_root=self.config.temp_root,
            timeout=self.config.request_timeout,
            progress_callback=self._progress_callback,
            show_progress=self.config.show_progress,
        )
        return await assembler.assemble(
            archive_name=self.config.archive_name,
            unpack_nested=self.config.unpack_nested,
            destination=self.config.working_dir,
        )

    async def start(self, descriptor: VersionDescriptor) -> Optional[subprocess.Popen]:
        """
        Assemble a release and hand it over to the companion.

        The launcher terminates this process once the companion runs.

        Returns:
            None when there was nothing to assemble.
        """
        self.launcher.purge_old_update()
        archive = await self.assemble(descriptor)
        if archive is None:
            return None

        await self._report_progress(UpdateStatus.LAUNCHING, 1.0, "Starting companion...")
        return self.launcher.launch(
            archive,
            self.config.working_dir,
            self.config.restart,
            self.config.wait_for_input,
        )

    async def update(self) -> CallerExitCode:
        """
        Execute one full update cycle.

        Returns:
            CallerExitCode: UNAVAILABLE without connectivity or manifests,
            NOT_REQUIRED when no newer version exists, HANDOFF when the
            companion took over.

        Raises:
            VersionArityMismatch, ArchiveAssemblyError, LaunchError: On fatal errors.
        """
        if not await self.is_online():
            await self._report_progress(
                UpdateStatus.FAILED, 0.0, "No internet connection found to complete an update.")
            return CallerExitCode.UNAVAILABLE

        try:
            check = await self.check_for_updates()
        except ManifestError as e:
            await self._report_progress(UpdateStatus.FAILED, 0.0, str(e))
            return CallerExitCode.UNAVAILABLE

        if not check.is_newer:
            return CallerExitCode.NOT_REQUIRED

        try:
            process = await self.start(check.newest)
        except UpdaterError as e:
            await self._report_progress(UpdateStatus.FAILED, 0.0, f"Update process failed: {e}")
            raise

        if process is None:
            logger.info("Incoming version lists no files, nothing to apply")
            return CallerExitCode.NOT_REQUIRED
        return CallerExitCode.HANDOFF
