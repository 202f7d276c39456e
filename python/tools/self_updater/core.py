# core.py
"""Synchronous wrapper for the async SelfUpdater implementation."""
import asyncio
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .launcher import HandoffLauncher
from .models import CallerExitCode, ComparisonResult, UpdaterConfig, VersionDescriptor
from .updater import SelfUpdater as AsyncSelfUpdater
from .version import Ordering


class Updater:
    """
    Synchronous wrapper for the async SelfUpdater class.
    Provides the same functionality but with a synchronous API.
    """

    def __init__(
        self,
        config: Union[UpdaterConfig, Dict[str, Any]],
        launcher: Optional[HandoffLauncher] = None,
        ordering: Ordering = "any_segment",
    ):
        """
        Initialize the updater.

        Args:
            config: UpdaterConfig or configuration dictionary.
            launcher: Launcher used for the handoff.
            ordering: Version ordering used by the comparison.
        """
        self.config = config if isinstance(config, UpdaterConfig) else UpdaterConfig(**config)
        self._async_updater = AsyncSelfUpdater(self.config, launcher=launcher, ordering=ordering)

    def _run_async(self, coro):
        """Run an async coroutine synchronously."""
        return asyncio.run(coro)

    def check_for_updates(self) -> ComparisonResult:
        """
        Compare the working version with the incoming one.

        Returns:
            ComparisonResult: The comparison verdict.
        """
        return self._run_async(self._async_updater.check_for_updates())

    def assemble(self, descriptor: VersionDescriptor) -> Optional[Path]:
        """
        Build the update archive for a release.

        Args:
            descriptor: Release to assemble.

        Returns:
            Optional[Path]: Archive path, None when there is nothing to do.
        """
        return self._run_async(self._async_updater.assemble(descriptor))

    def start(self, descriptor: VersionDescriptor):
        """Assemble a release and hand it over to the companion."""
        return self._run_async(self._async_updater.start(descriptor))

    def update(self) -> CallerExitCode:
        """
        Run the full update cycle.

        Returns:
            CallerExitCode: Outcome of the cycle.
        """
        return self._run_async(self._async_updater.update())

    def purge_old_update(self) -> None:
        """Remove companion artifacts left by an earlier update."""
        self._async_updater.launcher.purge_old_update()

    @property
    def check(self) -> Optional[ComparisonResult]:
        """The last comparison verdict."""
        return self._async_updater.check
