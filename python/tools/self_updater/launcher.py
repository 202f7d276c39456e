# launcher.py
"""Writes out the companion process and hands the update over to it."""

import json
import os
import platform
import subprocess
import sys
from importlib import resources
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from loguru import logger

from .exceptions import LaunchError
from .models import PathLike
from .unpacker import (
    COMPANION_NAME, LOG_SUFFIX, RUNTIME_CONFIG_SUFFIX, HandoffArgs, detached_popen_kwargs
)

PAYLOAD_RESOURCE = "unpacker.py"


def current_executable() -> str:
    """
    Full path of the program to restart once the update is applied.

    Frozen applications restart their own executable; scripts restart the
    entry script, which the companion runs with the same interpreter.
    """
    if getattr(sys, "frozen", False):
        return str(Path(sys.executable).resolve())
    if sys.argv and sys.argv[0]:
        script = Path(sys.argv[0])
        if script.is_file():
            return str(script.resolve())
    return str(Path(sys.executable).resolve())


def main_module() -> Optional[Tuple[str, str]]:
    """Module name and file this program was started from with ``python -m``, if any."""
    if getattr(sys, "frozen", False):
        return None
    spec = getattr(sys.modules.get("__main__"), "__spec__", None)
    if spec is None or not spec.name or not spec.origin:
        return None
    name = spec.name
    if name.endswith(".__main__"):
        name = name[: -len(".__main__")]
    return name, str(Path(spec.origin).resolve())


class HandoffLauncher:
    """
    Starts the companion that replaces the application's files.

    The companion is written into the working directory as three
    artifacts: the payload script, its runtime configuration and, once it
    has run, its log. purge_old_update() removes all of them.
    """

    def __init__(
        self,
        working_dir: Optional[PathLike] = None,
        *,
        interpreter: Optional[str] = None,
        exit_func: Callable[[int], None] = sys.exit,
    ):
        """
        Args:
            working_dir: Directory receiving the companion. Defaults to the
                current working directory.
            interpreter: Python interpreter running the companion.
            exit_func: Called with 0 after the companion started.
        """
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.interpreter = interpreter or sys.executable
        self._exit = exit_func

    @property
    def payload_file(self) -> Path:
        return self.working_dir / f"{COMPANION_NAME}.py"

    @property
    def runtime_config_file(self) -> Path:
        return self.working_dir / f"{COMPANION_NAME}{RUNTIME_CONFIG_SUFFIX}"

    @property
    def log_file(self) -> Path:
        return self.working_dir / f"{COMPANION_NAME}{LOG_SUFFIX}"

    @property
    def artifacts(self) -> List[Path]:
        return [self.payload_file, self.runtime_config_file, self.log_file]

    def purge_old_update(self) -> List[Path]:
        """
        Remove companion artifacts left by an earlier update.

        Safe to call when nothing exists.

        Returns:
            The files that were deleted.
        """
        removed = []
        for artifact in self.artifacts:
            if artifact.is_file():
                artifact.unlink()
                removed.append(artifact)
                logger.debug(f"Removed stale {artifact.name}")
        return removed

    def runtime_config(self) -> dict:
        options = {
            "implementation": platform.python_implementation().lower(),
            "version": platform.python_version(),
            "executable": self.interpreter,
        }
        module = main_module()
        if module is not None:
            # a package's __main__.py cannot run as a plain script
            options["restartModule"], options["restartScript"] = module
            options["restartCwd"] = os.getcwd()
        return {"runtimeOptions": options}

    def write_companion(self) -> Path:
        """
        Write the companion payload and its runtime configuration.

        Returns:
            Path of the payload script.
        """
        payload = resources.files(__package__).joinpath(PAYLOAD_RESOURCE).read_bytes()

        self.working_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Creating... {self.payload_file}")
        self.payload_file.write_bytes(payload)

        logger.info(f"Creating... {self.runtime_config_file}")
        with open(self.runtime_config_file, "w", encoding="utf-8") as f:
            json.dump(self.runtime_config(), f, indent=2)

        return self.payload_file

    def build_arguments(
        self,
        archive_path: PathLike,
        destination: PathLike,
        restart_after: bool = False,
        wait_for_input: bool = False,
    ) -> HandoffArgs:
        """Build the five-argument handoff message for this process."""
        return HandoffArgs(
            archive_path=Path(archive_path).resolve(),
            destination_path=Path(destination).resolve(),
            caller_pid=str(os.getpid()),
            wait_for_input=wait_for_input,
            restart_path=current_executable() if restart_after else "",
        )

    def create_process(self, args: HandoffArgs) -> subprocess.Popen:
        """Start the companion as a detached, windowless process."""
        command = [self.interpreter, str(self.payload_file), *args.to_argv()]
        logger.debug(f"Starting companion: {command}")
        return subprocess.Popen(
            command,
            cwd=str(self.working_dir),
            stdin=None if args.wait_for_input else subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            close_fds=True,
            **detached_popen_kwargs(),
        )

    def launch(
        self,
        archive_path: PathLike,
        destination: Optional[PathLike] = None,
        restart_after: bool = False,
        wait_for_input: bool = False,
    ) -> subprocess.Popen:
        """
        Hand the update over to the companion and terminate this process.

        Args:
            archive_path: Archive the companion extracts.
            destination: Directory receiving the files. Defaults to the
                working directory.
            restart_after: Pass this program as the restart target.
            wait_for_input: Make the companion wait for a key press at exit.

        Returns:
            The companion process, only if exit_func returns.

        Raises:
            LaunchError: If the companion cannot be written or started.
        """
        try:
            self.purge_old_update()
            self.write_companion()
            args = self.build_arguments(
                archive_path, destination or self.working_dir, restart_after, wait_for_input)
            process = self.create_process(args)
        except OSError as e:
            raise LaunchError(f"Failed to start the update companion: {e}", original_error=e) from e

        logger.info(f"Companion started (pid {process.pid}), closing environment...")
        self._exit(0)
        return process
