#!/usr/bin/env python3
"""
Update Unpacker - companion process of the self updater.

The running application cannot replace its own files, so it writes this
module out next to itself, starts it and exits. The unpacker then:

1. Parses the five positional arguments handed over by the launcher.
2. Waits for the calling process to exit, killing it if needed.
3. Validates the update archive.
4. Extracts the archive into the destination and deletes it.
5. Restarts the original program when asked to.

This file is copied verbatim into the application's working directory
before it runs, so it must not import anything from the ``self_updater``
package.

Usage:
    python update_unpacker.py <archive> <destination> <pid> <wait> <restart>
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
import time
import zipfile
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import psutil
from loguru import logger

ARG_COUNT = 5
ARCHIVE_EXTENSION = ".zip"
HEARTBEAT_SECONDS = 5.0
RUNTIME_CONFIG_SUFFIX = ".runtimeconfig.json"
LOG_SUFFIX = ".log"
COMPANION_NAME = "update_unpacker"


class UnpackerExitCode(IntEnum):
    """Exit codes reported by the companion process."""

    SUCCESS = 1
    USAGE = -1
    ARCHIVE_INVALID = -3
    EXTRACTION_FAILED = -4
    INTERACTIVE_DECLINED = -100


class HandoffError(Exception):
    """Base exception for failures inside the companion process."""

    exit_code: UnpackerExitCode = UnpackerExitCode.USAGE

    def __init__(self, message: str, *, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "exit_code": int(self.exit_code),
            "original_error": str(self.original_error) if self.original_error else None,
        }


class HandoffUsageError(HandoffError):
    """Wrong number of positional arguments."""

    exit_code = UnpackerExitCode.USAGE


class InteractiveInputDeclined(HandoffError):
    """Interactive mode was left without an archive or destination."""

    exit_code = UnpackerExitCode.INTERACTIVE_DECLINED


class CallerLookupFailure(HandoffError):
    """The caller id is invalid or the process is already gone. Never fatal."""


class ArchiveInvalid(HandoffError):
    """The archive is missing or does not carry the archive extension."""

    exit_code = UnpackerExitCode.ARCHIVE_INVALID


class ExtractionFailure(HandoffError):
    """The archive could not be extracted into the destination."""

    exit_code = UnpackerExitCode.EXTRACTION_FAILED


def parse_flag(value: str, default: bool = True) -> bool:
    """Parse a ``true``/``false`` string, falling back to ``default``."""
    normalized = (value or "").strip().lower()
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    return default


@dataclass(frozen=True)
class HandoffArgs:
    """The message handed from the launcher to the companion."""

    archive_path: Path
    destination_path: Path
    caller_pid: str = ""
    wait_for_input: bool = False
    restart_path: str = ""

    @classmethod
    def parse(cls, argv: Sequence[str]) -> "HandoffArgs":
        """
        Build the handoff message from exactly five positional arguments.

        Raises:
            HandoffUsageError: If the argument count is not five.
        """
        if len(argv) != ARG_COUNT:
            raise HandoffUsageError(
                f"Cannot begin unpacking without the correct argument count "
                f"(required: {ARG_COUNT}, provided: {len(argv)})"
            )
        archive, destination, pid, wait, restart = argv
        return cls(
            archive_path=Path(archive),
            destination_path=Path(destination),
            caller_pid=pid.strip(),
            wait_for_input=parse_flag(wait, default=True),
            restart_path=restart.strip(),
        )

    @property
    def pid(self) -> Optional[int]:
        """The caller's numeric process id, or None when unusable."""
        if not self.caller_pid:
            return None
        try:
            pid = int(self.caller_pid)
        except ValueError:
            return None
        return pid if pid > 0 else None

    def to_argv(self) -> List[str]:
        return [
            str(self.archive_path),
            str(self.destination_path),
            self.caller_pid,
            "true" if self.wait_for_input else "false",
            self.restart_path,
        ]


@dataclass
class HandoffState:
    """Mutable state owned by a single handoff run."""

    caller_exited: bool = False
    caller_name: Optional[str] = None
    wait_started: Optional[float] = None
    heartbeats: int = 0
    extracted_files: List[str] = field(default_factory=list)
    restarted: Optional[subprocess.Popen] = None


def load_runtime_config(payload_path: Path) -> Dict[str, Any]:
    """Read the runtime descriptor the launcher wrote beside the payload."""
    config_path = payload_path.with_name(payload_path.stem + RUNTIME_CONFIG_SUFFIX)
    if not config_path.is_file():
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            return json.load(f).get("runtimeOptions", {})
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable runtime config {config_path}: {e}")
        return {}


class HandoffCoordinator:
    """
    Runs one handoff inside the companion process.

    The coordinator owns its state for the lifetime of the run; nothing is
    shared through module globals.
    """

    def __init__(
        self,
        args: HandoffArgs,
        *,
        interpreter: Optional[str] = None,
        heartbeat_seconds: float = HEARTBEAT_SECONDS,
        caller_timeout: Optional[float] = None,
        restart_module: Optional[str] = None,
        restart_script: Optional[str] = None,
        restart_cwd: Optional[str] = None,
    ):
        """
        Args:
            args: Parsed handoff arguments.
            interpreter: Python used to restart a ``.py`` restart target.
            heartbeat_seconds: Interval of the "still waiting" notice.
            caller_timeout: Give up waiting for the caller after this many
                seconds. None waits indefinitely.
            restart_module: Module to run with ``-m`` when the restart
                target is restart_script.
            restart_script: File the restart module was started from.
            restart_cwd: Working directory of a module restart.
        """
        self.args = args
        self.interpreter = interpreter or sys.executable
        self.heartbeat_seconds = heartbeat_seconds
        self.caller_timeout = caller_timeout
        self.restart_module = restart_module
        self.restart_script = restart_script
        self.restart_cwd = restart_cwd
        self.state = HandoffState()

    def _on_caller_exit(self, proc: psutil.Process) -> None:
        self.state.caller_exited = True
        logger.success(f"Calling process {proc.pid} exited")

    def await_caller(self) -> None:
        """Block until the calling process is gone."""
        pid = self.args.pid
        if pid is None or pid == os.getpid():
            self.state.caller_exited = True
            return

        try:
            caller = psutil.Process(pid)
            self.state.caller_name = caller.name()
        except psutil.Error as e:
            self._caller_gone(CallerLookupFailure(
                f"Did not find '{pid}' as a running process", original_error=e))
            return

        self.state.wait_started = time.monotonic()
        logger.info(f"Waiting for '{self.state.caller_name}' ({pid}) to exit...")

        try:
            if caller.is_running():
                caller.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.Error as e:
            logger.warning(f"Could not kill process {pid}: {e}")

        while not self.state.caller_exited:
            try:
                _, alive = psutil.wait_procs(
                    [caller], timeout=self.heartbeat_seconds, callback=self._on_caller_exit
                )
            except psutil.Error as e:
                self._caller_gone(CallerLookupFailure(
                    f"Lost track of process {pid}", original_error=e))
                break

            if not alive:
                self.state.caller_exited = True
                break

            self.state.heartbeats += 1
            waited = time.monotonic() - self.state.wait_started
            if self.caller_timeout is not None and waited >= self.caller_timeout:
                logger.warning(
                    f"Process {pid} still running after {waited:.0f}s, continuing anyway")
                break
            logger.warning(
                f"{self.heartbeat_seconds:g} second tick: waiting for calling process to exit...")

    def _caller_gone(self, error: CallerLookupFailure) -> None:
        logger.warning(f"{error} ({error.original_error}), treating it as exited")
        self.state.caller_exited = True

    def validate(self) -> None:
        """
        Raises:
            ArchiveInvalid: If the archive is missing or not a zip file.
            ExtractionFailure: If the destination cannot be created.
        """
        archive = self.args.archive_path
        if not archive.is_file() or archive.suffix.lower() != ARCHIVE_EXTENSION:
            raise ArchiveInvalid(f"'{archive}' either does not exist or is not a zip file")

        destination = self.args.destination_path
        if not destination.is_dir():
            try:
                destination.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ExtractionFailure(
                    f"Cannot create destination '{destination}': {e}", original_error=e
                ) from e
            logger.info(f"Created '{destination}' as it did not exist")

    def extract(self) -> None:
        """
        Extract the archive into the destination, overwriting existing files.

        The archive is tested before any file is written so a corrupt
        archive leaves the destination untouched.

        Raises:
            ExtractionFailure: If the archive is corrupt or an I/O error occurs.
        """
        archive = self.args.archive_path
        try:
            with zipfile.ZipFile(archive, "r") as zf:
                bad_member = zf.testzip()
                if bad_member is not None:
                    raise zipfile.BadZipFile(f"CRC check failed for '{bad_member}'")
                zf.extractall(self.args.destination_path)
                self.state.extracted_files = zf.namelist()
        except (zipfile.BadZipFile, OSError, RuntimeError, EOFError) as e:
            raise ExtractionFailure(
                f"Extraction of '{archive}' was not successful: {e}", original_error=e
            ) from e

        logger.success(f"Extracted {len(self.state.extracted_files)} entries")
        try:
            archive.unlink()
        except OSError as e:
            logger.warning(f"Extraction succeeded but '{archive}' could not be deleted: {e}")
            return
        logger.info("Deleted archive as extraction was successful")

    def _is_restart_script(self, target: Path) -> bool:
        if not self.restart_script:
            return False
        return target.resolve() == Path(self.restart_script).resolve()

    def restart(self) -> Optional[subprocess.Popen]:
        """Start the restart target, if it exists. Not awaited."""
        if not self.args.restart_path:
            return None
        target = Path(self.args.restart_path)
        if not target.is_file():
            logger.info(f"Restart target '{target}' not found, skipping restart")
            return None

        command = [str(target)]
        cwd = str(target.parent)
        if target.suffix.lower() in (".py", ".pyw"):
            if self.restart_module and self._is_restart_script(target):
                command = ["-m", self.restart_module]
                cwd = self.restart_cwd or cwd
            command.insert(0, self.interpreter)

        logger.info(f"Restarting {target}")
        try:
            self.state.restarted = subprocess.Popen(
                command, cwd=cwd, close_fds=True, **detached_popen_kwargs()
            )
        except OSError as e:
            logger.error(f"Could not restart '{target}': {e}")
            return None
        return self.state.restarted

    def run(self) -> UnpackerExitCode:
        """
        Drive the handoff state machine.

        Raises:
            ArchiveInvalid, ExtractionFailure: On fatal conditions.
        """
        self.await_caller()
        self.validate()
        self.extract()
        self.restart()
        return UnpackerExitCode.SUCCESS


def detached_popen_kwargs() -> Dict[str, Any]:
    if os.name == "nt":
        flags = (
            getattr(subprocess, "DETACHED_PROCESS", 0)
            | getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
            | getattr(subprocess, "CREATE_NO_WINDOW", 0)
        )
        return {"creationflags": flags}
    return {"start_new_session": True}


def _prompt(message: str) -> Optional[str]:
    try:
        answer = input(message)
    except EOFError:
        return None
    return answer.strip() or None


def prompt_arguments() -> List[str]:
    """
    Ask for the handoff arguments on the console.

    Raises:
        InteractiveInputDeclined: If the archive or destination is left empty.
    """
    archive = _prompt("ZIP File: ")
    destination = _prompt("Destination: ")
    pid = _prompt("Process ID (Optional): ") or ""
    wait = _prompt("Wait For Input true/false: ") or "true"
    restart = _prompt("Program to restart (Optional): ") or ""

    if archive is None or destination is None:
        raise InteractiveInputDeclined("Cannot leave ZIP or Destination empty")
    return [archive, destination, pid, wait, restart]


def _wait_for_key(enabled: bool) -> None:
    if not enabled:
        return
    try:
        input("Press Enter to exit...")
    except EOFError:
        pass


def setup_logging(log_file: Optional[Path] = None, level: str = "INFO") -> None:
    """Install the companion's console and file sinks."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=level,
        colorize=True,
    )
    if log_file is not None:
        logger.add(
            str(log_file),
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Companion entry point.

    Returns:
        int: One of the UnpackerExitCode values.
    """
    payload = Path(__file__).resolve()
    # Only the copy written out by the launcher keeps a log beside itself
    setup_logging(payload.with_suffix(LOG_SUFFIX) if payload.stem == COMPANION_NAME else None)
    argv = list(sys.argv[1:] if argv is None else argv)

    wait_for_input = False
    try:
        if not argv:
            argv = prompt_arguments()
        args = HandoffArgs.parse(argv)
        wait_for_input = args.wait_for_input

        runtime = load_runtime_config(payload)
        coordinator = HandoffCoordinator(
            args,
            interpreter=runtime.get("executable"),
            restart_module=runtime.get("restartModule"),
            restart_script=runtime.get("restartScript"),
            restart_cwd=runtime.get("restartCwd"),
        )
        code = coordinator.run()
    except HandoffError as e:
        cause = f" ({e.original_error})" if e.original_error else ""
        logger.error(f"{e}{cause}")
        code = e.exit_code
    except OSError as e:
        logger.exception(f"Unexpected I/O failure during the handoff: {e}")
        code = UnpackerExitCode.EXTRACTION_FAILED

    _wait_for_key(wait_for_input)
    return int(code)


if __name__ == "__main__":
    sys.exit(main())
