# packaging.py
"""Assembles the update archive from remote, directory and file sources."""

import asyncio
import shutil
import tempfile
import zipfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiohttp
from loguru import logger
from tqdm.asyncio import tqdm

from .exceptions import ArchiveAssemblyError
from .models import PathLike, ProgressCallback, UpdateStatus, VersionDescriptor
from .unpacker import ARCHIVE_EXTENSION
from .utils import has_extension, safe_name, url_file_name

CHUNK_SIZE = 64 * 1024

# Errors that abort assembly; anything else is a programming error and propagates as is
_ASSEMBLY_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
    shutil.Error,
    zipfile.BadZipFile,
)


def unpack_nested_archive(archive_path: Path) -> bool:
    """
    Extract an archive next to itself and delete it.

    Files without the archive extension are left alone.

    Returns:
        True if the file was an archive and has been unpacked.
    """
    if not has_extension(archive_path, ARCHIVE_EXTENSION):
        logger.debug(f"{archive_path.name} is not a {ARCHIVE_EXTENSION}, leaving it as is")
        return False

    parent = archive_path.resolve().parent
    logger.debug(f"Unpacking {archive_path.name} into {parent}")
    with zipfile.ZipFile(archive_path, "r") as zf:
        zf.extractall(parent)
    archive_path.unlink()
    return True


def copy_folder(source: Path, dest: Path) -> None:
    """Recursively copy a directory's files and subdirectories, overwriting files."""
    dest.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, dest, dirs_exist_ok=True)


def compress_directory(source_dir: Path, archive_path: Path) -> Path:
    """
    Compress a directory's contents into a zip archive.

    Entries are stored relative to source_dir, empty directories included.
    An existing archive at archive_path is replaced.
    """
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    if archive_path.exists():
        archive_path.unlink()

    with zipfile.ZipFile(
        archive_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as zf:
        for path in sorted(source_dir.rglob("*")):
            zf.write(path, path.relative_to(source_dir).as_posix())
    return archive_path


@asynccontextmanager
async def staging_directory(path: Path) -> AsyncIterator[Path]:
    """
    Provide a fresh staging directory and remove it on every exit path.

    A stale directory left by an earlier attempt is deleted first.
    """
    if path.exists():
        logger.debug(f"Removing stale staging directory {path}")
        await asyncio.to_thread(shutil.rmtree, path)
    await asyncio.to_thread(path.mkdir, parents=True)
    try:
        yield path
    finally:
        await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)
        if path.exists():
            logger.warning(f"Could not fully remove staging directory {path}")
        else:
            logger.debug(f"Deleted staging directory {path}")


class PackageAssembler:
    """
    Gathers every source of a release into one archive.

    Sources are handled in a fixed order: remote URLs, then local
    directories, then local files. Each group completes before the next
    one starts.
    """

    def __init__(
        self,
        descriptor: VersionDescriptor,
        *,
        temp_root: Optional[PathLike] = None,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
        progress_callback: Optional[ProgressCallback] = None,
        show_progress: bool = False,
    ):
        """
        Args:
            descriptor: Release whose sources are assembled.
            temp_root: Parent of the staging directory. Defaults to the
                system temp directory.
            timeout: Total timeout of each download in seconds.
            session: Optional HTTP session to reuse for downloads.
            progress_callback: Optional async progress callback.
            show_progress: Show tqdm progress bars for downloads.
        """
        self.descriptor = descriptor
        self.temp_root = Path(temp_root) if temp_root else Path(tempfile.gettempdir())
        self.timeout = timeout
        self._session = session
        self._progress_callback = progress_callback
        self.show_progress = show_progress

    @property
    def staging_dir(self) -> Path:
        """Deterministic staging path keyed by release name and version."""
        d = self.descriptor
        name = d.version_name or d.product_name
        return self.temp_root / safe_name(f"{name}_{d.version_number}")

    async def _report_progress(self, status: UpdateStatus, progress: float, message: str) -> None:
        logger.info(f"[{status.value}] {message}")
        if self._progress_callback:
            await self._progress_callback(status, progress, message)

    async def download(self, session: aiohttp.ClientSession, url: str, staging: Path) -> Path:
        """Download one remote source into the staging directory under its file name."""
        target = staging / url_file_name(url)
        async with session.get(url) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("content-length", 0))
            with tqdm(total=total_size, unit="B", unit_scale=True,
                      desc=target.name, disable=not self.show_progress) as pbar:
                async with aiofiles.open(target, "wb") as f:
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        await f.write(chunk)
                        pbar.update(len(chunk))
        logger.debug(f"Downloaded {url} to {target}")
        return target

    async def _gather_remote(self, staging: Path, unpack_nested: bool) -> None:
        urls = self.descriptor.remote_sources
        if not urls:
            return

        session = self._session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout))
        try:
            for i, url in enumerate(urls):
                await self._report_progress(
                    UpdateStatus.DOWNLOADING, i / len(urls), f"Downloading {url}")
                try:
                    downloaded = await self.download(session, url, staging)
                    if unpack_nested:
                        await asyncio.to_thread(unpack_nested_archive, downloaded)
                except _ASSEMBLY_ERRORS as e:
                    raise ArchiveAssemblyError(
                        f"Failed to download {url}: {e}", source=url, original_error=e) from e
        finally:
            if self._session is None:
                await session.close()

    async def _gather_directories(self, staging: Path) -> None:
        for directory in self.descriptor.directory_sources:
            source = Path(directory)
            await self._report_progress(UpdateStatus.COPYING, 0.0, f"Copying directory {source}")
            try:
                await asyncio.to_thread(copy_folder, source, staging / source.resolve().name)
            except _ASSEMBLY_ERRORS as e:
                raise ArchiveAssemblyError(
                    f"Failed to copy directory {source}: {e}", source=directory,
                    original_error=e) from e

    async def _gather_files(self, staging: Path, unpack_nested: bool) -> None:
        for file in self.descriptor.file_sources:
            source = Path(file)
            await self._report_progress(UpdateStatus.COPYING, 0.0, f"Copying file {source}")
            try:
                copied = Path(await asyncio.to_thread(shutil.copy2, source, staging / source.name))
                if unpack_nested:
                    await asyncio.to_thread(unpack_nested_archive, copied)
            except _ASSEMBLY_ERRORS as e:
                raise ArchiveAssemblyError(
                    f"Failed to copy file {source}: {e}", source=file, original_error=e) from e

    async def assemble(
        self,
        archive_name: str = "update.zip",
        unpack_nested: bool = True,
        destination: Optional[PathLike] = None,
    ) -> Optional[Path]:
        """
        Materialize all sources in a staging directory and compress it.

        Args:
            archive_name: File name of the resulting archive.
            unpack_nested: Extract archives found among the sources in place.
            destination: Directory receiving the archive. Defaults to the
                current working directory.

        Returns:
            Path of the archive, or None when the release has no sources.

        Raises:
            ArchiveAssemblyError: If a download, copy or compression fails.
                The staging directory is removed in every case.
        """
        if not self.descriptor.sources:
            await self._report_progress(UpdateStatus.ASSEMBLING, 1.0, "No files to download/copy")
            return None

        archive_path = Path(destination or Path.cwd()) / archive_name

        try:
            async with staging_directory(self.staging_dir) as staging:
                await self._report_progress(
                    UpdateStatus.ASSEMBLING, 0.0, f"Created temp directory {staging}")

                await self._gather_remote(staging, unpack_nested)
                await self._gather_directories(staging)
                await self._gather_files(staging, unpack_nested)

                await self._report_progress(
                    UpdateStatus.COMPRESSING, 0.9, f"Compressing data into {archive_path}")
                await asyncio.to_thread(compress_directory, staging, archive_path)
        except ArchiveAssemblyError:
            raise
        except _ASSEMBLY_ERRORS as e:
            raise ArchiveAssemblyError(
                f"Failed to assemble {archive_path}: {e}", original_error=e) from e

        await self._report_progress(UpdateStatus.ASSEMBLING, 1.0, "Complete!")
        return archive_path
