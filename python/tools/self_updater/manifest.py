# manifest.py
"""Reading the working manifest and fetching the incoming one."""

import asyncio
from pathlib import Path
from typing import Optional, Union

import aiofiles
import aiohttp
from loguru import logger
from pydantic import ValidationError

from .exceptions import ManifestNotFound, ManifestUnreachable
from .models import VersionDescriptor
from .utils import is_absolute_url

DEFAULT_MANIFEST_NAME = "ver.upd"


def parse_manifest(content: Union[str, bytes]) -> VersionDescriptor:
    """
    Decode manifest JSON into a VersionDescriptor.

    Raises:
        pydantic.ValidationError: If the document is malformed.
    """
    return VersionDescriptor.model_validate_json(content)


async def load_working_version(
    manifest_path: Union[str, Path] = DEFAULT_MANIFEST_NAME,
    encoding: str = "utf-8",
) -> VersionDescriptor:
    """
    Read the version of the installation from its local manifest.

    Relative paths are resolved against the current working directory.

    Raises:
        ManifestNotFound: If the manifest does not exist or cannot be decoded.
    """
    path = Path(manifest_path)
    if not path.is_absolute():
        path = Path.cwd() / path
    if not path.is_file():
        raise ManifestNotFound(path)

    async with aiofiles.open(path, "r", encoding=encoding) as f:
        content = await f.read()

    try:
        working = parse_manifest(content)
    except ValidationError as e:
        raise ManifestNotFound(path, original_error=e) from e

    logger.debug(f"Working version {working.version_number} read from {path}")
    return working


async def fetch_incoming_version(
    url: Optional[str],
    session: Optional[aiohttp.ClientSession] = None,
    timeout: float = 30.0,
) -> VersionDescriptor:
    """
    Fetch a remote manifest and decode it.

    Args:
        url: Absolute URL of the manifest.
        session: Optional session to reuse.
        timeout: Total request timeout in seconds.

    Raises:
        ManifestUnreachable: If the URL is not absolute, the request fails
            or the body is not a valid manifest.
    """
    if not url or not is_absolute_url(url):
        raise ManifestUnreachable(f"Not an absolute URL: {url!r}", url=url)

    owns_session = session is None
    if owns_session:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout))
    try:
        async with session.get(url) as response:
            response.raise_for_status()
            content = await response.read()
        incoming = parse_manifest(content)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ManifestUnreachable(
            f"Failed to fetch manifest from {url}: {e}", url=url, original_error=e) from e
    except ValidationError as e:
        raise ManifestUnreachable(
            f"Manifest at {url} is not well formed: {e}", url=url, original_error=e) from e
    finally:
        if owns_session:
            await session.close()

    logger.debug(f"Incoming version {incoming.version_number} fetched from {url}")
    return incoming
