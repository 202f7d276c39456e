# utils.py
from pathlib import Path
import re
from typing import Optional
from urllib.parse import unquote, urlsplit

# Characters rejected in file names on at least one supported platform
_INVALID_FILE_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def is_absolute_url(value: str) -> bool:
    """
    Check whether a string is an absolute, well-formed URL.

    Args:
        value: Candidate source string

    Returns:
        True for strings such as "https://host/path/file.zip"
    """
    if not value or any(ch.isspace() for ch in value):
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def url_file_name(url: str) -> Optional[str]:
    """
    Return the decoded last path segment of a URL.

    Example:
        >>> url_file_name("https://example.com/a/My%20File.zip?x=1")
        'My File.zip'
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        return None
    name = unquote(path.rsplit("/", 1)[-1])
    return name or None


def is_valid_file_name(name: Optional[str]) -> bool:
    """Check that a bare file name contains no path separators or reserved characters."""
    if not name or name in (".", ".."):
        return False
    return _INVALID_FILE_NAME_CHARS.search(name) is None


def safe_name(value: str) -> str:
    """Replace characters that cannot appear in a file name."""
    return _INVALID_FILE_NAME_CHARS.sub("_", value).strip() or "update"


def has_extension(path: Path, extension: str) -> bool:
    """Case-insensitive check of a path's final suffix."""
    return path.suffix.lower() == extension.lower()
