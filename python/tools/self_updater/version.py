# version.py
from typing import Literal, Tuple

from .exceptions import VersionArityMismatch
from .models import ComparisonResult, VersionDescriptor

Ordering = Literal["any_segment", "conventional"]


def parse_version_points(version_str: str) -> Tuple[int, ...]:
    """
    Parse a dotted version string into its integer segments.

    Segments that are not integers are skipped.

    Args:
        version_str: Version string (e.g., "1.2.0.1")

    Returns:
        Tuple of integers representing the version components

    Example:
        >>> parse_version_points("1.2.0.1")
        (1, 2, 0, 1)
    """
    points = []
    for part in version_str.split("."):
        try:
            points.append(int(part.strip()))
        except ValueError:
            continue
    return tuple(points)


def _any_segment_newer(current: Tuple[int, ...], incoming: Tuple[int, ...]) -> bool:
    # Incoming wins as soon as one of its segments exceeds the working one,
    # whatever the earlier segments said.
    for cur, inc in zip(current, incoming):
        if inc > cur:
            return True
    return False


def compare_versions(current: str, incoming: str,
                     ordering: Ordering = "any_segment") -> bool:
    """
    Decide whether an incoming version number is newer than the current one.

    With the default "any_segment" ordering the incoming version is newer
    if any of its segments is greater than the matching current segment,
    so "1.4.9" counts as newer than "1.5.0". "conventional" compares the
    leftmost differing segment instead.

    Args:
        current: Working version number
        incoming: Incoming version number
        ordering: "any_segment" or "conventional"

    Returns:
        True if the incoming version is newer.

    Raises:
        VersionArityMismatch: If the segment counts differ.
    """
    current_points = parse_version_points(current)
    incoming_points = parse_version_points(incoming)

    if len(current_points) != len(incoming_points):
        raise VersionArityMismatch(current, incoming)

    if ordering == "conventional":
        return incoming_points > current_points
    if ordering != "any_segment":
        raise ValueError(f"Unknown version ordering: {ordering!r}")
    return _any_segment_newer(current_points, incoming_points)


def cross_check(working: VersionDescriptor, incoming: VersionDescriptor,
                ordering: Ordering = "any_segment") -> ComparisonResult:
    """
    Compare a working version descriptor with an incoming one.

    Versions are the same when their version strings are textually equal;
    otherwise compare_versions() decides.
    """
    same = working.version_number == incoming.version_number
    is_newer = False if same else compare_versions(
        working.version_number, incoming.version_number, ordering)

    return ComparisonResult(
        working=working,
        incoming=incoming,
        newest=incoming if is_newer else working,
        same=same,
        is_newer=is_newer,
    )
