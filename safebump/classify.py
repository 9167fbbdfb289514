"""Version normalization and update-tier classification.

Registry and manifest version strings are not guaranteed to be well-formed
semantic versions: they carry range operators (``^1.2.0``, ``>=2.0``), leading
zeros (``1.02.3``), fewer than three components (``4.1``) or stray suffixes
(``2.0.0-beta``). Everything here reduces such strings to a plain
``major.minor.patch`` triple before comparing.
"""

import logging
import re

from packaging.version import InvalidVersion, Version

from .errors import VersionNormalizationError
from .models import UpdateTier

logger = logging.getLogger(__name__)

_NON_VERSION_CHARS = re.compile(r"[^0-9.]")


def normalize_version(raw: str | None) -> str:
    """Reduce a version string to a ``major.minor.patch`` triple.

    Args:
        raw: Version string as declared or as returned by a registry

    Returns:
        Normalized version, e.g. ``"1.2.0"`` for ``"^1.02"``

    Raises:
        VersionNormalizationError: If the sanitized string still cannot be
            read as at most three numeric components
    """
    cleaned = _NON_VERSION_CHARS.sub("", raw or "")
    if not cleaned:
        return "0.0.0"

    components = cleaned.split(".")
    if len(components) > 3:
        raise VersionNormalizationError(f"Too many version components in {raw!r}")

    try:
        numbers = [str(int(component)) for component in components]
    except ValueError:
        raise VersionNormalizationError(f"Empty version component in {raw!r}")

    while len(numbers) < 3:
        numbers.append("0")

    return ".".join(numbers)


def version_triple(raw: str | None) -> tuple[int, int, int]:
    """Return the normalized version as an integer triple."""
    major, minor, patch = normalize_version(raw).split(".")
    return int(major), int(minor), int(patch)


def compare_versions(current: str | None, latest: str | None) -> int:
    """Compare two version strings after normalization.

    Returns:
        Negative if current < latest, zero if equal, positive if current > latest
    """
    try:
        current_version = Version(normalize_version(current))
        latest_version = Version(normalize_version(latest))
    except InvalidVersion as e:
        raise VersionNormalizationError(str(e))

    if current_version < latest_version:
        return -1
    if current_version > latest_version:
        return 1
    return 0


def classify_update(current: str | None, latest: str | None) -> UpdateTier:
    """Classify the distance between current and latest.

    The first component in which latest is ahead decides the tier; a change
    that only touches the patch component (or nothing comparable) is a patch.
    """
    try:
        current_major, current_minor, _ = version_triple(current)
        latest_major, latest_minor, _ = version_triple(latest)
    except VersionNormalizationError as e:
        logger.debug("Cannot classify %r -> %r: %s", current, latest, e)
        return UpdateTier.UNKNOWN

    if latest_major > current_major:
        return UpdateTier.MAJOR
    if latest_minor > current_minor:
        return UpdateTier.MINOR
    return UpdateTier.PATCH


def is_outdated(current: str | None, latest: str | None) -> bool:
    """Check whether latest is strictly newer than current.

    Pairs that only differ in formatting (``1.02.3`` vs ``1.2.3``) are not
    outdated. When either side cannot be normalized (``2.0.0-rc.1``), only the
    leading three numeric components are compared, so such a dependency still
    reaches the security gate with an ``unknown`` tier but never as a downgrade.
    """
    if not latest:
        return False

    try:
        return compare_versions(current, latest) < 0
    except VersionNormalizationError:
        return _leading_triple(latest) > _leading_triple(current)


def _leading_triple(raw: str | None) -> tuple[int, int, int]:
    numbers = []
    for component in _NON_VERSION_CHARS.sub("", raw or "").split(".")[:3]:
        if not component:
            break
        numbers.append(int(component))
    while len(numbers) < 3:
        numbers.append(0)
    return tuple(numbers)
