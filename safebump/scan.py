"""Outdated-dependency detection for a single manifest."""

import logging
from collections.abc import Callable

from .classify import classify_update, is_outdated
from .ecosystems import handler_for
from .models import DeclaredDependency, Ecosystem, ManifestFile, ResolvedUpdate
from .resolve import VersionResolver, normalize_resolved

logger = logging.getLogger(__name__)


async def check_dependency(
    dependency: DeclaredDependency, ecosystem: Ecosystem, resolver: VersionResolver
) -> ResolvedUpdate | None:
    """Return an update when the registry has something newer than the declared version.

    Lookup and comparison failures are logged and yield None.
    """
    try:
        latest = normalize_resolved(await resolver.resolve_latest_version(dependency.name, ecosystem))
    except Exception as e:
        logger.warning("Version lookup for %s (%s) failed: %s", dependency.name, ecosystem.value, e)
        return None
    if latest is None:
        return None

    current = dependency.current_version or dependency.spec
    try:
        if not is_outdated(current, latest):
            return None
        tier = classify_update(current, latest)
    except Exception as e:
        logger.warning("Could not compare %s versions %r and %r: %s", dependency.name, current, latest, e)
        return None

    logger.debug("%s is outdated: %s -> %s (%s)", dependency.name, dependency.spec, latest, tier.value)
    return ResolvedUpdate(dependency=dependency, latest_version=latest, tier=tier)


async def scan_manifest(
    manifest: ManifestFile,
    resolver: VersionResolver,
    is_ignored: Callable[[Ecosystem, str], bool] | None = None,
) -> list[ResolvedUpdate]:
    """Extract, resolve and classify every dependency of a manifest, one at a time.

    Raises:
        ManifestParseError: If the manifest cannot be parsed at all
    """
    dependencies = handler_for(manifest.ecosystem).extract(manifest)

    updates = []
    for dependency in dependencies:
        if is_ignored and is_ignored(manifest.ecosystem, dependency.name):
            logger.debug("Ignoring %s in %s", dependency.name, manifest.path)
            continue
        update = await check_dependency(dependency, manifest.ecosystem, resolver)
        if update is not None:
            updates.append(update)
    return updates
