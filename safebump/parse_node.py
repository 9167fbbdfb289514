"""Node.js package.json parsing and rewriting."""

import json
import logging
import re
from collections.abc import Iterable

from .errors import ManifestParseError
from .models import DeclaredDependency, DependencyCategory, ManifestFile, ResolvedUpdate

logger = logging.getLogger(__name__)

SECTIONS = {
    DependencyCategory.DEPENDENCY: "dependencies",
    DependencyCategory.DEV_DEPENDENCY: "devDependencies",
}

# Declarations that point at source control or the local filesystem rather
# than at the registry.
NON_REGISTRY_PATTERNS = [
    r"git",  # git+https://, git://, github:user/repo
    r"^(?:file|link|workspace|portal):",
    r"^(?:\.{1,2}|~)?/",  # ./lib, ../lib, /abs, ~/lib
    r"^https?://",  # tarball URLs
    r"^[\w.\-]+/[\w.\-]+(?:#.*)?$",  # user/repo shorthand
]

# Range operators kept in front of a rewritten version.
_RANGE_OPERATOR = re.compile(r"^(?:[\^~]|[<>]=?|=|v|\s)*")


def is_registry_spec(spec: str) -> bool:
    """Check whether a declared expression can be resolved against npm."""
    return not any(re.search(pattern, spec, re.IGNORECASE) for pattern in NON_REGISTRY_PATTERNS)


def has_version_number(spec: str) -> bool:
    """Tags and wildcards (``latest``, ``*``, ``x``) carry no comparable version."""
    return any(ch.isdigit() for ch in spec)


def version_prefix(spec: str) -> str:
    """Return the range operator in front of a declared version (``^``, ``~``, ``>=``).

    Anything that is not a range operator, such as a dist-tag, yields ``""``.
    """
    prefix = _RANGE_OPERATOR.match(spec).group(0)
    rest = spec[len(prefix):]
    if rest and not rest[0].isdigit():
        return ""
    return prefix.strip()


def _load(content: str, path: str = "package.json") -> dict:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ManifestParseError(path, str(e))
    if not isinstance(data, dict):
        raise ManifestParseError(path, "top-level value is not an object")
    return data


def _detect_indent(content: str) -> int | str:
    """Guess the indentation used by the original file, defaulting to two spaces."""
    match = re.search(r"^[{\[][ \t]*\r?\n([ \t]+)\S", content, re.MULTILINE)
    if not match:
        return 2
    indent = match.group(1)
    return indent if "\t" in indent else len(indent)


def parse_package_json(content: str, path: str = "package.json") -> list[DeclaredDependency]:
    """Parse package.json content into declared dependencies.

    ``dependencies`` and ``devDependencies`` are merged; a name declared in
    both keeps the later (dev) declaration. Source-control and local path
    declarations are left out.

    Args:
        content: The package.json file content
        path: Manifest path, used in error messages

    Returns:
        Registry-resolvable dependencies

    Raises:
        ManifestParseError: If the content is not a JSON object
    """
    data = _load(content, path)
    merged: dict[str, DeclaredDependency] = {}

    for category, section in SECTIONS.items():
        declared = data.get(section)
        if not isinstance(declared, dict):
            continue

        for name, spec in declared.items():
            if not isinstance(spec, str):
                logger.debug("Skipping %s in %s: non-string version %r", name, section, spec)
                continue
            if not is_registry_spec(spec):
                logger.debug("Skipping %s in %s: not a registry dependency (%s)", name, section, spec)
                continue
            if not has_version_number(spec):
                logger.debug("Skipping %s in %s: tag or wildcard version (%s)", name, section, spec)
                continue
            merged[name] = DeclaredDependency(
                name=name,
                spec=spec,
                category=category,
                current_version=spec,
            )

    return list(merged.values())


def rewrite_package_json(manifest: ManifestFile, updates: Iterable[ResolvedUpdate]) -> ManifestFile:
    """Return a new manifest with approved versions written into their own section.

    Each new version keeps the range operator of the declaration it replaces.
    The document is re-serialized with its original key order, indentation
    and trailing newline.
    """
    updates = list(updates)
    if not updates:
        return manifest

    data = _load(manifest.content, manifest.path)

    for update in updates:
        section = data.get(SECTIONS[update.category])
        declared = section.get(update.name) if isinstance(section, dict) else None
        if not isinstance(declared, str) or not has_version_number(declared):
            logger.warning(
                "%s has no versioned declaration in %s of %s, leaving it untouched",
                update.name,
                SECTIONS[update.category],
                manifest.path,
            )
            continue
        section[update.name] = f"{version_prefix(declared)}{update.latest_version}"

    content = json.dumps(data, indent=_detect_indent(manifest.content), ensure_ascii=False)
    if manifest.content.endswith("\n"):
        content += "\n"
    return manifest.with_content(content)
