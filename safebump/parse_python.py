"""Python requirements.txt parsing and rewriting."""

import re
from collections.abc import Iterable, Iterator

from packaging.utils import canonicalize_name

from .models import DeclaredDependency, ManifestFile, ResolvedUpdate

# <name><operator><version>, optionally padded with whitespace and followed
# only by an environment marker or an inline comment, both kept verbatim.
# Lines with further specifiers (``foo>=1.0,<2.0``) do not match.
REQUIREMENT_LINE = re.compile(
    r"^(?P<indent>\s*)"
    r"(?P<name>[A-Za-z0-9][A-Za-z0-9_.\-]*)"
    r"(?P<pre>\s*)"
    r"(?P<operator>==|>=|<=|~=|!=|>|<)"
    r"(?P<post>\s*)"
    r"(?P<version>[A-Za-z0-9_.\-]+)"
    r"(?P<tail>\s*(?:[;#].*)?)$"
)


def match_requirement(line: str) -> re.Match | None:
    """Match a single requirements line against the supported grammar.

    Blank lines and comments never match.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    return REQUIREMENT_LINE.match(line)


def _split_lines(content: str) -> Iterator[tuple[str, str]]:
    """Yield (line, line_ending) pairs so content can be rebuilt byte-for-byte."""
    for raw_line in content.splitlines(keepends=True):
        line = raw_line.rstrip("\r\n")
        yield line, raw_line[len(line):]


class RequirementsParser:
    """Parser for Python requirements.txt files."""

    def parse(self, content: str) -> list[DeclaredDependency]:
        """Extract candidate dependencies, first occurrence of each name wins."""
        entries: list[DeclaredDependency] = []
        seen: set[str] = set()

        for line, _ in _split_lines(content):
            match = match_requirement(line)
            if not match:
                continue

            key = canonicalize_name(match["name"])
            if key in seen:
                continue
            seen.add(key)

            entries.append(
                DeclaredDependency(
                    name=match["name"],
                    spec=f"{match['operator']}{match['version']}",
                    current_version=match["version"],
                )
            )

        return entries

    def rewrite(self, content: str, updates: Iterable[ResolvedUpdate]) -> str:
        """Replace the version segment of every approved requirement line.

        The comparison operator and everything around the version are kept;
        all other lines are emitted unchanged in their original order.
        """
        approved = {canonicalize_name(update.name): update.latest_version for update in updates}
        if not approved:
            return content

        output: list[str] = []
        for line, ending in _split_lines(content):
            match = match_requirement(line)
            if match:
                new_version = approved.get(canonicalize_name(match["name"]))
                if new_version is not None:
                    line = line[: match.start("version")] + new_version + line[match.end("version"):]
            output.append(line + ending)

        return "".join(output)


def parse_requirements(content: str) -> list[DeclaredDependency]:
    """Parse requirements.txt content into declared dependencies.

    Args:
        content: The requirements.txt file content

    Returns:
        Dependencies in file order
    """
    return RequirementsParser().parse(content)


def rewrite_requirements(manifest: ManifestFile, updates: Iterable[ResolvedUpdate]) -> ManifestFile:
    """Return a new manifest with approved updates applied."""
    return manifest.with_content(RequirementsParser().rewrite(manifest.content, updates))
