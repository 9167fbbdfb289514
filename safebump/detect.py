"""Ecosystem detection and manifest discovery."""

import logging
import re
from collections.abc import Sequence
from typing import Protocol

from .models import Ecosystem, ManifestFile, RepoRef

logger = logging.getLogger(__name__)

# Candidate manifest paths, probed in order.
DEFAULT_MANIFEST_PATHS: tuple[tuple[str, Ecosystem], ...] = (
    ("package.json", Ecosystem.NPM),
    ("requirements.txt", Ecosystem.PYTHON),
)


class FileReader(Protocol):
    async def read_file(self, repo: RepoRef, path: str, ref: str | None = None) -> str | None: ...


def identify(content: str, filename: str | None = None) -> str:
    """Detect ecosystem from content and filename hints.

    Args:
        content: The manifest file content
        filename: Optional filename for additional context

    Returns:
        Detected ecosystem: 'python', 'npm', or 'unknown'
    """
    # Filename-based detection (takes precedence)
    if filename:
        if filename.endswith(".txt") and "requirements" in filename.rsplit("/", 1)[-1]:
            return Ecosystem.PYTHON.value
        if filename.endswith("package.json"):
            return Ecosystem.NPM.value

    # Node.js patterns
    node_patterns = [
        r'"dependencies"\s*:',
        r'"devDependencies"\s*:',
    ]

    for pattern in node_patterns:
        if re.search(pattern, content):
            return Ecosystem.NPM.value

    # Python patterns
    python_patterns = [
        r"^\s*[a-zA-Z0-9][a-zA-Z0-9\-_.]*\s*(?:==|>=|<=|~=|!=|>|<)\s*[\w.\-]+",  # package>=1.0.0
        r";\s*(?:sys_platform|python_version)",  # environment markers
    ]

    for pattern in python_patterns:
        if re.search(pattern, content, re.MULTILINE):
            return Ecosystem.PYTHON.value

    return "unknown"


class ManifestLocator:
    """Finds the manifests present in a repository snapshot."""

    def __init__(self, reader: FileReader, paths: Sequence[tuple[str, Ecosystem]] = DEFAULT_MANIFEST_PATHS):
        self.reader = reader
        self.paths = list(paths)

    async def locate(self, repo: RepoRef, ref: str | None = None) -> list[ManifestFile]:
        """Read every candidate path; missing files are skipped silently."""
        manifests: list[ManifestFile] = []

        for path, ecosystem in self.paths:
            content = await self.reader.read_file(repo, path, ref)
            if content is None:
                continue
            logger.debug("Found %s manifest %s in %s", ecosystem.value, path, repo.full_name)
            manifests.append(ManifestFile(path=path, ecosystem=Ecosystem(ecosystem), content=content))

        return manifests
