"""Per-ecosystem parse/rewrite dispatch.

Adding an ecosystem means adding one ``EcosystemHandler`` to ``HANDLERS``;
the pipeline and report code only ever go through ``handler_for``.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .models import DeclaredDependency, Ecosystem, ManifestFile, ResolvedUpdate
from .parse_node import parse_package_json, rewrite_package_json
from .parse_python import parse_requirements, rewrite_requirements


@dataclass(frozen=True)
class EcosystemHandler:
    """Everything ecosystem-specific the pipeline needs."""

    ecosystem: Ecosystem
    display_name: str
    registry_name: str
    extract: Callable[[ManifestFile], list[DeclaredDependency]]
    rewrite: Callable[[ManifestFile, Iterable[ResolvedUpdate]], ManifestFile]
    changelog_url: Callable[[str, str], str]
    testing_instructions: tuple[str, ...]


HANDLERS: dict[Ecosystem, EcosystemHandler] = {
    Ecosystem.NPM: EcosystemHandler(
        ecosystem=Ecosystem.NPM,
        display_name="Node.js (package.json)",
        registry_name="npm",
        extract=lambda manifest: parse_package_json(manifest.content, manifest.path),
        rewrite=rewrite_package_json,
        changelog_url=lambda name, version: f"https://www.npmjs.com/package/{name}/v/{version}",
        testing_instructions=(
            "Run `npm install` to install updated dependencies",
            "Run `npm test` to ensure all tests pass",
            "Check any functionality that relies on the updated packages",
        ),
    ),
    Ecosystem.PYTHON: EcosystemHandler(
        ecosystem=Ecosystem.PYTHON,
        display_name="Python (requirements.txt)",
        registry_name="PyPI",
        extract=lambda manifest: parse_requirements(manifest.content),
        rewrite=rewrite_requirements,
        changelog_url=lambda name, version: f"https://pypi.org/project/{name}/{version}/",
        testing_instructions=(
            "Run `pip install -r requirements.txt` to install updated dependencies",
            "Run your test suite to ensure all tests pass",
            "Check any functionality that relies on the updated packages",
        ),
    ),
}


def handler_for(ecosystem: Ecosystem | str) -> EcosystemHandler:
    """Look up the handler for an ecosystem.

    Raises:
        ValueError: If the ecosystem is not supported
    """
    return HANDLERS[Ecosystem(ecosystem)]


def extract_dependencies(manifest: ManifestFile) -> list[DeclaredDependency]:
    return handler_for(manifest.ecosystem).extract(manifest)


def rewrite_manifest(manifest: ManifestFile, updates: Iterable[ResolvedUpdate]) -> ManifestFile:
    return handler_for(manifest.ecosystem).rewrite(manifest, updates)
