"""Core data models for safebump."""

from dataclasses import dataclass, field
from enum import Enum


class Ecosystem(str, Enum):
    """Package-management formats a manifest can be written in."""

    NPM = "npm"
    PYTHON = "python"


class DependencyCategory(str, Enum):
    DEPENDENCY = "dependency"
    DEV_DEPENDENCY = "devDependency"


class UpdateTier(str, Enum):
    """Semantic-versioning distance between current and latest."""

    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"
    UNKNOWN = "unknown"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


SEVERITIES = ("critical", "high", "medium", "low", "unknown")


@dataclass(frozen=True)
class RepoRef:
    """A repository on the source-control host."""

    owner: str
    name: str
    default_branch: str | None = None
    archived: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class ManifestFile:
    """A dependency declaration file read from a repository snapshot."""

    path: str
    ecosystem: Ecosystem
    content: str

    def with_content(self, content: str) -> "ManifestFile":
        """Return a new manifest carrying rewritten content."""
        return ManifestFile(path=self.path, ecosystem=self.ecosystem, content=content)


@dataclass(frozen=True)
class DeclaredDependency:
    """A single dependency entry in a manifest file."""

    name: str
    spec: str  # declared version expression exactly as written
    category: DependencyCategory = DependencyCategory.DEPENDENCY
    current_version: str | None = None  # version segment used for comparison


@dataclass
class Vulnerability:
    """A security advisory attributed to one version of a package."""

    id: str
    severity: str = "unknown"
    description: str = "No description available"
    url: str = ""


@dataclass
class SecurityVerdict:
    """Outcome of assessing one version transition."""

    safe: bool
    current_version_vulnerabilities: list[Vulnerability] = field(default_factory=list)
    new_version_vulnerabilities: list[Vulnerability] = field(default_factory=list)
    improvements: str = ""
    assessment: str = ""
    details: str = ""

    @classmethod
    def fail_closed(cls, reason: str) -> "SecurityVerdict":
        """Verdict used whenever the assessment could not be completed."""
        return cls(
            safe=False,
            assessment=reason,
            details=f"{reason}. Skipping update as a precaution.",
        )


@dataclass
class ResolvedUpdate:
    """Result of evaluating one declared dependency against its registry."""

    dependency: DeclaredDependency
    latest_version: str
    tier: UpdateTier = UpdateTier.UNKNOWN
    verdict: SecurityVerdict | None = None
    skip_reason: str | None = None

    @property
    def name(self) -> str:
        return self.dependency.name

    @property
    def current_spec(self) -> str:
        return self.dependency.spec

    @property
    def category(self) -> DependencyCategory:
        return self.dependency.category

    @property
    def is_safe(self) -> bool:
        return self.verdict is not None and self.verdict.safe


@dataclass
class ManifestOutcome:
    """What happened to one manifest during a repository scan."""

    manifest: ManifestFile
    updates: list[ResolvedUpdate] = field(default_factory=list)
    rewritten: ManifestFile | None = None
    pull_request_url: str | None = None


@dataclass
class RepositoryResult:
    """Per-repository outcome of a bot run."""

    repo: RepoRef
    manifests: list[ManifestOutcome] = field(default_factory=list)
    failed: bool = False
    error: str | None = None
    report_path: str | None = None

    @property
    def updates(self) -> list[ResolvedUpdate]:
        return [update for outcome in self.manifests for update in outcome.updates]
