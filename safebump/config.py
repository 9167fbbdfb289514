"""Bot configuration and repository locators."""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .detect import DEFAULT_MANIFEST_PATHS
from .errors import ConfigError, RepoLocatorError
from .github import GITHUB_API_URL
from .models import Ecosystem, RepoRef, UpdateTier
from .security import DEFAULT_MODEL

logger = logging.getLogger(__name__)

# Environment variable -> config field
ENV_VARS = {
    "GITHUB_TOKEN": "github_token",
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "GITHUB_API_URL": "github_api_url",
    "REPORT_DIR": "report_dir",
    "SAFEBUMP_SECURITY_MODEL": "security_model",
}


class UpdatePolicy(BaseModel):
    """Which update tiers may be proposed at all."""

    allow_major: bool = True
    allow_minor: bool = True
    allow_patch: bool = True

    def allowed_tiers(self) -> set[UpdateTier]:
        tiers = set()
        if self.allow_major:
            # Unclassified updates may hide a major bump.
            tiers.update({UpdateTier.MAJOR, UpdateTier.UNKNOWN})
        if self.allow_minor:
            tiers.add(UpdateTier.MINOR)
        if self.allow_patch:
            tiers.add(UpdateTier.PATCH)
        return tiers


class PullRequestSettings(BaseModel):
    labels: list[str] = Field(default_factory=list)
    reviewers: list[str] = Field(default_factory=list)
    team_reviewers: list[str] = Field(default_factory=list)


class ManifestPath(BaseModel):
    path: str
    ecosystem: Ecosystem


class BotConfig(BaseModel):
    """Everything a bot run needs, passed explicitly to ``DependencyBot``."""

    github_token: str | None = None
    anthropic_api_key: str | None = None
    github_api_url: str = GITHUB_API_URL
    target_repo: RepoRef | None = None
    excluded_repos: list[str] = Field(default_factory=list)
    report_dir: Path = Path("./reports")
    dry_run: bool = False
    tool_name: str = "Dependency Bot"
    security_model: str = DEFAULT_MODEL
    request_timeout: float = 30.0
    update_policy: UpdatePolicy = Field(default_factory=UpdatePolicy)
    ignore_packages: dict[Ecosystem, list[str]] = Field(default_factory=dict)
    pull_request: PullRequestSettings = Field(default_factory=PullRequestSettings)
    manifest_paths: list[ManifestPath] = Field(
        default_factory=lambda: [
            ManifestPath(path=path, ecosystem=ecosystem) for path, ecosystem in DEFAULT_MANIFEST_PATHS
        ]
    )

    @field_validator("target_repo", mode="before")
    @classmethod
    def _parse_target_repo(cls, value):
        if isinstance(value, str):
            return parse_repo_locator(value)
        return value

    def is_excluded(self, repo: RepoRef) -> bool:
        excluded = {name.strip().lower() for name in self.excluded_repos}
        return repo.full_name.lower() in excluded

    def is_ignored(self, ecosystem: Ecosystem, name: str) -> bool:
        return name in self.ignore_packages.get(Ecosystem(ecosystem), [])

    def manifest_candidates(self) -> list[tuple[str, Ecosystem]]:
        return [(entry.path, entry.ecosystem) for entry in self.manifest_paths]


def _read_yaml(path: str | Path) -> dict:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file {config_path} not found")
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return data


def _from_env(env: Mapping[str, str]) -> dict:
    values: dict = {}
    for variable, field_name in ENV_VARS.items():
        if env.get(variable):
            values[field_name] = env[variable]
    if env.get("EXCLUDED_REPOS"):
        values["excluded_repos"] = [name.strip() for name in env["EXCLUDED_REPOS"].split(",") if name.strip()]
    if env.get("DRY_RUN"):
        values["dry_run"] = env["DRY_RUN"].strip().lower() in ("1", "true", "yes")
    return values


def load_config(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides,
) -> BotConfig:
    """Build the bot configuration.

    Precedence, lowest first: defaults, the YAML file, environment variables,
    explicit overrides (None values are ignored).

    Raises:
        ConfigError: If the file is missing or invalid, or values fail validation
    """
    env = os.environ if env is None else env
    data = _read_yaml(config_path) if config_path else {}
    data.update(_from_env(env))
    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return BotConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")


def require_credentials(config: BotConfig) -> None:
    """Fail fast when a credential the run needs is missing.

    The security oracle key is only needed outside dry-run mode.
    """
    missing = []
    if not config.github_token:
        missing.append("GITHUB_TOKEN")
    if not config.dry_run and not config.anthropic_api_key:
        missing.append("ANTHROPIC_API_KEY")
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")


def parse_repo_locator(locator: str) -> RepoRef:
    """Normalize ``owner/repo``, ``github.com/owner/repo`` or a full URL.

    Raises:
        RepoLocatorError: If no owner and repository name can be found
    """
    value = (locator or "").strip()
    if value.startswith("git@") and ":" in value:
        path = value.split(":", 1)[1]
    elif "://" in value or value.startswith("github.com"):
        path = urlparse(value if "://" in value else f"https://{value}").path
    else:
        path = value

    parts = [part for part in path.split("/") if part.strip()]
    if len(parts) < 2:
        raise RepoLocatorError(f"Invalid repository format {locator!r}. Expected owner/repo")

    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name:
        raise RepoLocatorError(f"Invalid repository format {locator!r}. Expected owner/repo")
    return RepoRef(owner=owner, name=name)
