"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest

from safebump.errors import HostError
from safebump.models import RepoRef, SecurityVerdict, Vulnerability

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeResolver:
    """Version resolver answering from a name -> version mapping."""

    def __init__(self, versions=None, failing=()):
        self.versions = dict(versions or {})
        self.failing = set(failing)
        self.calls = []

    async def resolve_latest_version(self, name, ecosystem):
        self.calls.append((name, ecosystem))
        if name in self.failing:
            raise RuntimeError(f"lookup failed for {name}")
        return self.versions.get(name)


class FakeOracle:
    """Security oracle returning canned verdicts; unknown names are safe."""

    def __init__(self, verdicts=None, failing=()):
        self.verdicts = dict(verdicts or {})
        self.failing = set(failing)
        self.calls = []

    async def assess_transition(self, name, current_version, latest_version, ecosystem):
        self.calls.append((name, current_version, latest_version))
        if name in self.failing:
            raise RuntimeError("oracle unavailable")
        return self.verdicts.get(name, SecurityVerdict(safe=True, assessment="SAFE"))


class FakeHost:
    """In-memory repository host recording every write."""

    def __init__(self, repos=None, files=None, fail_on=()):
        self.repos = list(repos or [])
        self.files = dict(files or {})  # (full_name, path) -> content
        self.fail_on = set(fail_on)
        self.branches = []
        self.writes = []
        self.pull_requests = []
        self.labels = []
        self.reviewers = []

    def _maybe_fail(self, operation):
        if operation in self.fail_on:
            raise HostError(f"{operation} failed", 500)

    async def list_repositories(self):
        self._maybe_fail("list_repositories")
        return list(self.repos)

    async def get_repository(self, owner, name):
        for repo in self.repos:
            if repo.owner == owner and repo.name == name:
                return repo
        return None

    async def get_default_branch(self, repo):
        return repo.default_branch or "main"

    async def read_file(self, repo, path, ref=None):
        self._maybe_fail("read_file")
        return self.files.get((repo.full_name, path))

    async def write_file(self, repo, path, content, branch, message):
        self._maybe_fail("write_file")
        self.writes.append({"repo": repo.full_name, "path": path, "content": content, "branch": branch, "message": message})

    async def create_branch(self, repo, name, base):
        self._maybe_fail("create_branch")
        self.branches.append((repo.full_name, name, base))

    async def open_pull_request(self, repo, title, body, head, base):
        self._maybe_fail("open_pull_request")
        number = len(self.pull_requests) + 1
        self.pull_requests.append({"repo": repo.full_name, "title": title, "body": body, "head": head, "base": base})
        return f"https://github.com/{repo.full_name}/pull/{number}"

    async def add_labels(self, repo, number_or_url, labels):
        self._maybe_fail("add_labels")
        self.labels.append((number_or_url, list(labels)))

    async def request_reviewers(self, repo, number_or_url, reviewers, team_reviewers):
        self.reviewers.append((number_or_url, list(reviewers), list(team_reviewers)))


def unsafe_verdict(advisory_id="CVE-2023-32681"):
    vulnerability = Vulnerability(
        id=advisory_id,
        severity="high",
        description="Proxy-Authorization header leak",
        url=f"https://nvd.nist.gov/vuln/detail/{advisory_id}",
    )
    return SecurityVerdict(
        safe=False,
        new_version_vulnerabilities=[vulnerability],
        assessment="UNSAFE",
        details=f"{advisory_id} affects the new version.",
    )


@pytest.fixture
def sample_requirements():
    """Sample requirements.txt content for testing."""
    return "fastapi==0.85.0\nuvicorn>=0.18.0"


@pytest.fixture
def sample_package_json():
    """Sample package.json content for testing."""
    return """{
  "name": "test-project",
  "dependencies": {
    "express": "^4.18.0",
    "lodash": "~4.17.21"
  },
  "devDependencies": {
    "jest": "^29.0.0"
  }
}
"""


@pytest.fixture
def temp_manifest_file(tmp_path):
    """Create a temporary manifest file for testing."""
    manifest = tmp_path / "requirements.txt"
    manifest.write_text("fastapi==0.85.0")
    return manifest


@pytest.fixture
def repo():
    return RepoRef(owner="acme", name="service", default_branch="main")


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
