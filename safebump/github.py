"""GitHub REST API access for reading manifests and proposing changes."""

import base64
import logging
from typing import Protocol
from urllib.parse import quote

import httpx

from .errors import HostError
from .models import RepoRef

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class RepositoryHost(Protocol):
    """Operations the bot needs from a source-control host."""

    async def list_repositories(self) -> list[RepoRef]: ...

    async def get_repository(self, owner: str, name: str) -> RepoRef | None: ...

    async def get_default_branch(self, repo: RepoRef) -> str: ...

    async def read_file(self, repo: RepoRef, path: str, ref: str | None = None) -> str | None: ...

    async def write_file(self, repo: RepoRef, path: str, content: str, branch: str, message: str) -> None: ...

    async def create_branch(self, repo: RepoRef, name: str, base: str) -> None: ...

    async def open_pull_request(self, repo: RepoRef, title: str, body: str, head: str, base: str) -> str: ...

    async def add_labels(self, repo: RepoRef, number_or_url: str, labels: list[str]) -> None: ...

    async def request_reviewers(
        self, repo: RepoRef, number_or_url: str, reviewers: list[str], team_reviewers: list[str]
    ) -> None: ...


def _repo_ref(data: dict) -> RepoRef:
    return RepoRef(
        owner=data["owner"]["login"],
        name=data["name"],
        default_branch=data.get("default_branch"),
        archived=bool(data.get("archived", False)),
    )


def _pull_number(number_or_url: str) -> str:
    return number_or_url.rstrip("/").rsplit("/", 1)[-1]


class GitHubClient:
    """Thin async client over the endpoints the bot uses.

    Usable as an async context manager; the underlying ``httpx.AsyncClient``
    is closed on exit.
    """

    def __init__(
        self,
        token: str,
        api_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.api_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, mapping transport and HTTP errors to ``HostError``."""
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise HostError(f"{method} {path} failed: {e}")

        if response.is_error:
            message = response.text
            try:
                message = response.json().get("message", message)
            except ValueError:
                pass
            raise HostError(f"{method} {path} returned {response.status_code}: {message}", response.status_code)
        return response

    async def list_repositories(self) -> list[RepoRef]:
        """List repositories accessible to the installation, following pagination."""
        repos: list[RepoRef] = []
        page = 1
        while True:
            response = await self._request(
                "GET", "/installation/repositories", params={"per_page": 100, "page": page}
            )
            batch = response.json().get("repositories", [])
            repos.extend(_repo_ref(item) for item in batch)
            if len(batch) < 100:
                return repos
            page += 1

    async def get_repository(self, owner: str, name: str) -> RepoRef | None:
        try:
            response = await self._request("GET", f"/repos/{owner}/{name}")
        except HostError as e:
            if e.status_code == 404:
                return None
            raise
        return _repo_ref(response.json())

    async def get_default_branch(self, repo: RepoRef) -> str:
        if repo.default_branch:
            return repo.default_branch
        fetched = await self.get_repository(repo.owner, repo.name)
        if fetched is None or not fetched.default_branch:
            raise HostError(f"Cannot determine default branch of {repo.full_name}", 404)
        return fetched.default_branch

    async def _get_contents(self, repo: RepoRef, path: str, ref: str | None) -> dict | None:
        params = {"ref": ref} if ref else None
        try:
            response = await self._request(
                "GET", f"/repos/{repo.owner}/{repo.name}/contents/{quote(path)}", params=params
            )
        except HostError as e:
            if e.status_code == 404:
                return None
            raise
        data = response.json()
        return data if isinstance(data, dict) and data.get("type", "file") == "file" else None

    async def read_file(self, repo: RepoRef, path: str, ref: str | None = None) -> str | None:
        """Return the decoded content of a file, or None if it does not exist."""
        data = await self._get_contents(repo, path, ref)
        if data is None:
            return None
        return base64.b64decode(data.get("content", "")).decode("utf-8")

    async def write_file(self, repo: RepoRef, path: str, content: str, branch: str, message: str) -> None:
        """Create or update a file on a branch with a single commit."""
        existing = await self._get_contents(repo, path, branch)
        payload = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if existing and existing.get("sha"):
            payload["sha"] = existing["sha"]
        await self._request("PUT", f"/repos/{repo.owner}/{repo.name}/contents/{quote(path)}", json=payload)

    async def create_branch(self, repo: RepoRef, name: str, base: str) -> None:
        """Create a branch pointing at the head of base."""
        response = await self._request("GET", f"/repos/{repo.owner}/{repo.name}/git/ref/heads/{base}")
        sha = response.json()["object"]["sha"]
        await self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/git/refs",
            json={"ref": f"refs/heads/{name}", "sha": sha},
        )

    async def open_pull_request(self, repo: RepoRef, title: str, body: str, head: str, base: str) -> str:
        """Open a pull request and return its URL."""
        response = await self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
        )
        return response.json()["html_url"]

    async def add_labels(self, repo: RepoRef, number_or_url: str, labels: list[str]) -> None:
        await self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/issues/{_pull_number(number_or_url)}/labels",
            json={"labels": labels},
        )

    async def request_reviewers(
        self, repo: RepoRef, number_or_url: str, reviewers: list[str], team_reviewers: list[str]
    ) -> None:
        await self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/pulls/{_pull_number(number_or_url)}/requested_reviewers",
            json={"reviewers": reviewers, "team_reviewers": team_reviewers},
        )
