"""Tests for the GitHub REST client."""

import base64
import json

import httpx
import pytest

from safebump.errors import HostError
from safebump.github import GitHubClient
from safebump.models import RepoRef

REPO = RepoRef(owner="acme", name="service", default_branch="main")


def _client(handler):
    http = httpx.AsyncClient(base_url="https://api.github.com", transport=httpx.MockTransport(handler))
    return GitHubClient("token", client=http)


def _repo_json(name, archived=False):
    return {"name": name, "owner": {"login": "acme"}, "default_branch": "main", "archived": archived}


class TestGitHubClient:
    """Test the endpoints the bot relies on."""

    @pytest.mark.asyncio
    async def test_list_repositories_follows_pages(self):
        """Every page of the installation listing is collected."""
        pages = {
            "1": [_repo_json(f"repo-{i}") for i in range(100)],
            "2": [_repo_json("last", archived=True)],
        }

        def handler(request):
            assert request.url.path == "/installation/repositories"
            return httpx.Response(200, json={"repositories": pages[request.url.params["page"]]})

        async with _client(handler) as client:
            repos = await client.list_repositories()

        assert len(repos) == 101
        assert repos[-1] == RepoRef(owner="acme", name="last", default_branch="main", archived=True)

    @pytest.mark.asyncio
    async def test_get_repository_missing(self):
        async with _client(lambda request: httpx.Response(404, json={"message": "Not Found"})) as client:
            assert await client.get_repository("acme", "nope") is None

    @pytest.mark.asyncio
    async def test_read_file_decodes_content(self):
        encoded = base64.b64encode(b"flask==1.0.0\n").decode()

        def handler(request):
            assert request.url.path == "/repos/acme/service/contents/requirements.txt"
            return httpx.Response(200, json={"type": "file", "content": encoded, "sha": "abc"})

        async with _client(handler) as client:
            assert await client.read_file(REPO, "requirements.txt") == "flask==1.0.0\n"

    @pytest.mark.asyncio
    async def test_read_missing_file_is_none(self):
        async with _client(lambda request: httpx.Response(404, json={"message": "Not Found"})) as client:
            assert await client.read_file(REPO, "package.json") is None

    @pytest.mark.asyncio
    async def test_write_file_sends_existing_sha(self):
        """Updating an existing file commits against its current blob."""
        sent = {}

        def handler(request):
            if request.method == "GET":
                assert request.url.params["ref"] == "dependency-updates/python-2024-05-01"
                return httpx.Response(200, json={"type": "file", "content": "", "sha": "abc123"})
            sent.update(json.loads(request.content))
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            await client.write_file(
                REPO, "requirements.txt", "flask==1.2.0\n", "dependency-updates/python-2024-05-01", "Update dependencies"
            )

        assert sent["sha"] == "abc123"
        assert sent["branch"] == "dependency-updates/python-2024-05-01"
        assert base64.b64decode(sent["content"]).decode() == "flask==1.2.0\n"

    @pytest.mark.asyncio
    async def test_create_branch_from_base_head(self):
        created = {}

        def handler(request):
            if request.method == "GET":
                assert request.url.path == "/repos/acme/service/git/ref/heads/main"
                return httpx.Response(200, json={"object": {"sha": "deadbeef"}})
            created.update(json.loads(request.content))
            return httpx.Response(201, json={})

        async with _client(handler) as client:
            await client.create_branch(REPO, "dependency-updates/npm-2024-05-01", "main")

        assert created == {"ref": "refs/heads/dependency-updates/npm-2024-05-01", "sha": "deadbeef"}

    @pytest.mark.asyncio
    async def test_open_pull_request_and_labels(self):
        requests = []

        def handler(request):
            requests.append((request.method, request.url.path, json.loads(request.content)))
            if request.url.path.endswith("/pulls"):
                return httpx.Response(201, json={"html_url": "https://github.com/acme/service/pull/7", "number": 7})
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            url = await client.open_pull_request(REPO, "title", "body", "head-branch", "main")
            await client.add_labels(REPO, url, ["dependencies"])
            await client.request_reviewers(REPO, url, ["octocat"], [])

        assert url == "https://github.com/acme/service/pull/7"
        assert requests[1] == ("POST", "/repos/acme/service/issues/7/labels", {"labels": ["dependencies"]})
        assert requests[2][1] == "/repos/acme/service/pulls/7/requested_reviewers"

    @pytest.mark.asyncio
    async def test_error_response_raises_host_error(self):
        """Non-404 failures carry the status code and API message."""
        async with _client(lambda request: httpx.Response(403, json={"message": "Resource not accessible"})) as client:
            with pytest.raises(HostError) as exc_info:
                await client.open_pull_request(REPO, "title", "body", "head", "main")

        assert exc_info.value.status_code == 403
        assert "Resource not accessible" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_default_branch_is_fetched_when_unknown(self):
        async with _client(lambda request: httpx.Response(200, json=_repo_json("service"))) as client:
            assert await client.get_default_branch(RepoRef(owner="acme", name="service")) == "main"
