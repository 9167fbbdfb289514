"""Repository scanning and pull-request pipeline."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from .aggregate import Partition, gate_updates
from .config import BotConfig
from .detect import ManifestLocator
from .ecosystems import rewrite_manifest
from .errors import ConfigError, HostError, ManifestParseError
from .github import GitHubClient, RepositoryHost
from .models import ManifestFile, ManifestOutcome, RepoRef, RepositoryResult, ResolvedUpdate
from .report import pull_request_title, render_audit_report, render_pull_request_body, write_report
from .resolve import RegistryResolver, VersionResolver
from .scan import scan_manifest
from .security import AnthropicSecurityOracle, SecurityOracle

logger = logging.getLogger(__name__)

DRY_RUN_REASON = "Dry run: security check not performed"


class DependencyBot:
    """Scans repositories and proposes the updates that pass the security gate.

    Repositories, manifests and dependencies are processed one at a time.
    Failures are contained at the narrowest level: a dependency whose version
    cannot be resolved or compared is skipped, a manifest that cannot be
    parsed is skipped, and a repository whose write-back fails is marked
    failed while the run moves on.
    """

    def __init__(
        self,
        config: BotConfig,
        host: RepositoryHost,
        resolver: VersionResolver,
        oracle: SecurityOracle | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        if oracle is None and not config.dry_run:
            raise ConfigError("A security oracle is required outside dry-run mode")
        self.config = config
        self.host = host
        self.resolver = resolver
        self.oracle = oracle
        self.locator = ManifestLocator(host, config.manifest_candidates())
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self) -> list[RepositoryResult]:
        """Entry point for the bot."""
        logger.info("Starting dependency bot (%s)", "DRY RUN" if self.config.dry_run else "LIVE")

        results = []
        for repo in await self.get_repositories():
            results.append(await self.process_repository(repo))

        failed = [result.repo.full_name for result in results if result.failed]
        logger.info(
            "Processed %d repositories, %d failed%s",
            len(results),
            len(failed),
            f": {', '.join(failed)}" if failed else "",
        )
        return results

    async def get_repositories(self) -> list[RepoRef]:
        """Resolve the configured target, or every active repository of the installation.

        Raises:
            HostError: If the target repository does not exist or listing fails
        """
        target = self.config.target_repo
        if target is not None:
            repo = await self.host.get_repository(target.owner, target.name)
            if repo is None:
                raise HostError(f"Repository {target.full_name} not found", 404)
            return [repo]

        repos = await self.host.list_repositories()
        return [repo for repo in repos if not repo.archived and not self.config.is_excluded(repo)]

    async def process_repository(self, repo: RepoRef) -> RepositoryResult:
        """Process a single repository; never raises."""
        logger.info("Processing %s...", repo.full_name)
        result = RepositoryResult(repo=repo)

        try:
            for manifest in await self.locator.locate(repo):
                outcome = ManifestOutcome(manifest=manifest)
                result.manifests.append(outcome)
                await self.process_manifest(repo, outcome)
        except HostError as e:
            logger.error("Error processing %s: %s", repo.full_name, e)
            result.failed, result.error = True, str(e)
        except Exception as e:
            logger.exception("Unexpected error processing %s", repo.full_name)
            result.failed, result.error = True, str(e)

        self.publish_report(result)
        return result

    async def process_manifest(self, repo: RepoRef, outcome: ManifestOutcome) -> None:
        """Scan one manifest, gate its updates and open a pull request for the safe ones.

        Raises:
            HostError: If creating the branch, commit or pull request fails
        """
        manifest = outcome.manifest
        outcome.updates = await self.scan_manifest(manifest)
        if not outcome.updates:
            logger.info("No outdated dependencies in %s of %s", manifest.path, repo.full_name)
            return

        if self.config.dry_run:
            for update in outcome.updates:
                update.skip_reason = DRY_RUN_REASON
            preview = render_pull_request_body(
                manifest, outcome.updates, tool_name=self.config.tool_name, generated_at=self._clock()
            )
            logger.info(
                "Dry run: %d candidate updates for %s in %s\n%s",
                len(outcome.updates),
                manifest.path,
                repo.full_name,
                preview,
            )
            return

        partition = await gate_updates(
            self.oracle,
            outcome.updates,
            manifest.ecosystem,
            self.config.update_policy.allowed_tiers(),
        )
        if not partition.safe:
            logger.info(
                "None of the %d outdated dependencies in %s of %s could be confirmed safe",
                len(outcome.updates),
                manifest.path,
                repo.full_name,
            )
            return

        outcome.rewritten = rewrite_manifest(manifest, partition.safe)
        if outcome.rewritten.content == manifest.content:
            logger.warning("Rewriting %s of %s produced no change", manifest.path, repo.full_name)
            return

        outcome.pull_request_url = await self.create_update_pr(repo, manifest, outcome.rewritten, partition)

    async def scan_manifest(self, manifest: ManifestFile) -> list[ResolvedUpdate]:
        """Outdated dependencies of a manifest; an unparseable manifest has none."""
        try:
            return await scan_manifest(manifest, self.resolver, self.config.is_ignored)
        except ManifestParseError as e:
            logger.warning("Skipping manifest: %s", e)
            return []

    async def create_update_pr(
        self, repo: RepoRef, manifest: ManifestFile, rewritten: ManifestFile, partition: Partition
    ) -> str:
        """Create a branch, commit the rewritten manifest and open the pull request."""
        now = self._clock()
        branch = f"dependency-updates/{manifest.ecosystem.value}-{now.date().isoformat()}"
        base = await self.host.get_default_branch(repo)

        await self.host.create_branch(repo, branch, base)
        await self.host.write_file(repo, manifest.path, rewritten.content, branch, f"Update dependencies in {manifest.path}")

        body = render_pull_request_body(
            manifest,
            partition.safe,
            tool_name=self.config.tool_name,
            held_back=len(partition.blocked),
            generated_at=now,
        )
        url = await self.host.open_pull_request(repo, pull_request_title(partition.safe), body, branch, base)
        logger.info(
            "Created PR for %s with %d dependency updates: %s", repo.full_name, len(partition.safe), url
        )

        await self._decorate_pull_request(repo, url)
        return url

    async def _decorate_pull_request(self, repo: RepoRef, url: str) -> None:
        settings = self.config.pull_request
        try:
            if settings.labels:
                await self.host.add_labels(repo, url, settings.labels)
            if settings.reviewers or settings.team_reviewers:
                await self.host.request_reviewers(repo, url, settings.reviewers, settings.team_reviewers)
        except HostError as e:
            logger.warning("Could not add labels or reviewers to %s: %s", url, e)

    def publish_report(self, result: RepositoryResult) -> None:
        """Write the audit report of a repository, or log it in dry-run mode."""
        updates = result.updates
        if not updates:
            return

        now = self._clock()
        content = render_audit_report(result.repo.full_name, updates, generated_at=now)
        if self.config.dry_run:
            logger.info("Dry run security report for %s:\n%s", result.repo.full_name, content)
            return

        try:
            result.report_path = str(write_report(self.config.report_dir, result.repo.full_name, content, now))
        except OSError as e:
            logger.error("Error generating report for %s: %s", result.repo.full_name, e)


async def run_bot(config: BotConfig) -> list[RepositoryResult]:
    """Run the bot against GitHub, PyPI/npm and the Anthropic security oracle."""
    async with GitHubClient(config.github_token, config.github_api_url, config.request_timeout) as host:
        oracle = None
        if not config.dry_run:
            oracle = AnthropicSecurityOracle(config.anthropic_api_key, model=config.security_model)
        bot = DependencyBot(config, host, RegistryResolver(timeout=config.request_timeout), oracle)
        return await bot.run()
