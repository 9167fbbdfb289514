"""CLI application for safebump."""

import asyncio
import difflib
import json
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from safebump.bot import run_bot
from safebump.config import load_config, parse_repo_locator, require_credentials
from safebump.detect import identify
from safebump.ecosystems import rewrite_manifest
from safebump.errors import ConfigError, HostError, ManifestParseError, RepoLocatorError
from safebump.log import configure_logging
from safebump.models import Ecosystem, ManifestFile, RepositoryResult, ResolvedUpdate
from safebump.resolve import RegistryResolver
from safebump.scan import scan_manifest

console = Console()

DEFAULT_FILENAMES = {
    Ecosystem.NPM: "package.json",
    Ecosystem.PYTHON: "requirements.txt",
}


def format_diff_output(manifest: ManifestFile, updates: list[ResolvedUpdate]) -> str:
    """Unified diff of what rewriting the manifest with every candidate would change."""
    rewritten = rewrite_manifest(manifest, updates)
    diff = difflib.unified_diff(
        manifest.content.splitlines(keepends=True),
        rewritten.content.splitlines(keepends=True),
        fromfile=manifest.path,
        tofile=manifest.path,
    )
    return "".join(diff)


def format_json_output(manifest: ManifestFile, updates: list[ResolvedUpdate]) -> str:
    """Format JSON output."""
    reports = []
    for update in updates:
        reports.append({
            "name": update.name,
            "category": update.category.value,
            "current_version": update.current_spec,
            "latest_version": update.latest_version,
            "update_type": update.tier.value,
        })

    return json.dumps({"manifest": manifest.path, "ecosystem": manifest.ecosystem.value, "updates": reports}, indent=2)


def format_updates_table(manifest: ManifestFile, updates: list[ResolvedUpdate]) -> Table:
    table = Table(title=f"Outdated dependencies in {manifest.path}")
    table.add_column("Package")
    table.add_column("Type")
    table.add_column("Current")
    table.add_column("Latest")
    table.add_column("Update")
    for update in updates:
        table.add_row(update.name, update.category.value, update.current_spec, update.latest_version, update.tier.value)
    return table


def format_results_table(results: list[RepositoryResult]) -> Table:
    table = Table(title="Dependency bot results")
    table.add_column("Repository")
    table.add_column("Outdated", justify="right")
    table.add_column("Proposed", justify="right")
    table.add_column("Pull requests")
    table.add_column("Status")
    for result in results:
        proposed = sum(1 for update in result.updates if update.is_safe)
        urls = [outcome.pull_request_url for outcome in result.manifests if outcome.pull_request_url]
        status = f"[red]failed: {result.error}[/red]" if result.failed else "[green]ok[/green]"
        table.add_row(result.repo.full_name, str(len(result.updates)), str(proposed), "\n".join(urls) or "-", status)
    return table


app = typer.Typer(
    name="safebump",
    help="safebump - Propose security-checked dependency updates as pull requests",
    add_completion=False,
)


@app.command()
def run(
    repo: str | None = typer.Option(
        None, "--repo", help="Repository to check: owner/repo or GitHub URL (default: every installation repository)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report candidate updates without security checks or writes"),
    config_path: Path | None = typer.Option(None, "--config", help="YAML configuration file"),
    report_dir: Path | None = typer.Option(None, "--report-dir", help="Directory for security reports"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level (default: INFO)"),
) -> None:
    """Check repositories for outdated dependencies and open pull requests for the safe updates."""
    configure_logging(log_level)

    try:
        target = parse_repo_locator(repo) if repo else None
        config = load_config(
            config_path,
            target_repo=target,
            dry_run=True if dry_run else None,
            report_dir=report_dir,
        )
        require_credentials(config)
    except (ConfigError, RepoLocatorError) as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    scope = config.target_repo.full_name if config.target_repo else "all installation repositories"
    console.print(f"Running dependency check for {scope}")
    console.print(f"Mode: {'DRY RUN (no PRs will be created)' if config.dry_run else 'LIVE'}")

    try:
        results = asyncio.run(run_bot(config))
    except HostError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    console.print(format_results_table(results))


@app.command()
def check(
    file_path: str = typer.Argument(help="Path to manifest file: requirements.txt, package.json (use '-' for stdin)"),
    engine: str | None = typer.Option(None, "--ecosystem", help="Force specific ecosystem (npm, python)"),
    format_type: str = typer.Option("table", "--format", help="Output format: table, json or diff"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level (default: WARNING)"),
) -> None:
    """Dry-run a local manifest: list outdated dependencies without security checks or writes."""
    configure_logging(log_level or "WARNING")

    try:
        # Read input
        if file_path == "-":
            content = sys.stdin.read()
            filename = None
        else:
            path_obj = Path(file_path)
            if not path_obj.exists():
                console.print(f"Error: File {file_path} not found", style="red")
                raise typer.Exit(1)
            content = path_obj.read_text(encoding="utf-8")
            filename = file_path

        # Detect ecosystem
        detected = engine or identify(content, filename)
        if detected not in {ecosystem.value for ecosystem in Ecosystem}:
            console.print(f"Error: Unsupported ecosystem: {detected}", style="red")
            raise typer.Exit(1)

        ecosystem = Ecosystem(detected)
        manifest = ManifestFile(path=filename or DEFAULT_FILENAMES[ecosystem], ecosystem=ecosystem, content=content)

        resolver = RegistryResolver()
        updates = asyncio.run(scan_manifest(manifest, resolver))

        if not updates:
            if format_type == "json":
                typer.echo(format_json_output(manifest, updates))
            else:
                console.print("No updates available")
            raise typer.Exit(2)  # No changes exit code

        if format_type == "json":
            typer.echo(format_json_output(manifest, updates))
        elif format_type == "diff":
            typer.echo(format_diff_output(manifest, updates), nl=False)
        else:
            console.print(format_updates_table(manifest, updates))

    except typer.Exit:
        # Re-raise typer exits (like Exit(2) for no changes)
        raise
    except ManifestParseError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
