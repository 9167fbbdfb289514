"""Pull-request descriptions and audit reports.

Both documents are Markdown with a fixed section order; consumers parse
them, so headings and table columns should only change together with them.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path

from .aggregate import group_by_tier, partition_updates, risk_level
from .ecosystems import handler_for
from .models import ManifestFile, ResolvedUpdate, RiskLevel, UpdateTier, Vulnerability

logger = logging.getLogger(__name__)

TIER_HEADINGS = {
    UpdateTier.MAJOR: "Major Updates (Breaking Changes Possible)",
    UpdateTier.MINOR: "Minor Updates (New Features)",
    UpdateTier.PATCH: "Patch Updates (Bug Fixes)",
    UpdateTier.UNKNOWN: "Unclassified Updates (Version Format Not Recognized)",
}

TABLE_HEADER = (
    "| Package | Current Version | Current CVEs | New Version | New CVEs | Type | Changes |\n"
    "| ------- | --------------- | ------------ | ----------- | -------- | ---- | ------- |\n"
)


def _now(generated_at: datetime | None) -> datetime:
    return generated_at or datetime.now(timezone.utc)


def _cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def _vulnerability_links(vulnerabilities: Sequence[Vulnerability] | None) -> str:
    if vulnerabilities is None:
        return "Not checked"
    if not vulnerabilities:
        return "None"
    return ", ".join(f"[{vuln.id}]({vuln.url})" for vuln in vulnerabilities)


def _vulnerability_lines(vulnerabilities: Sequence[Vulnerability]) -> list[str]:
    if not vulnerabilities:
        return ["- None found"]
    return [f"- [{vuln.id}]({vuln.url}) ({vuln.severity}): {vuln.description}" for vuln in vulnerabilities]


def pull_request_title(updates: Sequence[ResolvedUpdate]) -> str:
    return f"📦 Dependency Updates ({len(updates)})"


def format_dependency_table(manifest: ManifestFile, updates: Iterable[ResolvedUpdate]) -> str:
    """Format dependency updates as a markdown table."""
    handler = handler_for(manifest.ecosystem)
    table = TABLE_HEADER

    for update in updates:
        verdict = update.verdict
        current_cves = _vulnerability_links(verdict.current_version_vulnerabilities if verdict else None)
        new_cves = _vulnerability_links(verdict.new_version_vulnerabilities if verdict else None)
        changelog = handler.changelog_url(update.name, update.latest_version)
        table += (
            f"| {_cell(update.name)} | {_cell(update.current_spec)} | {current_cves} "
            f"| {_cell(update.latest_version)} | {new_cves} | {update.category.value} "
            f"| [View Changes]({changelog}) |\n"
        )

    return table + "\n"


def format_vulnerability_details(update: ResolvedUpdate) -> str:
    """Expandable block with everything the security check attributed to one update."""
    verdict = update.verdict
    lines = [
        "<details>",
        f"<summary><b>{update.name}</b> {update.current_spec} → {update.latest_version}</summary>",
        "",
        "**Current version vulnerabilities:**",
        "",
        *_vulnerability_lines(verdict.current_version_vulnerabilities),
        "",
        "**New version vulnerabilities:**",
        "",
        *_vulnerability_lines(verdict.new_version_vulnerabilities),
        "",
    ]
    if verdict.improvements:
        lines += ["**Security improvements:**", "", verdict.improvements, ""]
    if verdict.assessment:
        lines += ["**Assessment:**", "", verdict.assessment, ""]
    lines.append("</details>")
    return "\n".join(lines) + "\n\n"


def render_pull_request_body(
    manifest: ManifestFile,
    updates: Sequence[ResolvedUpdate],
    tool_name: str = "Dependency Bot",
    held_back: int = 0,
    generated_at: datetime | None = None,
) -> str:
    """Generate the pull-request description for a set of approved updates.

    Args:
        manifest: Manifest the updates apply to
        updates: Updates included in the pull request
        tool_name: Name shown in the framework section
        held_back: Number of outdated dependencies left out by the security gate
        generated_at: Timestamp to print, defaults to now

    Returns:
        Markdown document
    """
    handler = handler_for(manifest.ecosystem)
    by_tier = group_by_tier(updates)
    level = risk_level(updates)

    body = "# Dependency Context Protocol (DCP)\n\n"

    body += "## 🔄 Framework\n\n"
    body += f"- **Tool:** {tool_name}\n"
    body += f"- **File Type:** {handler.display_name}\n"
    body += f"- **File:** `{manifest.path}`\n"
    body += f"- **Update Time:** {_now(generated_at).isoformat()}\n\n"

    body += "## 📊 Updates Summary\n\n"
    body += f"- **Total Updates:** {len(updates)}\n"
    body += f"- **Major Updates:** {len(by_tier[UpdateTier.MAJOR])}\n"
    body += f"- **Minor Updates:** {len(by_tier[UpdateTier.MINOR])}\n"
    body += f"- **Patch Updates:** {len(by_tier[UpdateTier.PATCH])}\n"
    if by_tier[UpdateTier.UNKNOWN]:
        body += f"- **Unclassified Updates:** {len(by_tier[UpdateTier.UNKNOWN])}\n"
    body += "\n"

    verified = [update for update in updates if update.is_safe]
    body += "## 🔒 Security Verification\n\n"
    if updates and len(verified) == len(updates):
        body += (
            f"✅ All {len(updates)} updates in this pull request were checked for known "
            "vulnerabilities and confirmed safe.\n"
        )
    else:
        body += (
            f"⏭️ Security verification was not performed for {len(updates) - len(verified)} of "
            f"{len(updates)} updates (dry run). Treat them as candidates only.\n"
        )
    if held_back:
        body += (
            f"\n🚫 {held_back} outdated "
            f"{'dependency was' if held_back == 1 else 'dependencies were'} held back because "
            "they could not be confirmed safe. See the security report for details.\n"
        )
    body += "\n"

    body += "## ⚠️ Risk Assessment\n\n"
    body += f"- **Overall Risk Level:** {level.value}\n\n"
    if level is RiskLevel.HIGH:
        body += "> ⚠️ **Warning:** This update contains major version changes which may include breaking changes.\n"
        body += "> Please review the changelog for each dependency carefully before merging.\n\n"

    body += "## 🔍 Detailed Changes\n\n"
    for tier, heading in TIER_HEADINGS.items():
        if by_tier[tier]:
            body += f"### {heading}\n\n"
            body += format_dependency_table(manifest, by_tier[tier])

    checked = [update for update in updates if update.verdict is not None]
    if checked:
        body += "## 🛡️ Vulnerability Details\n\n"
        for update in checked:
            body += format_vulnerability_details(update)

    body += "## 🧪 Testing Instructions\n\n"
    body += "Please test the following before merging:\n\n"
    for number, step in enumerate(handler.testing_instructions, start=1):
        body += f"{number}. {step}\n"

    return body


def _report_entry(update: ResolvedUpdate) -> str:
    entry = f"### {update.name}\n\n"
    entry += f"- **Current version:** {update.current_spec}\n"
    entry += f"- **Latest version:** {update.latest_version}\n"
    entry += f"- **Type:** {update.category.value}\n"
    entry += f"- **Update type:** {update.tier.value}\n"
    return entry + "\n"


def render_audit_report(
    repo_name: str,
    updates: Sequence[ResolvedUpdate],
    generated_at: datetime | None = None,
) -> str:
    """Generate the security report for every outdated dependency of a repository.

    Args:
        repo_name: Repository full name (owner/repo)
        updates: All resolved updates across the repository's manifests
        generated_at: Timestamp to print, defaults to now

    Returns:
        Markdown document
    """
    partition = partition_updates(updates)

    report = f"# Security Report for {repo_name}\n\n"
    report += f"Generated: {_now(generated_at).isoformat()}\n\n"

    report += "## Summary\n\n"
    report += f"- Total dependencies checked: {len(updates)}\n"
    report += f"- Safe to update: {len(partition.safe)}\n"
    report += f"- Unsafe (vulnerabilities found): {len(partition.unsafe)}\n"
    report += f"- Skipped (error or not checked): {len(partition.unchecked)}\n\n"

    if partition.unsafe:
        report += "## Vulnerable Dependencies (Not Updated)\n\n"
        for update in partition.unsafe:
            verdict = update.verdict
            report += _report_entry(update)
            report += "**Current version vulnerabilities:**\n\n"
            report += "\n".join(_vulnerability_lines(verdict.current_version_vulnerabilities)) + "\n\n"
            report += "**New version vulnerabilities:**\n\n"
            report += "\n".join(_vulnerability_lines(verdict.new_version_vulnerabilities)) + "\n\n"
            if verdict.improvements:
                report += f"**Security improvements:**\n\n{verdict.improvements}\n\n"
            if verdict.assessment:
                report += f"**Overall assessment:**\n\n{verdict.assessment}\n\n"
            if verdict.details:
                report += "<details>\n<summary>Full security details</summary>\n\n"
                report += f"```\n{verdict.details}\n```\n\n</details>\n\n"
            report += "---\n\n"

    if partition.safe:
        report += "## Safe Dependencies (Updated)\n\n"
        for update in partition.safe:
            report += _report_entry(update) + "---\n\n"

    if partition.unchecked:
        report += "## Skipped Dependencies\n\n"
        for update in partition.unchecked:
            report += _report_entry(update)
            report += f"Reason: {update.skip_reason or 'Security check was skipped or failed'}\n\n---\n\n"

    return report


def write_report(report_dir: str | Path, repo_name: str, content: str, generated_at: datetime | None = None) -> Path:
    """Persist an audit report and return its path."""
    directory = Path(report_dir)
    directory.mkdir(parents=True, exist_ok=True)

    safe_name = re.sub(r"[^a-zA-Z0-9\-_.]", "", repo_name.replace("/", "-"))
    timestamp = _now(generated_at).isoformat().replace(":", "-")
    path = directory / f"{safe_name}-security-report-{timestamp}.md"

    path.write_text(content, encoding="utf-8")
    logger.info("Security report generated: %s", path.resolve())
    return path
