"""Tests for pull-request descriptions and audit reports."""

from conftest import FIXED_NOW, unsafe_verdict
from safebump.models import (
    DeclaredDependency,
    DependencyCategory,
    Ecosystem,
    ManifestFile,
    ResolvedUpdate,
    SecurityVerdict,
    UpdateTier,
    Vulnerability,
)
from safebump.report import (
    TIER_HEADINGS,
    pull_request_title,
    render_audit_report,
    render_pull_request_body,
    write_report,
)

NPM_MANIFEST = ManifestFile(path="package.json", ecosystem=Ecosystem.NPM, content="{}")
PY_MANIFEST = ManifestFile(path="requirements.txt", ecosystem=Ecosystem.PYTHON, content="")


def _safe_verdict(current=()):
    return SecurityVerdict(safe=True, current_version_vulnerabilities=list(current), assessment="SAFE")


def _update(name, spec, latest, tier, verdict=None, category=DependencyCategory.DEPENDENCY, skip_reason=None):
    return ResolvedUpdate(
        dependency=DeclaredDependency(name=name, spec=spec, category=category, current_version=spec),
        latest_version=latest,
        tier=tier,
        verdict=verdict,
        skip_reason=skip_reason,
    )


def _section(body, heading):
    """Text between a level-2 heading and the next one."""
    start = body.index(heading)
    following = body.find("\n## ", start + len(heading))
    return body[start:] if following == -1 else body[start:following]


class TestPullRequestBody:
    """Test the Dependency Context Protocol description."""

    def test_sections_in_order(self):
        updates = [_update("express", "^4.18.0", "5.0.0", UpdateTier.MAJOR, _safe_verdict())]
        body = render_pull_request_body(NPM_MANIFEST, updates, generated_at=FIXED_NOW)

        headings = [
            "# Dependency Context Protocol (DCP)",
            "## 🔄 Framework",
            "## 📊 Updates Summary",
            "## 🔒 Security Verification",
            "## ⚠️ Risk Assessment",
            "## 🔍 Detailed Changes",
            "## 🛡️ Vulnerability Details",
            "## 🧪 Testing Instructions",
        ]
        positions = [body.index(heading) for heading in headings]
        assert positions == sorted(positions)

    def test_framework_and_summary(self):
        updates = [
            _update("express", "^4.18.0", "5.0.0", UpdateTier.MAJOR, _safe_verdict()),
            _update("lodash", "~4.17.20", "4.18.0", UpdateTier.MINOR, _safe_verdict()),
            _update("jest", "^29.0.0", "29.0.1", UpdateTier.PATCH, _safe_verdict(), DependencyCategory.DEV_DEPENDENCY),
        ]
        body = render_pull_request_body(NPM_MANIFEST, updates, tool_name="Dependency Bot", generated_at=FIXED_NOW)

        assert "- **Tool:** Dependency Bot" in body
        assert "- **File Type:** Node.js (package.json)" in body
        assert "- **File:** `package.json`" in body
        assert f"- **Update Time:** {FIXED_NOW.isoformat()}" in body
        assert "- **Total Updates:** 3" in body
        assert "- **Major Updates:** 1" in body
        assert "- **Minor Updates:** 1" in body
        assert "- **Patch Updates:** 1" in body
        assert "Unclassified Updates" not in body
        assert "All 3 updates in this pull request were checked" in body

    def test_each_update_appears_in_exactly_one_tier_table(self):
        updates = [
            _update("express", "^4.18.0", "5.0.0", UpdateTier.MAJOR, _safe_verdict()),
            _update("lodash", "~4.17.20", "4.18.0", UpdateTier.MINOR, _safe_verdict()),
            _update("jest", "^29.0.0", "29.0.1", UpdateTier.PATCH, _safe_verdict()),
        ]
        body = render_pull_request_body(NPM_MANIFEST, updates, generated_at=FIXED_NOW)
        changes = _section(body, "## 🔍 Detailed Changes")

        for update in updates:
            assert changes.count(f"| {update.name} |") == 1
        for tier in (UpdateTier.MAJOR, UpdateTier.MINOR, UpdateTier.PATCH):
            assert f"### {TIER_HEADINGS[tier]}" in changes

    def test_empty_tiers_have_no_table(self):
        updates = [_update("flask", "==1.0.0", "1.0.1", UpdateTier.PATCH, _safe_verdict())]
        body = render_pull_request_body(PY_MANIFEST, updates, generated_at=FIXED_NOW)

        assert TIER_HEADINGS[UpdateTier.MAJOR] not in body
        assert TIER_HEADINGS[UpdateTier.MINOR] not in body
        assert "- **Overall Risk Level:** Low" in body
        assert "**Warning:**" not in body

    def test_table_row_links_changelog_and_cves(self):
        cve = Vulnerability(id="CVE-2023-30861", severity="high", url="https://nvd.nist.gov/vuln/detail/CVE-2023-30861")
        updates = [_update("flask", "==1.0.0", "1.2.0", UpdateTier.MINOR, _safe_verdict([cve]))]
        body = render_pull_request_body(PY_MANIFEST, updates, generated_at=FIXED_NOW)

        assert (
            "| flask | ==1.0.0 | [CVE-2023-30861](https://nvd.nist.gov/vuln/detail/CVE-2023-30861) "
            "| 1.2.0 | None | dependency | [View Changes](https://pypi.org/project/flask/1.2.0/) |"
        ) in body

    def test_high_risk_warning(self):
        updates = [_update("express", "^4.18.0", "5.0.0", UpdateTier.MAJOR, _safe_verdict())]
        body = render_pull_request_body(NPM_MANIFEST, updates, generated_at=FIXED_NOW)

        assert "- **Overall Risk Level:** High" in body
        assert "> ⚠️ **Warning:** This update contains major version changes" in body

    def test_unclassified_updates_are_listed(self):
        updates = [_update("odd", "1.2.3.4", "1.2.3.5", UpdateTier.UNKNOWN, _safe_verdict())]
        body = render_pull_request_body(NPM_MANIFEST, updates, generated_at=FIXED_NOW)

        assert "- **Unclassified Updates:** 1" in body
        assert f"### {TIER_HEADINGS[UpdateTier.UNKNOWN]}" in body
        assert "- **Overall Risk Level:** High" in body

    def test_held_back_and_unchecked_updates(self):
        """Dry-run candidates and held-back counts are stated explicitly."""
        updates = [_update("flask", "==1.0.0", "1.2.0", UpdateTier.MINOR)]
        body = render_pull_request_body(PY_MANIFEST, updates, held_back=2, generated_at=FIXED_NOW)

        assert "Security verification was not performed for 1 of 1 updates" in body
        assert "2 outdated dependencies were held back" in body
        assert "| Not checked |" in body
        assert "## 🛡️ Vulnerability Details" not in body

    def test_testing_instructions_per_ecosystem(self):
        updates = [_update("flask", "==1.0.0", "1.2.0", UpdateTier.MINOR, _safe_verdict())]
        body = render_pull_request_body(PY_MANIFEST, updates, generated_at=FIXED_NOW)
        assert "1. Run `pip install -r requirements.txt` to install updated dependencies" in body

        body = render_pull_request_body(NPM_MANIFEST, updates, generated_at=FIXED_NOW)
        assert "1. Run `npm install` to install updated dependencies" in body

    def test_title(self):
        updates = [_update("a", "1.0.0", "1.0.1", UpdateTier.PATCH)] * 2
        assert pull_request_title(updates) == "📦 Dependency Updates (2)"


class TestAuditReport:
    """Test the per-repository security report."""

    def test_summary_and_sections(self):
        updates = [
            _update("flask", "==1.0.0", "1.2.0", UpdateTier.MINOR, _safe_verdict()),
            _update("requests", ">=2.0.0", "3.0.0", UpdateTier.MAJOR, unsafe_verdict()),
            _update("django", "==3.2.0", "5.0.0", UpdateTier.MAJOR, skip_reason="major updates are disabled by the update policy"),
        ]
        report = render_audit_report("acme/service", updates, generated_at=FIXED_NOW)

        assert report.startswith("# Security Report for acme/service\n")
        assert f"Generated: {FIXED_NOW.isoformat()}" in report
        assert "- Total dependencies checked: 3" in report
        assert "- Safe to update: 1" in report
        assert "- Unsafe (vulnerabilities found): 1" in report
        assert "- Skipped (error or not checked): 1" in report

        vulnerable = _section(report, "## Vulnerable Dependencies (Not Updated)")
        assert "### requests" in vulnerable
        assert "[CVE-2023-32681](https://nvd.nist.gov/vuln/detail/CVE-2023-32681) (high)" in vulnerable
        assert "<summary>Full security details</summary>" in vulnerable

        assert "### flask" in _section(report, "## Safe Dependencies (Updated)")

        skipped = _section(report, "## Skipped Dependencies")
        assert "### django" in skipped
        assert "Reason: major updates are disabled by the update policy" in skipped

    def test_sections_omitted_when_empty(self):
        updates = [_update("flask", "==1.0.0", "1.2.0", UpdateTier.MINOR, _safe_verdict())]
        report = render_audit_report("acme/service", updates, generated_at=FIXED_NOW)

        assert "## Vulnerable Dependencies" not in report
        assert "## Skipped Dependencies" not in report

    def test_write_report(self, tmp_path):
        path = write_report(tmp_path / "reports", "acme/service", "# Report\n", FIXED_NOW)

        assert path.parent == tmp_path / "reports"
        assert path.name.startswith("acme-service-security-report-2024-05-01T12-00-00")
        assert path.suffix == ".md"
        assert path.read_text(encoding="utf-8") == "# Report\n"
