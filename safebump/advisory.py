"""Structured verdicts from free-text security assessments.

The assessment text is expected (but not guaranteed) to be organised in four
sections: current version vulnerabilities, new version vulnerabilities,
security improvement and overall assessment. Extraction is heuristic and
errs towards an unsafe verdict whenever the text is not an explicit,
clean safety statement.
"""

import re

from .models import SecurityVerdict, Vulnerability

CURRENT_VERSION_SECTION = "CURRENT VERSION VULNERABILITIES"
NEW_VERSION_SECTION = "NEW VERSION VULNERABILITIES"
IMPROVEMENT_SECTION = "SECURITY IMPROVEMENT"
ASSESSMENT_SECTION = "OVERALL ASSESSMENT"

SECTION_TITLES = (
    CURRENT_VERSION_SECTION,
    NEW_VERSION_SECTION,
    IMPROVEMENT_SECTION,
    ASSESSMENT_SECTION,
)

ADVISORY_ID = re.compile(r"\b(?:CVE-\d{4}-\d{4,}|GHSA(?:-[a-z0-9]{4}){3})\b", re.IGNORECASE)
URL = re.compile(r"https?://[^\s<>\"'`)\]]+")
SEVERITY = re.compile(r"\b(critical|high|medium|moderate|low)\b", re.IGNORECASE)

# Negated or questioned safety wording: "unsafe", "not considered safe",
# "cannot be confirmed as safe", "isn't safe", "Is it safe? No.", "Safe: no".
UNSAFE_MARKERS = re.compile(
    r"\bun-?safe\b"
    r"|(?:\b(?:not|no|never|cannot)\b|n[’']t\b)(?:[^\w.!?\n]+\w+){0,4}?[^\w.!?\n]+safe\b"
    r"|\bsafe\b\s*\?"
    r"|\bsafe\b\s*[:\-]\s*(?:no|false)\b",
    re.IGNORECASE,
)
# A line whose leading word is the verdict, optionally after a label.
SAFE_VERDICT = re.compile(
    r"^[\s\-*•>#]*(?:(?:recommendation|verdict|assessment|overall\s+assessment)\s*:\s*)?\**safe\b",
    re.IGNORECASE | re.MULTILINE,
)
RISK_VOCABULARY = re.compile(
    r"\b(?:vulnerab\w*|security\s+issues?|advisor(?:y|ies)|exploit\w*|cve)\b",
    re.IGNORECASE,
)
# A section that opens with a denial ("None.", "No known vulnerabilities.").
CLEAR_SECTION = re.compile(r"^\W*(?:none\b|no\b|n/a\b)", re.IGNORECASE)

# How far past an identifier to look for its description, URL and severity.
DETAIL_WINDOW = 400
SEVERITY_LOOKBEHIND = 50

_LABEL_ONLY = re.compile(
    r"^(?:severity|cvss(?:\s+score)?|url|link|reference|references|details|source)\b",
    re.IGNORECASE,
)
_SEPARATORS = " \t\r\n-*•:|>#"
_LEADING_NOISE = re.compile(
    r"^(?:[\s\-*•:|>#)\]]+|\([^)]*\)|description\s*[:\-]|(?:critical|high|medium|moderate|low)(?:\s+severity)?\s*[:\-])+",
    re.IGNORECASE,
)


def canonical_advisory_id(raw: str) -> str:
    """Upper-case CVE identifiers, lower-case GHSA bodies."""
    if raw.upper().startswith("GHSA-"):
        return "GHSA-" + raw[5:].lower()
    return raw.upper()


def advisory_url(advisory_id: str) -> str:
    """Canonical reference URL for an advisory identifier."""
    if advisory_id.startswith("GHSA-"):
        return f"https://github.com/advisories/{advisory_id}"
    return f"https://nvd.nist.gov/vuln/detail/{advisory_id}"


def _heading(title: str) -> re.Pattern:
    return re.compile(r"^[\s#*\d.)]*" + re.escape(title), re.IGNORECASE | re.MULTILINE)


def _find_title(text: str, title: str, start: int = 0) -> re.Match | None:
    # Prefer the title at the start of a line, fall back to anywhere in the text.
    return _heading(title).search(text, start) or re.compile(re.escape(title), re.IGNORECASE).search(
        text, start
    )


def extract_section(text: str, title: str) -> str:
    """Return the body of a titled section, up to the next known section title."""
    match = _find_title(text, title)
    if not match:
        return ""

    body_start = match.end()
    body_end = len(text)
    for other in SECTION_TITLES:
        if other == title:
            continue
        following = _find_title(text, other, body_start)
        if following and following.start() < body_end:
            body_end = following.start()

    return text[body_start:body_end].strip(" \t\r\n:*#")


def _describe(window: str) -> str:
    text = URL.sub("", window)
    for candidate in re.split(r"(?<=\.)\s+|\n", text):
        candidate = _LEADING_NOISE.sub("", candidate).strip().rstrip(".").strip(_SEPARATORS)
        if not candidate or _LABEL_ONLY.match(candidate) or SEVERITY.fullmatch(candidate):
            continue
        if ADVISORY_ID.fullmatch(candidate):
            continue
        return candidate
    return ""


def _severity(section: str, id_start: int, id_end: int, window_end: int, floor: int) -> str:
    found = SEVERITY.search(section, id_end, window_end)
    if not found:
        found = SEVERITY.search(section, max(floor, id_start - SEVERITY_LOOKBEHIND), id_start)
    if not found:
        return "unknown"
    severity = found.group(1).lower()
    return "medium" if severity == "moderate" else severity


def extract_vulnerabilities(section: str) -> list[Vulnerability]:
    """Pull advisory records out of a section of free text.

    Each identifier is paired with the first descriptive sentence, the first
    URL and the closest severity keyword that follow it, without reading
    past the next distinct identifier. A section without identifiers yields
    an empty list.
    """
    if not section:
        return []

    url_spans = [match.span() for match in URL.finditer(section)]
    mentions = [
        (match.start(), match.end(), canonical_advisory_id(match.group(0)))
        for match in ADVISORY_ID.finditer(section)
        if not any(start <= match.start() < end for start, end in url_spans)
    ]

    vulnerabilities: list[Vulnerability] = []
    seen: set[str] = set()
    previous_end = 0

    for index, (start, end, advisory_id) in enumerate(mentions):
        if advisory_id in seen:
            continue
        seen.add(advisory_id)

        window_end = min(len(section), end + DETAIL_WINDOW)
        for next_start, _, next_id in mentions[index + 1:]:
            if next_id != advisory_id:
                window_end = min(window_end, next_start)
                break
        window = section[end:window_end]

        url_match = URL.search(window)
        url = url_match.group(0).rstrip(".,;:") if url_match else advisory_url(advisory_id)

        vulnerabilities.append(
            Vulnerability(
                id=advisory_id,
                severity=_severity(section, start, end, window_end, previous_end),
                description=_describe(window) or "No description available",
                url=url,
            )
        )
        previous_end = end

    return vulnerabilities


def is_clean_safety_statement(
    text: str, assessment: str, new_vulnerabilities: list[Vulnerability], new_version_section: str = ""
) -> bool:
    """Decide whether an assessment explicitly clears the upgrade.

    The overall assessment (or the whole text when it has no such section)
    must carry a line that leads with a SAFE verdict and must not negate or
    question safety anywhere. Any advisory attributed to the new version, or
    risk vocabulary in a new-version section that does not open with a
    denial ("None", "No known vulnerabilities"), makes the text unsafe.
    """
    if not text.strip():
        return False
    if new_vulnerabilities:
        return False
    if RISK_VOCABULARY.search(new_version_section) and not CLEAR_SECTION.match(new_version_section):
        return False

    scope = assessment or text
    if UNSAFE_MARKERS.search(scope):
        return False

    return bool(SAFE_VERDICT.search(scope))


def parse_security_response(text: str) -> SecurityVerdict:
    """Turn a free-text assessment into a structured verdict.

    Args:
        text: The assessment text returned by the security oracle

    Returns:
        Verdict with vulnerabilities attributed to the current and new versions
    """
    text = text or ""
    current_vulnerabilities = extract_vulnerabilities(extract_section(text, CURRENT_VERSION_SECTION))
    new_version_section = extract_section(text, NEW_VERSION_SECTION)
    new_vulnerabilities = extract_vulnerabilities(new_version_section)
    assessment = extract_section(text, ASSESSMENT_SECTION)

    return SecurityVerdict(
        safe=is_clean_safety_statement(text, assessment, new_vulnerabilities, new_version_section),
        current_version_vulnerabilities=current_vulnerabilities,
        new_version_vulnerabilities=new_vulnerabilities,
        improvements=extract_section(text, IMPROVEMENT_SECTION),
        assessment=assessment,
        details=text,
    )
