"""Security assessment of version transitions."""

import logging
from typing import Protocol

import httpx

from .advisory import (
    ASSESSMENT_SECTION,
    CURRENT_VERSION_SECTION,
    IMPROVEMENT_SECTION,
    NEW_VERSION_SECTION,
    parse_security_response,
)
from .ecosystems import handler_for
from .models import Ecosystem, SecurityVerdict

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-3-opus-20240229"

SYSTEM_PROMPT = (
    "You are a security researcher specializing in software dependency analysis. "
    "Provide factual information about known security vulnerabilities in the "
    "specified package versions."
)


class SecurityOracle(Protocol):
    """Assesses whether moving a package from one version to another is safe.

    Implementations must always return a verdict; failures are reported as an
    unsafe verdict, never raised.
    """

    async def assess_transition(
        self, name: str, current_version: str, latest_version: str, ecosystem: Ecosystem
    ) -> SecurityVerdict: ...


def build_security_prompt(name: str, current_version: str, latest_version: str, ecosystem: Ecosystem) -> str:
    """Create the assessment request for one version transition."""
    registry = handler_for(ecosystem).registry_name
    return f"""
I need to determine if updating {name} from version {current_version} to {latest_version} in the {registry} ecosystem is safe from a security perspective.

Please provide a security analysis with these specific sections:

1. {CURRENT_VERSION_SECTION}:
   - List all known CVEs or GitHub advisories affecting version {current_version} of {name}
   - For each one, provide: identifier, severity (critical, high, medium or low), a one-sentence description, and a URL to the advisory (from https://nvd.nist.gov/vuln/detail/ or another official source)

2. {NEW_VERSION_SECTION}:
   - List all known CVEs or GitHub advisories affecting version {latest_version} of {name}
   - Use the same format as above

3. {IMPROVEMENT_SECTION}:
   - Does the update from {current_version} to {latest_version} fix any known vulnerabilities?
   - Provide URLs to any security advisories or release notes that mention security fixes

4. {ASSESSMENT_SECTION}:
   - Give a clear "SAFE" or "UNSAFE" recommendation based solely on security considerations
   - Provide a brief security summary explaining your recommendation

If no vulnerabilities are known for a version, explicitly state "No known vulnerabilities" in its section."""


class AnthropicSecurityOracle:
    """Security oracle backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        max_tokens: int = 1000,
        api_url: str = ANTHROPIC_API_URL,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.api_url = api_url
        self._client = client

    async def assess_transition(
        self, name: str, current_version: str, latest_version: str, ecosystem: Ecosystem
    ) -> SecurityVerdict:
        logger.info("Checking vulnerabilities for %s (%s -> %s)", name, current_version, latest_version)
        try:
            prompt = build_security_prompt(name, current_version, latest_version, ecosystem)
            text = await self._complete(prompt)
            return parse_security_response(text)
        except httpx.TimeoutException:
            logger.error("Timeout checking vulnerabilities for %s", name)
            return SecurityVerdict.fail_closed("Error checking security: request timed out")
        except Exception as e:
            logger.error("Error checking vulnerabilities for %s: %s", name, e)
            return SecurityVerdict.fail_closed(f"Error checking security: {e}")

    async def _complete(self, prompt: str) -> str:
        """Send one prompt and return the concatenated text blocks of the reply.

        Raises:
            httpx.HTTPError: On network failures and error responses
            ValueError: If the reply carries no text
        """
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": 0,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        if self._client is not None:
            response = await self._client.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
        response.raise_for_status()

        blocks = response.json().get("content") or []
        text = "\n".join(
            block.get("text", "") for block in blocks if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text.strip():
            raise ValueError("empty assessment in response")
        return text
