"""Generate keywords and descriptions for client target pages using LLMs."""

from __future__ import annotations

import json
import logging
from typing import Any

import openai

from linkdesk.config import LLMConfig, get_config
from linkdesk.core.errors import EnrichmentError
from linkdesk.db.models import TargetPageModel, utcnow

logger = logging.getLogger(__name__)


class TargetPageEnricher:
    """Fill in missing keywords and descriptions on target pages."""

    KEYWORDS_PROMPT = """You are an SEO strategist preparing guest-post briefs.

Given a target page URL, list the search keywords a guest post linking to it
should be built around. Prefer specific commercial and informational phrases
over single generic words.

Return a JSON object with this exact structure:
{"keywords": ["keyword one", "keyword two"]}"""

    DESCRIPTION_PROMPT = """You are an SEO strategist preparing guest-post briefs.

Given a target page URL, write a 1-2 sentence description of what the page
offers, suitable for briefing a writer who has never seen the site.

Return a JSON object with this exact structure:
{"description": "..."}"""

    def __init__(self, config: LLMConfig | None = None, client: Any | None = None):
        self.config = config or get_config().llm
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None or self.config.enabled

    @property
    def client(self):
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self.config.api_key)
        return self._client

    async def generate_keywords(self, url: str) -> list[str]:
        """Ask the LLM for keywords for a target page.

        Raises:
            EnrichmentError: If the call fails or the output is malformed
        """
        data = await self._complete(self.KEYWORDS_PROMPT, f"Target URL: {url}")
        keywords = data.get("keywords")
        if not isinstance(keywords, list):
            raise EnrichmentError(f"Malformed keyword output for {url}")

        cleaned = []
        for kw in keywords:
            if isinstance(kw, str) and kw.strip() and kw.strip().lower() not in cleaned:
                cleaned.append(kw.strip().lower())
        if not cleaned:
            raise EnrichmentError(f"No keywords generated for {url}")
        return cleaned[: self.config.max_keywords]

    async def generate_description(self, url: str) -> str:
        """Ask the LLM for a short description of a target page.

        Raises:
            EnrichmentError: If the call fails or the output is malformed
        """
        data = await self._complete(self.DESCRIPTION_PROMPT, f"Target URL: {url}")
        description = data.get("description")
        if not isinstance(description, str) or not description.strip():
            raise EnrichmentError(f"Malformed description output for {url}")
        return description.strip()

    async def enrich(self, page: TargetPageModel) -> list[str]:
        """Backfill whatever the page is missing. Returns the fields updated.

        The page object is modified in place; the caller owns the session.
        """
        updated = []
        if not page.keywords:
            keywords = await self.generate_keywords(page.url)
            page.keywords = ", ".join(keywords)
            updated.append("keywords")
        if not page.description:
            page.description = await self.generate_description(page.url)
            updated.append("description")
        if updated:
            page.updated_at = utcnow()
        return updated

    async def _complete(self, system_prompt: str, user_prompt: str) -> dict:
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise EnrichmentError(f"LLM request failed: {e}") from e

        content = response.choices[0].message.content or "{}"
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise EnrichmentError("LLM returned invalid JSON") from e
        if not isinstance(data, dict):
            raise EnrichmentError("LLM returned a non-object JSON value")
        return data


def needs_enrichment(page: TargetPageModel) -> bool:
    return not page.keywords or not page.description
