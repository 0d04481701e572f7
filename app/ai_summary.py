"""
AI summary generator for journal entries.
Uses Anthropic Claude to turn a day's entry into bullet points and a month
of entries into a structured review.
"""
import logging
import os
from typing import Any, Dict, List, Optional

import anthropic

from app.services.content import has_meaningful_content
from app.services.errors import GenerationFailed
from app.services.summary_format import (
    clean_daily_summary,
    normalize_keywords,
    normalize_monthly_summary,
    parse_json_reply,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-haiku-latest"

DAILY_SYSTEM_PROMPT = (
    "You summarize personal journal entries. Split the entry into 2-5 independent "
    "points, one per line, each under 30 characters. Output only the points, with "
    "no numbering or bullet symbols, in the same language as the entry."
)

MONTHLY_SYSTEM_PROMPT = (
    "You are a learning and growth review expert. Read a month of journal entries "
    "and reply with a single JSON object only."
)

KEYWORD_SYSTEM_PROMPT = (
    "You extract keywords from journal summaries. Keywords are the objects of what "
    "was done (what was learned, solved or built), never the verbs or time words. "
    "Reply with a single JSON object only."
)


class SummaryGenerator:
    """Asynchronous Claude client for daily and monthly summaries."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")
        self.model = model or os.getenv("SUMMARY_MODEL", DEFAULT_MODEL)
        timeout = float(os.getenv("SUMMARY_TIMEOUT_SECONDS", "60"))
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def _complete(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        """Send one system+user exchange and return the text reply."""
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise GenerationFailed(f"Summary API error: {e}") from e

        text = "".join(block.text for block in response.content if block.type == "text")
        return text.strip()

    async def generate_daily_summary(self, content: str) -> str:
        """Bullet-point synopsis of one entry, or "" for meaningless content."""
        if not has_meaningful_content(content):
            return ""

        prompt = f"""Analyze the journal entry below and extract 2-5 key points.
Each point should be a separate learning, event or reflection.

Journal entry:
{content}

Rules:
1. One point per line
2. Each point under 30 characters
3. Do not merge everything into a single point
4. No numbering, bullets or extra text"""

        reply = await self._complete(DAILY_SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=200)
        return clean_daily_summary(reply, content)

    async def generate_monthly_summary(self, merged_content: str, year: int, month: int) -> Dict[str, Any]:
        """Structured review of a month of merged entries."""
        prompt = f"""Below are all journal entries for {year}-{month:02d}, merged in date order.

Write the monthly learning and growth review:
1. overview: 200-300 characters on how the month went, main achievements and growth
2. takeaways: the 5-8 most important lessons
3. themes: 3-5 learning themes, each with a name and a short description
4. keywords: 15-20 keywords with how often each appears; keywords are the objects
   of what was done ("learned Next.js" -> "Next.js"), kept as whole concepts

Entries:
{merged_content}

Reply as JSON:
{{"overview": "...", "takeaways": ["..."], "themes": [{{"name": "...", "description": "..."}}],
 "keywords": [{{"word": "...", "count": 1}}]}}"""

        reply = await self._complete(MONTHLY_SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=3000)
        return normalize_monthly_summary(parse_json_reply(reply))

    async def extract_keywords(self, summaries: List[str]) -> List[Dict[str, Any]]:
        """Keyword frequencies across daily summaries."""
        if not summaries:
            return []

        joined = "\n".join(summaries)
        prompt = f"""Extract keywords from every summary below and count occurrences.

Summaries (one per line, a summary may span several points):
{joined}

Reply as JSON: {{"keywords": [{{"word": "...", "count": 1}}]}}"""

        reply = await self._complete(KEYWORD_SYSTEM_PROMPT, prompt, temperature=0.5, max_tokens=1000)
        return normalize_keywords(parse_json_reply(reply).get("keywords"))


class UnconfiguredSummaryGenerator:
    """Stand-in used when no API key is set: every call fails as a generation error."""

    async def generate_daily_summary(self, content: str) -> str:
        raise GenerationFailed("ANTHROPIC_API_KEY is not configured")

    async def generate_monthly_summary(self, merged_content: str, year: int, month: int) -> Dict[str, Any]:
        raise GenerationFailed("ANTHROPIC_API_KEY is not configured")

    async def extract_keywords(self, summaries: List[str]) -> List[Dict[str, Any]]:
        raise GenerationFailed("ANTHROPIC_API_KEY is not configured")


def get_summary_generator():
    """Build the configured generator; entries still save without one."""
    try:
        return SummaryGenerator()
    except ValueError as e:
        logger.warning(f"{e}. AI summaries will not be generated.")
        return UnconfiguredSummaryGenerator()
