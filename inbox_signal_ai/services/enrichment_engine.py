"""OpenAI-backed analysis of placement emails into EnrichmentResult."""

import json
import re
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from ..config import (
    ANALYSIS_CACHE_KEY_MAX,
    ANALYSIS_CACHE_TTL_SECONDS,
    LLM_TEMPERATURE,
    MAX_BODY_CHARS,
    MODEL_NAME,
    OPENAI_API_KEY,
)
from ..errors import EnrichmentError
from ..schemas.enrichment_result import EnrichmentResult
from ..utils.logger import get_logger
from ..utils.text_cleaner import truncate_body
from ..utils.ttl_cache import TTLCache
from .interfaces import EnrichmentEngine

logger = get_logger(__name__)

ANALYSIS_SYSTEM_PROMPT = """You are a highly specialized AI assistant for academic and recruitment analysis at VIT (Vellore Institute of Technology).
Return ONLY a valid JSON object.

CATEGORIZATION RULES (category field - pick the MOST SPECIFIC one):
- "internship" - Internship opportunities, summer internships, intern positions
- "job offer" - Full-time job offers, placement offers, FTE positions
- "ppt" - Pre-Placement Talks, company presentations, PPT schedules
- "workshop" - Workshops, bootcamps, training sessions, hackathons
- "exam" - Online assessments, tests, coding rounds, aptitude tests
- "interview" - Interview schedules, interview calls, HR rounds
- "result" - Results announcements, shortlists, selection lists
- "reminder" - Deadline reminders, follow-ups, last date notices
- "announcement" - General placement announcements, policy updates
- "registration" - Registration links, sign-up forms, application deadlines

TAGGING RULES (tags field - array of relevant tags):
Include ALL applicable tags from: ["urgent", "high-package", "dream-company", "mass-hiring", "off-campus", "on-campus", "remote", "hybrid", "wfh", "tier-1", "startup", "mnc", "govt", "psu", "core", "it", "non-tech", "fresher-friendly"]

JSON FIELDS: summary, category, tags, priority, company, role, deadline, applyLink, otherLinks,
eligibility, timings, salary, location, eventDetails, requirements, description, attachmentSummary.

JSON FIELD RULES:
- deadline: Use YYYY-MM-DD format or null.
- otherLinks: Must be an array of strings [].
- tags: Must be an array of strings [].
- eligibility, timings, salary, location, eventDetails, requirements: Must be a single string with \\n• bullet points.
- company, role, applyLink, description, attachmentSummary: Use a string or null.
- If data is missing, use null (not empty string).
- priority: "high" if deadline within 3 days or dream company, "medium" if within a week, "low" otherwise."""


def _parse_llm_json(text: str) -> Optional[Dict[str, Any]]:
    """Parse JSON from LLM response, stripping markdown code blocks if present."""
    raw = (text or "").strip()
    if raw.startswith("```"):
        raw = re.sub(r"^```(?:json)?\s*", "", raw)
        raw = re.sub(r"\s*```$", "", raw)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def analysis_cache_key(user_id: Optional[str], subject: str, snippet: str) -> str:
    """Key for the in-process analysis cache, capped in length."""
    return f"user:{user_id or ''}:{subject}:{snippet}"[:ANALYSIS_CACHE_KEY_MAX]


def build_user_prompt(subject: str, snippet: str, body: str) -> str:
    return f"Subject: {subject}\nSnippet: {snippet}\nBody: {truncate_body(body or '', MAX_BODY_CHARS)}"


class OpenAIEnrichmentEngine(EnrichmentEngine):
    """
    Chat-completions call in JSON mode. Results are memoized per
    (user, subject, snippet) for ANALYSIS_CACHE_TTL_SECONDS.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = MODEL_NAME,
        cache: Optional[TTLCache] = None,
        cache_ttl: float = ANALYSIS_CACHE_TTL_SECONDS,
    ) -> None:
        self._client = client
        self._model = model
        self._cache: TTLCache = cache if cache is not None else TTLCache()
        self._cache_ttl = cache_ttl

    @property
    def cache(self) -> TTLCache:
        return self._cache

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not OPENAI_API_KEY:
                raise EnrichmentError("OPENAI_API_KEY environment variable is not set")
            self._client = AsyncOpenAI(api_key=OPENAI_API_KEY)
        return self._client

    async def analyze(
        self,
        subject: str,
        snippet: str,
        body: str,
        user_id: Optional[str] = None,
    ) -> EnrichmentResult:
        key = analysis_cache_key(user_id, subject, snippet)
        cached, found = self._cache.lookup(key)
        if found:
            logger.info("Analysis cache hit for subject=%r", subject[:60])
            return cached

        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(subject, snippet, body)},
                ],
                temperature=LLM_TEMPERATURE,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise EnrichmentError(f"openai error: {e}") from e

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message or not choice.message.content:
            raise EnrichmentError("empty completion")
        parsed = _parse_llm_json(choice.message.content)
        if parsed is None:
            logger.warning("Unparseable LLM output for subject=%r: %s", subject[:60], choice.message.content[:200])
            raise EnrichmentError("LLM output is not a JSON object")
        try:
            result = EnrichmentResult.model_validate(parsed)
        except ValidationError as e:
            raise EnrichmentError(f"LLM output does not match schema: {e}") from e

        # invalid results are not memoized so a retry asks the model again
        if result.is_valid():
            self._cache.set(key, result, self._cache_ttl)
        return result
