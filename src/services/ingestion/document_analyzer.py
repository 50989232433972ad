"""LLM-powered document analysis.

Asks an :class:`~src.interfaces.llm_provider.ILLMProvider` for a title,
summary, tags, keywords, topic and sentiment for one document, and turns
the reply into a typed :class:`~src.models.document.DocumentAnalysis`.

The extraction flow:
1. The first 50,000 characters of the document are sent with a strict
   "respond with JSON only" prompt
2. The JSON object is located in the reply (markdown fences and prose
   around the object are tolerated)
3. Required fields are checked; a missing one raises :class:`AnalysisError`
4. Sentiment outside positive/negative/neutral is coerced to neutral, and
   ``sentiment_score`` is parsed as a float and clamped to [-1, 1]
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from src.models.document import DocumentAnalysis, Sentiment
from src.utils.errors import AnalysisError, LLMError

if TYPE_CHECKING:
    from src.interfaces.llm_provider import ILLMProvider

logger = structlog.get_logger(logger_name=__name__)

REQUIRED_FIELDS: tuple[str, ...] = (
    "title",
    "summary",
    "tags",
    "keywords",
    "topic",
    "sentiment",
    "sentiment_score",
)

_ANALYSIS_SYSTEM_PROMPT = "You are a document analysis expert. You respond only with valid JSON."

_ANALYSIS_USER_PROMPT = """\
Analyze the following document and provide structured metadata.

Document Name: {file_name}
Document Type: {file_type}
Document Content:
{content}

Please analyze this document and respond with a JSON object containing:
1. "title": A descriptive title for this document (5-10 words)
2. "summary": A comprehensive summary (200-500 words)
3. "tags": An array of 5-10 relevant tags
4. "keywords": An array of 10-15 important keywords
5. "topic": The main topic/category (e.g., "Legal", "Marketing", "Finance", "Technical", "HR", etc.)
6. "sentiment": Overall sentiment (must be exactly one of: "positive", "negative", or "neutral")
7. "sentiment_score": A numerical score from -1 (very negative) to 1 (very positive)

Respond ONLY with valid JSON, no additional text."""

_VALID_SENTIMENTS = frozenset(s.value for s in Sentiment)


class DocumentAnalyzer:
    """Produces structured metadata for a document using an LLM.

    Parameters
    ----------
    llm:
        The LLM provider used for analysis (injected, swappable).
    char_limit:
        Maximum characters of document content sent to the model.
    """

    def __init__(self, llm: ILLMProvider, char_limit: int = 50000) -> None:
        self._llm = llm
        self._char_limit = char_limit

    async def analyze(self, content: str, file_name: str, file_type: str) -> DocumentAnalysis:
        """Return the analysis for *content*.

        Raises
        ------
        AnalysisError
            If the reply is not JSON or lacks a required field.
        src.utils.errors.LLMError
            If the LLM call itself fails.
        """
        prompt = _ANALYSIS_USER_PROMPT.format(
            file_name=file_name,
            file_type=file_type,
            content=content[: self._char_limit],
        )
        try:
            response = await self._llm.complete(
                system_prompt=_ANALYSIS_SYSTEM_PROMPT,
                user_prompt=prompt,
                temperature=0.3,
                max_tokens=4000,
            )
        except LLMError as exc:
            raise AnalysisError(
                message=f"Document analysis failed: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

        analysis = self.parse_response(response)
        logger.info(
            "document_analyzed",
            file_name=file_name,
            topic=analysis.topic,
            sentiment=analysis.sentiment.value,
            keywords=len(analysis.keywords),
        )
        return analysis

    @staticmethod
    def parse_response(response: str) -> DocumentAnalysis:
        """Parse the raw LLM reply into a validated :class:`DocumentAnalysis`.

        Handles three reply shapes:
        1. Clean JSON: ``{"title": ..., ...}``
        2. Markdown-fenced JSON
        3. JSON embedded in prose
        """
        cleaned = response.strip()

        fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
        if fence_match:
            cleaned = fence_match.group(1).strip()
        else:
            brace_start = cleaned.find("{")
            brace_end = cleaned.rfind("}")
            if brace_start == -1 or brace_end <= brace_start:
                raise AnalysisError(message="Could not extract JSON from analysis response")
            cleaned = cleaned[brace_start : brace_end + 1]

        try:
            data: Any = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise AnalysisError(message=f"Analysis response is not valid JSON: {exc.msg}") from exc
        if not isinstance(data, dict):
            raise AnalysisError(message="Analysis response is not a JSON object")

        for field in REQUIRED_FIELDS:
            if field not in data:
                raise AnalysisError(message=f"Missing required field: {field}")

        sentiment = str(data.get("sentiment") or "").lower()
        if sentiment not in _VALID_SENTIMENTS:
            sentiment = Sentiment.NEUTRAL.value

        try:
            return DocumentAnalysis(
                title=str(data["title"] or ""),
                summary=str(data["summary"] or ""),
                tags=data["tags"],
                keywords=data["keywords"],
                topic=str(data["topic"] or ""),
                sentiment=Sentiment(sentiment),
                sentiment_score=_clamp_score(data["sentiment_score"]),
            )
        except (TypeError, ValidationError) as exc:
            raise AnalysisError(message="Invalid field types in analysis response") from exc


def _clamp_score(raw: Any) -> float:
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return max(-1.0, min(1.0, score))
