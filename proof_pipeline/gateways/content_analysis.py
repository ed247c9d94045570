"""AI content analysis: summary, key facts, event tags, urgency and credibility.

Real analysis uses an OpenAI chat completion in JSON mode. The mock derives
every field from keyword scanning of the request text.
"""

import re
from typing import Any

from proof_pipeline.data_management.schemas.capability_schema import (
    AnalysisRequest,
    ContentAnalysis,
)
from proof_pipeline.gateways.base_gateway import stable_number
from proof_pipeline.gateways.openai_gateway import OpenAIGateway

ANALYSIS_PROMPT = """You analyse citizen-submitted evidence for a verification service.
Return a JSON object with exactly these keys:
  summary (string, at most 3 sentences),
  key_facts (array of short factual statements),
  event_tags (array of lowercase tags such as flood, fire, protest, accident),
  sentiment ("positive", "neutral" or "negative"),
  urgency_level (integer 1-10),
  credibility_score (integer 0-100, how internally consistent and specific the account is),
  contextual_flags (array; include "unverified_claims" when the content asserts facts it cannot support).
"""

EVENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "emergency": ("emergency", "urgent", "help", "rescue"),
    "flood": ("flood", "water level", "rain", "submerged"),
    "fire": ("fire", "smoke", "burning", "blaze"),
    "protest": ("protest", "crowd", "march", "demonstration"),
    "accident": ("accident", "crash", "collision"),
    "violence": ("violence", "attack", "fight", "shooting"),
    "infrastructure": ("bridge", "road", "power", "outage"),
    "weather": ("storm", "hurricane", "tornado", "wind"),
}

URGENCY_KEYWORDS = ("emergency", "urgent", "help", "danger", "injured", "trapped", "fire")
NEGATIVE_WORDS = ("damage", "injured", "danger", "destroyed", "collision", "attack", "flood", "fire")
POSITIVE_WORDS = ("safe", "rescued", "restored", "peaceful", "recovered", "reopened")

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _clamp(value: Any, low: int, high: int, default: int) -> int:
    try:
        return max(low, min(high, int(value)))
    except (TypeError, ValueError):
        return default


class ContentAnalysisGateway(OpenAIGateway[AnalysisRequest, ContentAnalysis]):
    name = "content_analysis"

    async def _call(self, request: AnalysisRequest) -> ContentAnalysis:
        user_content = request.content
        if request.context:
            user_content = f"Context: {request.context}\n\nContent:\n{request.content}"

        data = await self._chat_json(
            [
                {"role": "system", "content": ANALYSIS_PROMPT},
                {"role": "user", "content": user_content},
            ]
        )

        sentiment = str(data.get("sentiment", "neutral")).lower()
        if sentiment not in ("positive", "neutral", "negative"):
            sentiment = "neutral"

        return ContentAnalysis(
            summary=data["summary"],
            key_facts=[str(f) for f in data.get("key_facts", [])],
            event_tags=[str(t).lower() for t in data.get("event_tags", [])],
            sentiment=sentiment,
            urgency_level=_clamp(data.get("urgency_level"), 1, 10, 5),
            credibility_score=_clamp(data.get("credibility_score"), 0, 100, 50),
            contextual_flags=[str(f) for f in data.get("contextual_flags", [])],
        )

    def _mock(self, request: AnalysisRequest) -> ContentAnalysis:
        text = request.content.strip()
        lowered = text.lower()
        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]

        tags = [tag for tag, words in EVENT_KEYWORDS.items() if any(w in lowered for w in words)]
        urgent = any(word in lowered for word in URGENCY_KEYWORDS)
        if urgent:
            urgency = 7 + stable_number(text, 3)
        else:
            urgency = 3 + stable_number(text, 5)

        negative = sum(word in lowered for word in NEGATIVE_WORDS)
        positive = sum(word in lowered for word in POSITIVE_WORDS)
        if negative > positive:
            sentiment = "negative"
        elif positive > negative:
            sentiment = "positive"
        else:
            sentiment = "neutral"

        flags = ["high_urgency", "requires_attention"] if urgency > 7 else []
        summary = sentences[0][:200] if sentences else "No descriptive content provided."

        return ContentAnalysis(
            summary=summary,
            key_facts=sentences[:3],
            event_tags=tags or ["general"],
            sentiment=sentiment,
            urgency_level=urgency,
            credibility_score=70 + stable_number(text, 30),
            contextual_flags=flags,
        )
