"""Content-safety screening gateway.

The real service is OpenAI's moderation endpoint. Its verdict is mapped to
an allow/review/block action; ``block`` halts the pipeline. Without a key the
mock looks for words starting with a fixed keyword list, so obviously harmful
text is still held back rather than waved through.
"""

import re
from typing import Any

from proof_pipeline.data_management.schemas.capability_schema import (
    ModerationAction,
    ModerationRequest,
    ModerationVerdict,
)
from proof_pipeline.gateways.openai_gateway import OpenAIGateway

BLOCK_CATEGORIES = ("sexual/minors", "child-exploitation", "illegal")
REVIEW_CATEGORIES = ("violence", "hate", "harassment", "self-harm")

MOCK_KEYWORDS = (
    "violence",
    "hate",
    "threat",
    "harm",
    "illegal",
    "inappropriate",
    "abuse",
    "harassment",
    "discrimination",
    "explicit",
)

CATEGORY_REASONS = {
    "violence": "Content contains violent imagery or descriptions",
    "hate": "Content contains hate speech or discriminatory language",
    "harassment": "Content may constitute harassment or bullying",
    "self-harm": "Content references self-harm or suicide",
    "sexual": "Content contains sexual or explicit material",
    "illegal": "Content may depict or promote illegal activities",
}


def determine_action(flagged: bool, categories: list[str]) -> ModerationAction:
    """Map a provider verdict to the pipeline action."""
    if not flagged:
        return ModerationAction.ALLOW
    if any(c in BLOCK_CATEGORIES for c in categories):
        return ModerationAction.BLOCK
    if any(c.split("/")[0] in REVIEW_CATEGORIES for c in categories):
        return ModerationAction.REVIEW
    return ModerationAction.ALLOW


def reason_for(categories: list[str]) -> str:
    for category in categories:
        reason = CATEGORY_REASONS.get(category.split("/")[0])
        if reason:
            return reason
    return "Content flagged for manual review"


class ModerationGateway(OpenAIGateway[ModerationRequest, ModerationVerdict]):
    name = "moderation"

    def __init__(self, *args: Any, moderation_model: str = "omni-moderation-latest", **kwargs: Any) -> None:
        self._moderation_model = moderation_model
        super().__init__(*args, **kwargs)

    async def _call(self, request: ModerationRequest) -> ModerationVerdict:
        response = await self._request(
            "POST",
            f"{self._base_url}/moderations",
            headers=self._headers,
            json={"model": self._moderation_model, "input": request.text},
        )
        result = self._json(response)["results"][0]

        flagged = bool(result["flagged"])
        categories = [name for name, hit in result.get("categories", {}).items() if hit]
        scores = result.get("category_scores", {})
        relevant = [scores.get(c, 0.0) for c in categories] or list(scores.values()) or [0.0]
        confidence = max(0.0, min(1.0, float(max(relevant))))

        return ModerationVerdict(
            flagged=flagged,
            categories=categories,
            confidence=confidence,
            action=determine_action(flagged, categories),
            reason=reason_for(categories) if flagged else None,
        )

    def _mock(self, request: ModerationRequest) -> ModerationVerdict:
        text = request.text.lower()
        hits = [keyword for keyword in MOCK_KEYWORDS if re.search(rf"\b{re.escape(keyword)}", text)]
        flagged = bool(hits)
        confidence = min(0.9, len(hits) * 0.3)

        if confidence > 0.7:
            action = ModerationAction.BLOCK
        elif flagged:
            action = ModerationAction.REVIEW
        else:
            action = ModerationAction.ALLOW

        return ModerationVerdict(
            flagged=flagged,
            categories=hits,
            confidence=round(confidence, 2),
            action=action,
            reason=f"Potentially inappropriate content detected: {', '.join(hits)}" if flagged else None,
        )
