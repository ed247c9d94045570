"""Manipulation detection for images and video."""

import asyncio
from typing import Any, Literal, Optional

from proof_pipeline.data_management.schemas.capability_schema import (
    DeepfakeAssessment,
    RiskLevel,
)
from proof_pipeline.data_management.schemas.submission_schema import Submission
from proof_pipeline.gateways.base_gateway import (
    CapabilityGateway,
    GatewayResponseError,
    stable_number,
)

REVIEW_THRESHOLD = 70.0

ConfidenceScale = Literal["percent", "probability"]


class DeepfakeGateway(CapabilityGateway[Submission, DeepfakeAssessment]):
    name = "deepfake_check"

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: str = "https://api.sensity.ai/v1",
        confidence_scale: ConfidenceScale = "percent",
        **kwargs: Any,
    ) -> None:
        if confidence_scale not in ("percent", "probability"):
            raise ValueError(f"unknown confidence scale: {confidence_scale!r}")
        self._api_key = api_key
        self._confidence_scale = confidence_scale
        self._api_url = api_url.rstrip("/")
        self.endpoint = f"{self._api_url}/detect"
        super().__init__(**kwargs)

    def _configured(self) -> bool:
        return bool(self._api_key)

    async def _call(self, request: Submission) -> DeepfakeAssessment:
        try:
            data = await asyncio.to_thread(request.read_artifact)
        except OSError as e:
            raise GatewayResponseError(f"artifact unreadable: {e}") from e

        response = await self._request(
            "POST",
            self.endpoint,
            headers={"Authorization": f"Bearer {self._api_key}"},
            files={"file": (request.file_name, data, request.mime_type)},
        )
        payload = self._json(response)

        confidence = float(payload["confidence"])
        if self._confidence_scale == "probability":
            confidence *= 100
        confidence = max(0.0, min(100.0, confidence))

        return DeepfakeAssessment(
            is_deepfake=bool(payload.get("is_deepfake", confidence >= 50)),
            confidence=round(confidence, 1),
            risk_level=RiskLevel.from_confidence(confidence),
            detection_method=payload.get("method", "sensity_api"),
            flagged_for_review=confidence > REVIEW_THRESHOLD,
            artifacts=[str(a) for a in payload.get("artifacts", [])],
        )

    def _mock(self, request: Submission) -> DeepfakeAssessment:
        confidence = float(stable_number(request.fingerprint(), 31))
        return DeepfakeAssessment(
            is_deepfake=False,
            confidence=confidence,
            risk_level=RiskLevel.from_confidence(confidence),
            detection_method="mock_heuristic",
            flagged_for_review=False,
            artifacts=[],
        )
