"""Vision-model authenticity review of still images."""

import asyncio
import base64

from proof_pipeline.data_management.schemas.capability_schema import ImageAssessment
from proof_pipeline.data_management.schemas.submission_schema import Submission
from proof_pipeline.gateways.base_gateway import GatewayResponseError, stable_number
from proof_pipeline.gateways.openai_gateway import OpenAIGateway

VISION_PROMPT = """Assess whether this image is an authentic, unedited photograph of a real scene.
Return a JSON object with keys:
  description (string),
  authenticity_indicators (array of strings),
  suspicious_elements (array of strings),
  overall_credibility (integer 0-100).
"""

MOCK_INDICATORS = (
    "Consistent lighting across the scene",
    "Natural sensor noise pattern",
    "Perspective lines converge plausibly",
    "No visible cloning or splicing seams",
)


class ImageVerificationGateway(OpenAIGateway[Submission, ImageAssessment]):
    name = "image_verification"

    async def _call(self, request: Submission) -> ImageAssessment:
        try:
            data = await asyncio.to_thread(request.read_artifact)
        except OSError as e:
            raise GatewayResponseError(f"artifact unreadable: {e}") from e

        image_url = f"data:{request.mime_type};base64,{base64.b64encode(data).decode('ascii')}"
        result = await self._chat_json(
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_PROMPT},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
            max_tokens=800,
        )

        return ImageAssessment(
            description=result["description"],
            authenticity_indicators=[str(i) for i in result.get("authenticity_indicators", [])],
            suspicious_elements=[str(s) for s in result.get("suspicious_elements", [])],
            overall_credibility=max(0, min(100, int(result["overall_credibility"]))),
        )

    def _mock(self, request: Submission) -> ImageAssessment:
        seed = request.fingerprint()
        start = stable_number(seed, len(MOCK_INDICATORS))
        indicators = [MOCK_INDICATORS[(start + i) % len(MOCK_INDICATORS)] for i in range(2)]
        return ImageAssessment(
            description=f"Image '{request.file_name}' submitted for verification",
            authenticity_indicators=indicators,
            suspicious_elements=[],
            overall_credibility=70 + stable_number(seed, 25),
        )
