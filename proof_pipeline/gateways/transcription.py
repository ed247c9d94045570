"""Speech-to-text for audio and video submissions (OpenAI Whisper)."""

import asyncio

from proof_pipeline.data_management.schemas.capability_schema import (
    Transcript,
    TranscriptSegment,
)
from proof_pipeline.data_management.schemas.submission_schema import Submission
from proof_pipeline.gateways.base_gateway import GatewayResponseError, stable_number
from proof_pipeline.gateways.openai_gateway import OpenAIGateway

MOCK_TRANSCRIPTS = (
    "This is a field report recorded at the scene. Water levels are rising quickly "
    "near the main bridge and several roads are already closed.",
    "Reporting from downtown. A large crowd has gathered peacefully outside city hall "
    "and police are directing traffic around the square.",
    "Emergency crews are on site after a collision at the intersection. Two vehicles "
    "are involved and paramedics are treating people at the scene.",
    "Power has been out in this neighbourhood since the storm passed through last night. "
    "Several trees are down across the road.",
)

# Rough bytes per second for compressed speech (~128 kbps).
BYTES_PER_SECOND = 16_000


class TranscriptionGateway(OpenAIGateway[Submission, Transcript]):
    name = "transcription"

    async def _call(self, request: Submission) -> Transcript:
        try:
            data = await asyncio.to_thread(request.read_artifact)
        except OSError as e:
            raise GatewayResponseError(f"artifact unreadable: {e}") from e

        response = await self._request(
            "POST",
            f"{self._base_url}/audio/transcriptions",
            headers=self._headers,
            files={"file": (request.file_name, data, request.mime_type)},
            data={"model": "whisper-1", "response_format": "verbose_json"},
        )
        payload = self._json(response)

        return Transcript(
            text=payload["text"],
            language=payload.get("language") or "en",
            duration_seconds=float(payload.get("duration") or 0.0),
            segments=[
                TranscriptSegment(start=s["start"], end=s["end"], text=s["text"])
                for s in payload.get("segments") or []
            ],
        )

    def _mock(self, request: Submission) -> Transcript:
        text = MOCK_TRANSCRIPTS[stable_number(request.fingerprint(), len(MOCK_TRANSCRIPTS))]
        duration = round((request.size_bytes or 0) / BYTES_PER_SECOND, 1)
        return Transcript(
            text=text,
            language="en",
            duration_seconds=duration,
            segments=[TranscriptSegment(start=0.0, end=duration, text=text)],
        )
