"""Text-to-speech narration of report summaries (ElevenLabs)."""

from typing import Any, Optional

from proof_pipeline.data_management.schemas.capability_schema import (
    Narration,
    NarrationRequest,
)
from proof_pipeline.gateways.base_gateway import CapabilityGateway

WORDS_PER_MINUTE = 150


def estimate_duration(text: str) -> float:
    return round(len(text.split()) / WORDS_PER_MINUTE * 60, 1)


class NarrationGateway(CapabilityGateway[NarrationRequest, Narration]):
    name = "narration"

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_voice_id: str = "pNInz6obpgDQGcFmaJgB",
        api_url: str = "https://api.elevenlabs.io/v1",
        **kwargs: Any,
    ) -> None:
        self._api_key = api_key
        self._default_voice_id = default_voice_id
        self._api_url = api_url.rstrip("/")
        self.endpoint = f"{self._api_url}/text-to-speech"
        super().__init__(**kwargs)

    def _configured(self) -> bool:
        return bool(self._api_key)

    async def _call(self, request: NarrationRequest) -> Narration:
        voice_id = request.voice_id or self._default_voice_id
        response = await self._request(
            "POST",
            f"{self.endpoint}/{voice_id}",
            headers={"xi-api-key": self._api_key, "Accept": "audio/mpeg"},
            json={
                "text": request.text,
                "model_id": "eleven_monolingual_v1",
                "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
            },
        )
        return Narration(
            voice_id=voice_id,
            text=request.text,
            duration_seconds=estimate_duration(request.text),
            audio_size_bytes=len(response.content),
        )

    def _mock(self, request: NarrationRequest) -> Narration:
        return Narration(
            voice_id=request.voice_id or self._default_voice_id,
            text=request.text,
            duration_seconds=estimate_duration(request.text),
            audio_size_bytes=0,
        )
