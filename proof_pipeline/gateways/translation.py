"""Translation of report text (Google Cloud Translation v2)."""

import re
from typing import Any, Optional

from proof_pipeline.data_management.schemas.capability_schema import (
    Translation,
    TranslationRequest,
)
from proof_pipeline.gateways.base_gateway import CapabilityGateway

MOCK_TERMS: dict[str, dict[str, str]] = {
    "es": {
        "emergency": "emergencia",
        "help": "ayuda",
        "fire": "fuego",
        "flood": "inundación",
        "police": "policía",
        "hospital": "hospital",
        "danger": "peligro",
        "accident": "accidente",
    },
    "fr": {
        "emergency": "urgence",
        "help": "aide",
        "fire": "feu",
        "flood": "inondation",
        "police": "police",
        "hospital": "hôpital",
        "danger": "danger",
        "accident": "accident",
    },
    "de": {
        "emergency": "Notfall",
        "help": "Hilfe",
        "fire": "Feuer",
        "flood": "Hochwasser",
        "police": "Polizei",
        "hospital": "Krankenhaus",
        "danger": "Gefahr",
        "accident": "Unfall",
    },
}


class TranslationGateway(CapabilityGateway[TranslationRequest, Translation]):
    name = "translation"
    endpoint = "https://translation.googleapis.com/language/translate/v2"

    def __init__(self, api_key: Optional[str] = None, **kwargs: Any) -> None:
        self._api_key = api_key
        super().__init__(**kwargs)

    def _configured(self) -> bool:
        return bool(self._api_key)

    async def _call(self, request: TranslationRequest) -> Translation:
        body: dict[str, Any] = {
            "q": request.text,
            "target": request.target_language,
            "format": "text",
        }
        if request.source_language:
            body["source"] = request.source_language

        response = await self._request(
            "POST",
            self.endpoint,
            params={"key": self._api_key},
            json=body,
        )
        translated = self._json(response)["data"]["translations"][0]

        return Translation(
            translated_text=translated["translatedText"],
            source_language=(
                request.source_language
                or translated.get("detectedSourceLanguage")
                or "en"
            ),
            target_language=request.target_language,
            confidence=0.95,
        )

    def _mock(self, request: TranslationRequest) -> Translation:
        target = request.target_language.lower()
        terms = MOCK_TERMS.get(target, {})
        text = request.text
        for english, translated in terms.items():
            text = re.sub(rf"\b{english}\b", translated, text, flags=re.IGNORECASE)

        if text == request.text:
            text = f"[{target.upper()}] {request.text}"

        return Translation(
            translated_text=text,
            source_language=request.source_language or "en",
            target_language=request.target_language,
            confidence=0.6 if terms else 0.3,
        )
