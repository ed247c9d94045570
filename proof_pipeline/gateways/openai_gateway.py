"""Shared plumbing for gateways backed by the OpenAI API."""

import json
from typing import Any, Optional

from proof_pipeline.gateways.base_gateway import (
    CapabilityGateway,
    GatewayResponseError,
    OutputT,
    RequestT,
)


class OpenAIGateway(CapabilityGateway[RequestT, OutputT]):
    """Base for moderation, transcription, analysis and vision gateways.

    All of them bill against one account, so the registry hands them a
    single QuotaBreaker and RateLimiter.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        **kwargs: Any,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self.endpoint = self._base_url
        super().__init__(**kwargs)

    def _configured(self) -> bool:
        return bool(self._api_key)

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def _chat_json(self, messages: list[dict[str, Any]], max_tokens: int = 1500) -> dict[str, Any]:
        """Run a JSON-mode chat completion and return the parsed object."""
        response = await self._request(
            "POST",
            f"{self._base_url}/chat/completions",
            headers=self._headers,
            json={
                "model": self._model,
                "messages": messages,
                "response_format": {"type": "json_object"},
                "max_tokens": max_tokens,
                "temperature": 0.3,
            },
        )
        payload = self._json(response)
        content = payload["choices"][0]["message"]["content"]
        if not content:
            raise GatewayResponseError("empty completion")
        try:
            parsed = json.loads(content)
        except ValueError as e:
            raise GatewayResponseError(f"completion is not JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise GatewayResponseError("completion JSON is not an object")
        return parsed
