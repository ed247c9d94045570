"""Shared fixtures: settings builders, fake provider transport, submissions."""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
import pytest

from proof_pipeline.config.settings import Settings
from proof_pipeline.data_management.schemas import Enrichment, Submission

UNCONFIGURED: dict[str, Any] = {
    "openai_api_key": None,
    "pinata_jwt": None,
    "anchor_api_url": None,
    "anchor_api_token": None,
    "elevenlabs_api_key": None,
    "google_translate_api_key": None,
    "deepfake_api_key": None,
}

CONFIGURED: dict[str, Any] = {
    "openai_api_key": "sk-test",
    "pinata_jwt": "pinata-test",
    "anchor_api_url": "https://anchor.test",
    "anchor_api_token": "anchor-test",
    "elevenlabs_api_key": "eleven-test",
    "google_translate_api_key": "google-test",
    "deepfake_api_key": "deepfake-test",
}

ANALYSIS_REPLY = {
    "summary": "Flood water covers the road next to the river bridge.",
    "key_facts": ["Road is flooded", "Bridge access closed"],
    "event_tags": ["flood", "infrastructure"],
    "sentiment": "negative",
    "urgency_level": 6,
    "credibility_score": 88,
    "contextual_flags": [],
}

VISION_REPLY = {
    "description": "A flooded street with a bridge in the background.",
    "authenticity_indicators": ["Consistent shadows"],
    "suspicious_elements": [],
    "overall_credibility": 85,
}


def make_settings(configured: bool = False, **overrides: Any) -> Settings:
    values = dict(CONFIGURED if configured else UNCONFIGURED)
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeProviders:
    """httpx handler that answers like every real provider.

    ``overrides`` maps a URL path suffix to a callable returning a response,
    so tests can inject failures per endpoint. Every request is recorded.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.overrides: dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def count(self, suffix: str) -> int:
        return sum(1 for path in self.paths() if path.endswith(suffix))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for suffix, responder in self.overrides.items():
            if path.endswith(suffix):
                return responder(request)

        if path.endswith("/moderations"):
            return httpx.Response(
                200,
                json={
                    "results": [
                        {
                            "flagged": False,
                            "categories": {"violence": False, "hate": False},
                            "category_scores": {"violence": 0.01, "hate": 0.002},
                        }
                    ]
                },
            )
        if path.endswith("/chat/completions"):
            body = json.loads(request.content)
            reply = ANALYSIS_REPLY if body["messages"][0]["role"] == "system" else VISION_REPLY
            return httpx.Response(
                200,
                json={"choices": [{"message": {"content": json.dumps(reply)}}]},
            )
        if path.endswith("/audio/transcriptions"):
            return httpx.Response(
                200,
                json={
                    "text": "The river has burst its banks near the bridge.",
                    "language": "en",
                    "duration": 12.5,
                    "segments": [
                        {"start": 0.0, "end": 12.5, "text": "The river has burst its banks near the bridge."}
                    ],
                },
            )
        if path.endswith("/pinning/pinFileToIPFS"):
            return httpx.Response(
                200,
                json={
                    "IpfsHash": "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi",
                    "PinSize": 2048,
                    "Timestamp": "2026-03-02T14:12:00Z",
                },
            )
        if path.endswith("/v1/anchors"):
            return httpx.Response(200, json={"tx_id": "TXREAL123", "confirmed_round": 4242})
        if path.endswith("/detect"):
            return httpx.Response(200, json={"confidence": 12, "is_deepfake": False})
        if "/text-to-speech/" in path:
            return httpx.Response(200, content=b"ID3-fake-mpeg-audio")
        if path.endswith("/language/translate/v2"):
            return httpx.Response(
                200,
                json={"data": {"translations": [{"translatedText": "traducido", "detectedSourceLanguage": "en"}]}},
            )
        return httpx.Response(404, json={"error": f"unexpected path {path}"})


def network_forbidden(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected network call to {request.url}")


def make_submission(
    file_name: str = "flood.jpg",
    content: Optional[bytes] = b"\xff\xd8\xff\xe0 fake jpeg bytes",
    description: Optional[str] = "Street flooding near the bridge",
    with_location: bool = True,
    **kwargs: Any,
) -> Submission:
    enrichment = Enrichment(
        description=description,
        location="29.7604,-95.3698" if with_location else None,
        captured_at=datetime(2026, 3, 2, 14, 10, tzinfo=timezone.utc) if with_location else None,
        capture_method="camera",
    )
    return Submission(file_name=file_name, content=content, enrichment=enrichment, **kwargs)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def offline_settings() -> Settings:
    return make_settings(configured=False)


@pytest.fixture
def online_settings() -> Settings:
    return make_settings(configured=True)


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


@pytest.fixture
def forbidden_transport() -> httpx.MockTransport:
    return httpx.MockTransport(network_forbidden)
