"""Construction and lookup of the full gateway set.

Gateways are built once from Settings and handed to the orchestrator.
Nothing inside a gateway reads global configuration.

Usage:
    from proof_pipeline.config.settings import settings
    from proof_pipeline.gateways.registry import build_gateways

    gateways = build_gateways(settings)
    print(gateways.availability())
"""

from dataclasses import dataclass, fields
from typing import Any, Optional

import httpx

from proof_pipeline.config.settings import Settings
from proof_pipeline.gateways.base_gateway import CapabilityGateway, QuotaBreaker
from proof_pipeline.gateways.blockchain_anchor import BlockchainAnchorGateway
from proof_pipeline.gateways.content_analysis import ContentAnalysisGateway
from proof_pipeline.gateways.deepfake import DeepfakeGateway
from proof_pipeline.gateways.hashing import HashingGateway
from proof_pipeline.gateways.image_verification import ImageVerificationGateway
from proof_pipeline.gateways.moderation import ModerationGateway
from proof_pipeline.gateways.narration import NarrationGateway
from proof_pipeline.gateways.rate_limiter import RateLimiter
from proof_pipeline.gateways.storage_upload import StorageUploadGateway
from proof_pipeline.gateways.transcription import TranscriptionGateway
from proof_pipeline.gateways.translation import TranslationGateway


@dataclass
class GatewaySet:
    """One gateway per capability."""

    moderation: ModerationGateway
    hashing: HashingGateway
    transcription: TranscriptionGateway
    content_analysis: ContentAnalysisGateway
    storage_upload: StorageUploadGateway
    blockchain_anchor: BlockchainAnchorGateway
    narration: NarrationGateway
    translation: TranslationGateway
    deepfake_check: DeepfakeGateway
    image_verification: ImageVerificationGateway

    def all(self) -> list[CapabilityGateway]:
        return [getattr(self, f.name) for f in fields(self)]

    def availability(self) -> dict[str, bool]:
        return {gateway.name: gateway.is_available() for gateway in self.all()}

    def status(self) -> list[dict[str, Any]]:
        return [gateway.status() for gateway in self.all()]

    def reset_quota(self) -> None:
        """Close every quota breaker (new billing period, topped-up account)."""
        for gateway in self.all():
            gateway.reset_quota()


def build_gateways(
    config: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GatewaySet:
    """Build the gateway set from settings.

    Args:
        config: Application settings carrying credentials and endpoints.
        transport: Optional httpx transport shared by all gateways (tests).
    """
    common: dict[str, Any] = {
        "timeout": config.gateway_timeout_seconds,
        "transport": transport,
    }

    # One OpenAI account backs four capabilities; quota and RPM are shared.
    openai_common: dict[str, Any] = {
        **common,
        "api_key": config.openai_api_key,
        "base_url": config.openai_base_url,
        "model": config.openai_chat_model,
        "quota_breaker": QuotaBreaker("openai"),
        "rate_limiter": RateLimiter(config.openai_max_rpm) if config.openai_api_key else None,
    }

    return GatewaySet(
        moderation=ModerationGateway(**openai_common),
        hashing=HashingGateway(**common),
        transcription=TranscriptionGateway(**openai_common),
        content_analysis=ContentAnalysisGateway(**openai_common),
        storage_upload=StorageUploadGateway(
            jwt=config.pinata_jwt,
            api_url=config.pinata_api_url,
            ipfs_gateway_url=config.ipfs_gateway_url,
            **common,
        ),
        blockchain_anchor=BlockchainAnchorGateway(
            api_url=config.anchor_api_url,
            api_token=config.anchor_api_token,
            network=config.anchor_network,
            **common,
        ),
        narration=NarrationGateway(
            api_key=config.elevenlabs_api_key,
            default_voice_id=config.elevenlabs_voice_id,
            **common,
        ),
        translation=TranslationGateway(api_key=config.google_translate_api_key, **common),
        deepfake_check=DeepfakeGateway(
            api_key=config.deepfake_api_key,
            api_url=config.deepfake_api_url,
            confidence_scale=config.deepfake_confidence_scale,
            **common,
        ),
        image_verification=ImageVerificationGateway(**openai_common),
    )
