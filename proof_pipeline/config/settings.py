"""Application settings using Pydantic BaseSettings for environment variable management."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Global application settings loaded from environment variables.

    Every provider credential is optional. A capability whose credential is
    missing runs in mock mode and reports its results as mocked.

    Attributes:
        openai_api_key: OpenAI key (moderation, transcription, analysis, vision)
        pinata_jwt: Pinata JWT for IPFS pinning
        anchor_api_url: Base URL of the blockchain anchoring relay
        anchor_api_token: Bearer token for the anchoring relay
        elevenlabs_api_key: ElevenLabs key for narration
        google_translate_api_key: Google Cloud Translation key
        deepfake_api_key: Deepfake detection service key
        deepfake_confidence_scale: Scale of the detector's confidence field
        gateway_timeout_seconds: Upper bound for any single provider call
        offline_queue_path: JSON file backing the offline queue
        proof_store_path: JSON file backing the proof store
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
    """

    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API base URL",
    )
    openai_chat_model: str = Field(
        default="gpt-4o",
        description="Chat model used for content analysis and image verification",
    )
    openai_max_rpm: int = Field(
        default=60,
        description="Maximum OpenAI requests per minute shared across capabilities",
    )
    pinata_jwt: str | None = Field(default=None, description="Pinata JWT")
    pinata_api_url: str = Field(
        default="https://api.pinata.cloud",
        description="Pinata API base URL",
    )
    ipfs_gateway_url: str = Field(
        default="https://gateway.pinata.cloud/ipfs",
        description="Public gateway used to build content URLs",
    )
    anchor_api_url: str | None = Field(
        default=None,
        description="Anchoring relay base URL (e.g. an Algorand note relay)",
    )
    anchor_api_token: str | None = Field(
        default=None,
        description="Bearer token for the anchoring relay",
    )
    anchor_network: str = Field(default="testnet", description="Ledger network name")
    elevenlabs_api_key: str | None = Field(default=None, description="ElevenLabs API key")
    elevenlabs_voice_id: str = Field(
        default="pNInz6obpgDQGcFmaJgB",
        description="Default narration voice",
    )
    google_translate_api_key: str | None = Field(
        default=None,
        description="Google Cloud Translation API key",
    )
    deepfake_api_key: str | None = Field(default=None, description="Deepfake detection API key")
    deepfake_api_url: str = Field(
        default="https://api.sensity.ai/v1",
        description="Deepfake detection API base URL",
    )
    deepfake_confidence_scale: Literal["percent", "probability"] = Field(
        default="percent",
        description="Whether the detector reports confidence as 0-100 or a 0-1 probability",
    )
    gateway_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout applied to every provider HTTP call",
    )
    translation_targets: list[str] = Field(
        default_factory=lambda: ["es", "fr"],
        description="Languages the report summary is translated into",
    )
    narration_enabled: bool = Field(
        default=True,
        description="Narrate the analysis summary during enrichment",
    )
    offline_queue_path: str = Field(
        default="data/offline_queue.json",
        description="Durable offline queue file",
    )
    offline_queue_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Unresolved drain attempts before a queued submission is parked",
    )
    proof_store_path: str = Field(
        default="data/proofs.json",
        description="Durable proof and report store file",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: json or console"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Singleton instance - import this throughout the application
settings = Settings()
