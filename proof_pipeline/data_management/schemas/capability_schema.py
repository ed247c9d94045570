"""Capability request/response schemas and the uniform CapabilityResult envelope.

Every gateway returns a CapabilityResult whether the value came from the real
provider or from deterministic mock synthesis. ``origin`` is the only thing
that tells the two apart; mocked values must still satisfy these schemas.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Origin(str, Enum):
    """Where a capability value came from."""

    REAL = "real"
    MOCKED = "mocked"


class CapabilityResult(BaseModel, Generic[T]):
    """Uniform envelope returned by every capability gateway."""

    capability: str = Field(..., description="Capability name, e.g. 'moderation'")
    value: T = Field(..., description="Capability output")
    origin: Origin = Field(..., description="real or mocked")
    error: Optional[str] = Field(
        default=None,
        description="Why the real call was not used, when origin is mocked",
    )
    produced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_mocked(self) -> bool:
        return self.origin == Origin.MOCKED


# ── Moderation ────────────────────────────────────────────────────────────


class ModerationAction(str, Enum):
    ALLOW = "allow"
    REVIEW = "review"
    BLOCK = "block"


class ModerationRequest(BaseModel):
    text: str = Field(..., description="Text to screen (description, transcript, file name)")


class ModerationVerdict(BaseModel):
    """Content-safety verdict."""

    flagged: bool
    categories: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    action: ModerationAction = ModerationAction.ALLOW
    reason: Optional[str] = None


# ── Hashing ───────────────────────────────────────────────────────────────


class ContentDigest(BaseModel):
    algorithm: str = Field(default="sha256")
    digest: str = Field(..., min_length=64, max_length=64, description="Hex digest")
    size_bytes: int = Field(default=0, ge=0)


# ── Transcription ─────────────────────────────────────────────────────────


class TranscriptSegment(BaseModel):
    start: float = Field(..., ge=0.0)
    end: float = Field(..., ge=0.0)
    text: str


class Transcript(BaseModel):
    text: str
    language: str = "en"
    duration_seconds: float = Field(default=0.0, ge=0.0)
    segments: list[TranscriptSegment] = Field(default_factory=list)


# ── Content analysis ──────────────────────────────────────────────────────


class AnalysisRequest(BaseModel):
    content: str = Field(..., description="Text to analyse (description plus transcript)")
    context: Optional[str] = Field(default=None, description="Location and capture context")


class ContentAnalysis(BaseModel):
    """AI analysis of the submission's text content."""

    summary: str
    key_facts: list[str] = Field(default_factory=list)
    event_tags: list[str] = Field(default_factory=list)
    sentiment: str = Field(default="neutral", pattern="^(positive|neutral|negative)$")
    urgency_level: int = Field(default=5, ge=1, le=10)
    credibility_score: int = Field(default=75, ge=0, le=100)
    contextual_flags: list[str] = Field(default_factory=list)


# ── Storage ───────────────────────────────────────────────────────────────


class StorageReceipt(BaseModel):
    cid: str = Field(..., description="Content identifier on the decentralized store")
    size_bytes: int = Field(default=0, ge=0)
    gateway_url: str
    pinned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ── Blockchain anchor ─────────────────────────────────────────────────────


class AnchorRequest(BaseModel):
    content_hash: str
    file_name: str
    submitter: Optional[str] = None
    timestamp: datetime = Field(..., description="Submission time recorded in the ledger note")

    def note(self) -> dict[str, Any]:
        """Proof-of-existence note written to the ledger."""
        return {
            "type": "proof_of_existence",
            "file_hash": self.content_hash,
            "file_name": self.file_name,
            "timestamp": self.timestamp.isoformat(),
            "app": "proof_pipeline",
        }


class AnchorReceipt(BaseModel):
    tx_id: str
    network: str = "testnet"
    confirmed_round: Optional[int] = None
    note: dict[str, Any] = Field(default_factory=dict)


# ── Narration ─────────────────────────────────────────────────────────────


class NarrationRequest(BaseModel):
    text: str
    voice_id: Optional[str] = None


class Narration(BaseModel):
    voice_id: str
    text: str
    duration_seconds: float = Field(default=0.0, ge=0.0)
    audio_size_bytes: int = Field(default=0, ge=0)


# ── Translation ───────────────────────────────────────────────────────────


class TranslationRequest(BaseModel):
    text: str
    target_language: str = Field(..., min_length=2)
    source_language: Optional[str] = None


class Translation(BaseModel):
    translated_text: str
    source_language: str = "en"
    target_language: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


# ── Deepfake detection ────────────────────────────────────────────────────


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_confidence(cls, confidence: float) -> "RiskLevel":
        """Map a 0-100 manipulation confidence to a risk band."""
        if confidence >= 80:
            return cls.CRITICAL
        if confidence >= 60:
            return cls.HIGH
        if confidence >= 30:
            return cls.MEDIUM
        return cls.LOW


class DeepfakeAssessment(BaseModel):
    is_deepfake: bool
    confidence: float = Field(..., ge=0.0, le=100.0, description="Manipulation confidence 0-100")
    risk_level: RiskLevel
    detection_method: str
    flagged_for_review: bool = False
    artifacts: list[str] = Field(default_factory=list)


# ── Image verification ────────────────────────────────────────────────────


class ImageAssessment(BaseModel):
    description: str
    authenticity_indicators: list[str] = Field(default_factory=list)
    suspicious_elements: list[str] = Field(default_factory=list)
    overall_credibility: int = Field(default=75, ge=0, le=100)
