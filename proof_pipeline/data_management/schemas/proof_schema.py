"""Pipeline run schemas: stages, progress events, proofs, reports, outcomes.

ProofRecord is the durable artifact of a successful run and exists only once
hashing, storage upload and blockchain anchoring have all resolved.
VerificationReport is the trust assessment that accompanies it. Both are keyed
deterministically by submission id so reruns upsert instead of duplicating.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from proof_pipeline.data_management.schemas.capability_schema import (
    CapabilityResult,
    ModerationAction,
    ModerationVerdict,
    Origin,
)
from proof_pipeline.data_management.schemas.submission_schema import Submission

PROOF_NAMESPACE = uuid.UUID("6b0f7c1e-52d4-4d0e-b0b5-9c8f1f3f4a10")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineStage(str, Enum):
    """Pipeline stages in execution order. Declaration order is run order."""

    MODERATION = "moderation"
    HASHING = "hashing"
    TRANSCRIPTION = "transcription"
    CONTENT_ANALYSIS = "content_analysis"
    STORAGE_UPLOAD = "storage_upload"
    BLOCKCHAIN_ANCHOR = "blockchain_anchor"
    VERIFICATION_SYNTHESIS = "verification_synthesis"
    ENRICHMENT = "enrichment"


class StageState(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class ProgressEvent(BaseModel):
    """Stage transition notification delivered to progress subscribers."""

    submission_id: str
    stage: PipelineStage
    state: StageState
    detail: Optional[str] = None
    emitted_at: datetime = Field(default_factory=_now)


class StageRecord(BaseModel):
    """What happened in one stage of one run."""

    stage: PipelineStage
    state: StageState
    origins: dict[str, Origin] = Field(
        default_factory=dict,
        description="Origin of each capability invoked during the stage",
    )
    detail: Optional[str] = None
    started_at: datetime = Field(default_factory=_now)
    finished_at: Optional[datetime] = None


class Reference(BaseModel):
    """A pointer produced by a capability, tagged with where it came from."""

    value: str
    origin: Origin


class ProofStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class ProofRecord(BaseModel):
    """Durable proof of existence for a submission."""

    id: str
    submission_id: str
    content_hash: str
    hash_origin: Origin
    storage_reference: Reference
    anchor_reference: Reference
    created_at: datetime = Field(default_factory=_now)
    status: ProofStatus = ProofStatus.COMPLETED

    @staticmethod
    def id_for(submission_id: str) -> str:
        """Deterministic proof id; reruns of a submission map to the same id."""
        return str(uuid.uuid5(PROOF_NAMESPACE, submission_id))


class VerificationStatus(str, Enum):
    """Report status. ``rank`` orders how trusted the status is."""

    FLAGGED = "flagged"
    DISPUTED = "disputed"
    PENDING = "pending"
    VERIFIED = "verified"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    VerificationStatus.FLAGGED: 0,
    VerificationStatus.DISPUTED: 1,
    VerificationStatus.PENDING: 2,
    VerificationStatus.VERIFIED: 3,
}


class CoSignature(BaseModel):
    """Third-party attestation attached to a report after the run."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    organization_name: str
    verifier_name: str
    verifier_role: Optional[str] = None
    verified_at: datetime = Field(default_factory=_now)
    verification_hash: Optional[str] = None
    credibility_rating: int = Field(default=3, ge=1, le=5)
    notes: Optional[str] = None
    is_verified: bool = True


class VerificationReport(BaseModel):
    """Trust assessment for a submission."""

    id: str
    submission_id: str
    trust_score: int = Field(..., ge=0, le=100)
    verification_status: VerificationStatus
    per_stage_results: dict[str, CapabilityResult[dict[str, Any]]] = Field(
        default_factory=dict,
        description="Every capability result of the run, keyed by capability name",
    )
    co_signatures: list[CoSignature] = Field(default_factory=list)
    moderation_action: ModerationAction = ModerationAction.ALLOW
    mocked_capabilities: list[str] = Field(
        default_factory=list,
        description="Capabilities whose values were synthesized, not provider output",
    )
    caveats: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "id": "2c5b1f1e-8f63-5b4c-9d55-0b7a64c8d0f1",
                    "submission_id": "3f6c1a9e-3a57-4f1e-9a39-1e2d9b0c8a11",
                    "trust_score": 82,
                    "verification_status": "verified",
                    "moderation_action": "allow",
                    "mocked_capabilities": [],
                    "caveats": [],
                }
            ]
        }
    }


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureKind(str, Enum):
    POLICY_VIOLATION = "policy_violation"
    STAGE_ERROR = "stage_error"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    CANCELLED = "cancelled"


class PipelineOutcome(BaseModel):
    """Result of one orchestrator run."""

    submission_id: str
    status: OutcomeStatus
    failure_kind: Optional[FailureKind] = None
    error: Optional[str] = None
    failed_stage: Optional[PipelineStage] = None
    moderation: Optional[ModerationVerdict] = Field(
        default=None, description="Moderation verdict, set when moderation ran"
    )
    proof: Optional[ProofRecord] = None
    report: Optional[VerificationReport] = None
    stages: list[StageRecord] = Field(default_factory=list)
    replayed: bool = False

    @property
    def is_terminal(self) -> bool:
        """Completed, or failed in a way a retry cannot change."""
        if self.status == OutcomeStatus.COMPLETED:
            return True
        return (
            self.status == OutcomeStatus.FAILED
            and self.failure_kind == FailureKind.POLICY_VIOLATION
        )

    @property
    def retryable(self) -> bool:
        return not self.is_terminal


class QueuedAck(BaseModel):
    """Acknowledgement returned when a submission is accepted offline."""

    submission_id: str
    sequence: int
    enqueued_at: datetime
    position: int = Field(..., ge=1, description="1-based position in the queue")
    already_queued: bool = False


class OfflineQueueEntry(BaseModel):
    """A submission awaiting a connected pipeline run."""

    submission: Submission
    sequence: int
    enqueued_at: datetime = Field(default_factory=_now)
    attempts: int = Field(default=0, ge=0)
    times_parked: int = Field(default=0, ge=0, description="Times moved behind newer entries after repeated failures")
    last_error: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
