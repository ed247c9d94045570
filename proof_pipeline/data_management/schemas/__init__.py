"""Schema package for submissions, capability results, proofs and reports.

Primary exports:
- Submission: the immutable evidence artifact
- CapabilityResult: uniform gateway result envelope (real or mocked)
- ProofRecord / VerificationReport: durable pipeline outputs
- PipelineOutcome / QueuedAck: orchestrator and offline queue results

Usage:
    from proof_pipeline.data_management.schemas import Submission, MediaKind
    submission = Submission(file_name="flood.jpg", content=b"...")
"""

from proof_pipeline.data_management.schemas.submission_schema import (
    Enrichment,
    MediaKind,
    Submission,
)
from proof_pipeline.data_management.schemas.capability_schema import (
    AnalysisRequest,
    AnchorReceipt,
    AnchorRequest,
    CapabilityResult,
    ContentAnalysis,
    ContentDigest,
    DeepfakeAssessment,
    ImageAssessment,
    ModerationAction,
    ModerationRequest,
    ModerationVerdict,
    Narration,
    NarrationRequest,
    Origin,
    RiskLevel,
    StorageReceipt,
    Transcript,
    TranscriptSegment,
    Translation,
    TranslationRequest,
)
from proof_pipeline.data_management.schemas.proof_schema import (
    CoSignature,
    FailureKind,
    OfflineQueueEntry,
    OutcomeStatus,
    PipelineOutcome,
    PipelineStage,
    ProgressEvent,
    ProofRecord,
    ProofStatus,
    QueuedAck,
    Reference,
    StageRecord,
    StageState,
    VerificationReport,
    VerificationStatus,
)

__all__ = [
    "Enrichment",
    "MediaKind",
    "Submission",
    "AnalysisRequest",
    "AnchorReceipt",
    "AnchorRequest",
    "CapabilityResult",
    "ContentAnalysis",
    "ContentDigest",
    "DeepfakeAssessment",
    "ImageAssessment",
    "ModerationAction",
    "ModerationRequest",
    "ModerationVerdict",
    "Narration",
    "NarrationRequest",
    "Origin",
    "RiskLevel",
    "StorageReceipt",
    "Transcript",
    "TranscriptSegment",
    "Translation",
    "TranslationRequest",
    "CoSignature",
    "FailureKind",
    "OfflineQueueEntry",
    "OutcomeStatus",
    "PipelineOutcome",
    "PipelineStage",
    "ProgressEvent",
    "ProofRecord",
    "ProofStatus",
    "QueuedAck",
    "Reference",
    "StageRecord",
    "StageState",
    "VerificationReport",
    "VerificationStatus",
]
