"""Stage order and failure policy table for the orchestrator."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from proof_pipeline.data_management.schemas.proof_schema import PipelineStage
from proof_pipeline.data_management.schemas.submission_schema import MediaKind


class FailurePolicy(str, Enum):
    HARD_STOP = "hard_stop"
    SOFT_CONTINUE = "soft_continue"
    NEVER_FAILS = "never_fails"


@dataclass(frozen=True)
class StageSpec:
    stage: PipelineStage
    policy: FailurePolicy
    media_kinds: Optional[frozenset[MediaKind]] = None  # None means every kind

    def applies_to(self, kind: MediaKind) -> bool:
        return self.media_kinds is None or kind in self.media_kinds


PIPELINE_ORDER: tuple[PipelineStage, ...] = tuple(PipelineStage)

STAGE_TABLE: dict[PipelineStage, StageSpec] = {
    PipelineStage.MODERATION: StageSpec(PipelineStage.MODERATION, FailurePolicy.HARD_STOP),
    PipelineStage.HASHING: StageSpec(PipelineStage.HASHING, FailurePolicy.HARD_STOP),
    PipelineStage.TRANSCRIPTION: StageSpec(
        PipelineStage.TRANSCRIPTION,
        FailurePolicy.SOFT_CONTINUE,
        frozenset({MediaKind.AUDIO, MediaKind.VIDEO}),
    ),
    PipelineStage.CONTENT_ANALYSIS: StageSpec(PipelineStage.CONTENT_ANALYSIS, FailurePolicy.HARD_STOP),
    PipelineStage.STORAGE_UPLOAD: StageSpec(PipelineStage.STORAGE_UPLOAD, FailurePolicy.HARD_STOP),
    PipelineStage.BLOCKCHAIN_ANCHOR: StageSpec(PipelineStage.BLOCKCHAIN_ANCHOR, FailurePolicy.HARD_STOP),
    PipelineStage.VERIFICATION_SYNTHESIS: StageSpec(
        PipelineStage.VERIFICATION_SYNTHESIS, FailurePolicy.NEVER_FAILS
    ),
    PipelineStage.ENRICHMENT: StageSpec(PipelineStage.ENRICHMENT, FailurePolicy.SOFT_CONTINUE),
}

# Media kinds whose manipulation can be checked alongside the upload.
DEEPFAKE_KINDS = frozenset({MediaKind.IMAGE, MediaKind.VIDEO})
IMAGE_REVIEW_KINDS = frozenset({MediaKind.IMAGE})
