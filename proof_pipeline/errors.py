"""Errors surfaced to pipeline callers.

Provider failures never appear here; gateways absorb them into mocked
CapabilityResults. Only policy violations, persistence failures and the
deferred-to-queue signal cross the pipeline boundary.
"""

from typing import Optional

from proof_pipeline.data_management.schemas.capability_schema import ModerationVerdict
from proof_pipeline.data_management.schemas.proof_schema import QueuedAck


class ProofPipelineError(Exception):
    """Base class for pipeline errors."""


class PolicyViolationError(ProofPipelineError):
    """Moderation blocked the submission. No proof was created."""

    def __init__(self, submission_id: str, verdict: Optional[ModerationVerdict] = None) -> None:
        self.submission_id = submission_id
        self.verdict = verdict
        reason = verdict.reason if verdict and verdict.reason else "content blocked by moderation"
        super().__init__(f"Submission {submission_id} rejected: {reason}")


class QueuePersistenceError(ProofPipelineError):
    """The offline queue could not be read from or written to disk."""


class StorageUnavailableError(ProofPipelineError):
    """The proof store could not persist a completed run."""


class SubmissionDeferredError(ProofPipelineError):
    """The run could not finish online and was handed to the offline queue."""

    def __init__(self, ack: QueuedAck, reason: str) -> None:
        self.ack = ack
        self.reason = reason
        super().__init__(
            f"Submission {ack.submission_id} queued at position {ack.position}: {reason}"
        )
