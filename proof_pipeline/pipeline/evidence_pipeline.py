"""Entry point for evidence submissions.

Routes a submission to the stage orchestrator when online and to the offline
queue when not. Runs that cannot finish online (cancelled by a connectivity
drop, proof store unavailable, unexpected stage error) are queued rather than
lost. Blocked content is the one outcome that surfaces as an error.

Usage:
    from proof_pipeline.pipeline import EvidencePipeline

    pipeline = EvidencePipeline()
    proof, report = await pipeline.submit(submission)

    # Later, when the device reconnects:
    outcomes = await pipeline.on_connectivity_changed(True)
"""

from typing import Any, Optional, Union

import httpx
import structlog

from proof_pipeline.config.settings import Settings, settings
from proof_pipeline.data_management.offline_queue import OfflineQueue
from proof_pipeline.data_management.proof_store import ProofStore
from proof_pipeline.data_management.schemas.proof_schema import (
    CoSignature,
    FailureKind,
    OutcomeStatus,
    PipelineOutcome,
    ProofRecord,
    QueuedAck,
    VerificationReport,
)
from proof_pipeline.data_management.schemas.submission_schema import Submission
from proof_pipeline.errors import PolicyViolationError, SubmissionDeferredError
from proof_pipeline.gateways.registry import GatewaySet, build_gateways
from proof_pipeline.pipeline.connectivity import ConnectivityMonitor
from proof_pipeline.pipeline.orchestrator import StageOrchestrator
from proof_pipeline.pipeline.report_assembler import VerificationReportAssembler


class EvidencePipeline:
    """Submission intake, offline routing and post-run operations."""

    def __init__(
        self,
        orchestrator: Optional[StageOrchestrator] = None,
        offline_queue: Optional[OfflineQueue] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize EvidencePipeline.

        Args:
            orchestrator: Pre-built orchestrator. Built from ``config`` if None.
            offline_queue: Pre-built queue. Opened at ``config.offline_queue_path`` if None.
            connectivity: Connectivity state. Starts online if None.
            config: Settings used for anything not injected. Defaults to the global settings.
            transport: httpx transport for gateways built here (tests).
        """
        config = config or settings
        self._config = config
        self._assembler = VerificationReportAssembler()
        self._orchestrator = orchestrator or StageOrchestrator(
            gateways=build_gateways(config, transport=transport),
            proof_store=ProofStore(config.proof_store_path),
            assembler=self._assembler,
            translation_targets=config.translation_targets,
            narration_enabled=config.narration_enabled,
        )
        self._connectivity = connectivity or ConnectivityMonitor()
        self._queue = offline_queue or OfflineQueue(
            config.offline_queue_path,
            max_attempts=config.offline_queue_max_attempts,
        )
        self._queue.attach(self._orchestrator.run, self._connectivity.is_online)
        self._logger = structlog.get_logger().bind(component="EvidencePipeline")

    @property
    def orchestrator(self) -> StageOrchestrator:
        return self._orchestrator

    @property
    def offline_queue(self) -> OfflineQueue:
        return self._queue

    @property
    def connectivity(self) -> ConnectivityMonitor:
        return self._connectivity

    @property
    def gateways(self) -> GatewaySet:
        return self._orchestrator.gateways

    async def submit(self, submission: Submission) -> tuple[ProofRecord, VerificationReport]:
        """Run a submission online.

        Raises:
            PolicyViolationError: Moderation blocked the submission.
            SubmissionDeferredError: The run could not finish and was queued.
            QueuePersistenceError: Deferral failed because the queue is unwritable.
        """
        outcome = await self._orchestrator.run(submission, self._connectivity.is_online)

        if outcome.status == OutcomeStatus.COMPLETED:
            return outcome.proof, outcome.report

        if outcome.failure_kind == FailureKind.POLICY_VIOLATION:
            self._logger.warning("submission_rejected", submission_id=submission.id)
            raise PolicyViolationError(submission.id, outcome.moderation)

        ack = await self._queue.enqueue(submission)
        self._logger.warning(
            "submission_deferred",
            submission_id=submission.id,
            failure_kind=outcome.failure_kind.value if outcome.failure_kind else None,
            error=outcome.error,
            position=ack.position,
        )
        raise SubmissionDeferredError(ack, outcome.error or outcome.status.value)

    async def submit_offline(self, submission: Submission) -> QueuedAck:
        """Queue a submission without running it."""
        return await self._queue.enqueue(submission)

    async def accept(
        self,
        submission: Submission,
    ) -> Union[tuple[ProofRecord, VerificationReport], QueuedAck]:
        """Route by current connectivity: run now, or queue."""
        if self._connectivity.is_online():
            return await self.submit(submission)
        return await self.submit_offline(submission)

    async def drain(self) -> list[PipelineOutcome]:
        return await self._queue.drain()

    async def on_connectivity_changed(self, online: bool) -> list[PipelineOutcome]:
        """Record a connectivity change; drain the queue when it was restored."""
        if self._connectivity.update(online):
            self._logger.info("connectivity_restored", pending=self._queue.pending())
            return await self._queue.drain()
        return []

    async def co_sign(
        self,
        submission_id: str,
        co_signature: CoSignature,
    ) -> Optional[VerificationReport]:
        """Attach a co-signature to a stored report.

        Returns:
            The updated report, or None if no completed run exists for the id.
        """
        stored = await self._orchestrator.proof_store.get_completed(submission_id)
        if stored is None:
            return None
        report = self._assembler.apply_co_signature(stored.report, co_signature)
        await self._orchestrator.proof_store.update_report(report)
        return report

    async def get_status(self) -> dict[str, Any]:
        return {
            "online": self._connectivity.is_online(),
            "queue": self._queue.stats(),
            "proofs": await self._orchestrator.proof_store.get_stats(),
            "gateways": self.gateways.status(),
        }
