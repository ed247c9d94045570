"""Stage orchestrator: runs one submission through the fixed stage sequence.

Stage order and failure policy come from ``stages.STAGE_TABLE``:

    moderation -> hashing -> transcription (audio/video) -> content_analysis
    -> storage_upload (+ deepfake/image checks) -> blockchain_anchor
    -> verification_synthesis -> enrichment

- Moderation screens the submission metadata and the body of text documents.
- A moderation ``block`` halts the run; no proof is created.
- Gateways never raise for provider failures; a mocked core result is a
  valid outcome.
- The proof is built once hashing, storage upload and anchoring resolved,
  and is persisted together with the report after synthesis.
- Enrichment (narration, translations) is best effort.
- Concurrent runs of the same submission id share one task.
- ``should_continue`` is polled before every stage; returning False ends the
  run as cancelled after the in-flight call settles.

Usage:
    orchestrator = StageOrchestrator(gateways=build_gateways(settings), proof_store=store)
    outcome = await orchestrator.run(submission)
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

import structlog

from proof_pipeline.data_management.proof_store import ProofStore
from proof_pipeline.data_management.schemas.capability_schema import (
    AnalysisRequest,
    AnchorRequest,
    CapabilityResult,
    ContentAnalysis,
    ContentDigest,
    ModerationAction,
    ModerationRequest,
    ModerationVerdict,
    NarrationRequest,
    Origin,
    TranslationRequest,
)
from proof_pipeline.data_management.schemas.proof_schema import (
    FailureKind,
    OutcomeStatus,
    PipelineOutcome,
    PipelineStage,
    ProgressEvent,
    ProofRecord,
    Reference,
    StageRecord,
    StageState,
    VerificationReport,
    VerificationStatus,
)
from proof_pipeline.data_management.schemas.submission_schema import MediaKind, Submission
from proof_pipeline.errors import StorageUnavailableError
from proof_pipeline.gateways.registry import GatewaySet
from proof_pipeline.pipeline.progress import ProgressEmitter
from proof_pipeline.pipeline.report_assembler import (
    VerificationReportAssembler,
    report_id_for,
)
from proof_pipeline.pipeline.stages import (
    DEEPFAKE_KINDS,
    IMAGE_REVIEW_KINDS,
    PIPELINE_ORDER,
    STAGE_TABLE,
    FailurePolicy,
)
from proof_pipeline.utils.logging import get_correlation_id, get_structured_logger

# Bytes of a text document passed to moderation.
MODERATION_BODY_LIMIT = 32_000

ContinuePredicate = Callable[[], bool]


def _keep_going() -> bool:
    return True


class _ModerationBlocked(Exception):
    def __init__(self, verdict: ModerationVerdict) -> None:
        self.verdict = verdict
        super().__init__(verdict.reason or "blocked by moderation")


@dataclass
class _RunState:
    """Mutable state of one run. Never shared between runs."""

    submission: Submission
    results: dict[str, CapabilityResult[Any]] = field(default_factory=dict)
    stages: list[StageRecord] = field(default_factory=list)
    content_hash: Optional[str] = None
    proof: Optional[ProofRecord] = None
    report: Optional[VerificationReport] = None
    stage_origins: dict[str, Origin] = field(default_factory=dict)

    def record(self, result: CapabilityResult[Any], key: Optional[str] = None) -> CapabilityResult[Any]:
        name = key or result.capability
        self.results[name] = result
        self.stage_origins[name] = result.origin
        return result


class StageOrchestrator:
    """Runs submissions through the pipeline stages."""

    def __init__(
        self,
        gateways: GatewaySet,
        proof_store: Optional[ProofStore] = None,
        assembler: Optional[VerificationReportAssembler] = None,
        emitter: Optional[ProgressEmitter] = None,
        translation_targets: Sequence[str] = ("es", "fr"),
        narration_enabled: bool = True,
    ) -> None:
        """Initialize StageOrchestrator.

        Args:
            gateways: Capability gateways, constructed once and shared.
            proof_store: Store for completed runs. Memory-only if None.
            assembler: Report assembler. Created if None.
            emitter: Progress event stream. Created if None.
            translation_targets: Languages the summary is translated into.
            narration_enabled: Whether to narrate the summary.
        """
        self._gateways = gateways
        self._proof_store = proof_store or ProofStore()
        self._assembler = assembler or VerificationReportAssembler()
        self.emitter = emitter or ProgressEmitter()
        self._translation_targets = list(translation_targets)
        self._narration_enabled = narration_enabled
        self._inflight: dict[str, asyncio.Task] = {}
        self._logger = structlog.get_logger().bind(component="StageOrchestrator")

        self._handlers: dict[PipelineStage, Callable[[_RunState], Awaitable[None]]] = {
            PipelineStage.MODERATION: self._moderate,
            PipelineStage.HASHING: self._hash,
            PipelineStage.TRANSCRIPTION: self._transcribe,
            PipelineStage.CONTENT_ANALYSIS: self._analyse,
            PipelineStage.STORAGE_UPLOAD: self._upload,
            PipelineStage.BLOCKCHAIN_ANCHOR: self._anchor,
            PipelineStage.VERIFICATION_SYNTHESIS: self._synthesise,
            PipelineStage.ENRICHMENT: self._enrich,
        }

    @property
    def proof_store(self) -> ProofStore:
        return self._proof_store

    @property
    def gateways(self) -> GatewaySet:
        return self._gateways

    def is_running(self, submission_id: str) -> bool:
        return submission_id in self._inflight

    async def run(
        self,
        submission: Submission,
        should_continue: Optional[ContinuePredicate] = None,
    ) -> PipelineOutcome:
        """Run a submission to an outcome.

        A second call for a submission id that is already running joins the
        in-flight run and receives the same outcome.
        """
        task = self._inflight.get(submission.id)
        if task is None:
            task = asyncio.ensure_future(self._run_once(submission, should_continue or _keep_going))
            self._inflight[submission.id] = task
            task.add_done_callback(lambda _t, sid=submission.id: self._inflight.pop(sid, None))
        else:
            self._logger.info("run_coalesced", submission_id=submission.id)

        # A caller giving up must not cancel the run other callers share.
        return await asyncio.shield(task)

    async def _run_once(self, submission: Submission, should_continue: ContinuePredicate) -> PipelineOutcome:
        log = get_structured_logger(
            "orchestrator",
            submission_id=submission.id,
            component="StageOrchestrator",
            correlation_id=get_correlation_id(),
        )

        stored = await self._proof_store.get_completed(submission.id)
        if stored is not None:
            log.info("run_replayed", proof_id=stored.proof.id)
            return PipelineOutcome(
                submission_id=submission.id,
                status=OutcomeStatus.COMPLETED,
                proof=stored.proof,
                report=stored.report,
                replayed=True,
            )

        log.info("run_started", media_kind=submission.media_kind.value, file_name=submission.file_name)
        state = _RunState(submission=submission)

        for stage in PIPELINE_ORDER:
            spec = STAGE_TABLE[stage]

            if not spec.applies_to(submission.media_kind):
                self._finish_stage(state, stage, StageState.SKIPPED, detail=f"not applicable to {submission.media_kind.value}")
                continue

            if not should_continue():
                if state.report is not None:
                    # Proof and report are already durable; only enrichment is lost.
                    self._finish_stage(state, stage, StageState.SKIPPED, detail="cancelled")
                    break
                log.info("run_cancelled", before_stage=stage.value)
                return self._outcome(state, OutcomeStatus.CANCELLED, FailureKind.CANCELLED, "cancelled", stage)

            state.stage_origins = {}
            started_at = datetime.now(timezone.utc)
            self._emit(submission.id, stage, StageState.STARTED)

            try:
                await self._handlers[stage](state)
            except _ModerationBlocked as e:
                self._finish_stage(state, stage, StageState.FAILED, started_at, detail=str(e))
                log.warning("submission_blocked", categories=e.verdict.categories)
                return self._outcome(state, OutcomeStatus.FAILED, FailureKind.POLICY_VIOLATION, str(e), stage)
            except StorageUnavailableError as e:
                self._finish_stage(state, stage, StageState.FAILED, started_at, detail=str(e))
                log.error("proof_store_unavailable", error=str(e))
                return self._outcome(state, OutcomeStatus.FAILED, FailureKind.STORAGE_UNAVAILABLE, str(e), stage)
            except Exception as e:
                self._finish_stage(state, stage, StageState.FAILED, started_at, detail=str(e))
                if spec.policy == FailurePolicy.SOFT_CONTINUE:
                    log.warning("soft_stage_failed", stage=stage.value, error=str(e))
                    continue
                log.exception("stage_failed", stage=stage.value)
                return self._outcome(state, OutcomeStatus.FAILED, FailureKind.STAGE_ERROR, str(e), stage)

            self._finish_stage(state, stage, StageState.COMPLETED, started_at)

        log.info(
            "run_completed",
            proof_id=state.proof.id,
            status=state.report.verification_status.value,
            trust_score=state.report.trust_score,
        )
        return PipelineOutcome(
            submission_id=submission.id,
            status=OutcomeStatus.COMPLETED,
            proof=state.proof,
            report=state.report,
            moderation=_moderation_verdict(state),
            stages=state.stages,
        )

    # ── Stage handlers ────────────────────────────────────────────────────

    async def _moderate(self, state: _RunState) -> None:
        text = _moderation_text(state.submission)
        if _has_text_body(state.submission):
            try:
                body = await asyncio.to_thread(state.submission.read_artifact)
            except OSError as e:
                self._logger.warning(
                    "moderation_body_unreadable",
                    submission_id=state.submission.id,
                    error=str(e),
                )
            else:
                text = "\n".join([text, body[:MODERATION_BODY_LIMIT].decode("utf-8", errors="replace")])
        result = state.record(await self._gateways.moderation.invoke(ModerationRequest(text=text)))
        if result.value.action == ModerationAction.BLOCK:
            raise _ModerationBlocked(result.value)

    async def _hash(self, state: _RunState) -> None:
        result = state.record(await self._gateways.hashing.invoke(state.submission))
        digest: ContentDigest = result.value
        state.content_hash = digest.digest

    async def _transcribe(self, state: _RunState) -> None:
        state.record(await self._gateways.transcription.invoke(state.submission))

    async def _analyse(self, state: _RunState) -> None:
        request = AnalysisRequest(
            content=_analysis_text(state),
            context=_analysis_context(state.submission),
        )
        state.record(await self._gateways.content_analysis.invoke(request))

    async def _upload(self, state: _RunState) -> None:
        submission = state.submission
        calls = [self._gateways.storage_upload.invoke(submission)]
        if submission.media_kind in DEEPFAKE_KINDS:
            calls.append(self._gateways.deepfake_check.invoke(submission))
        if submission.media_kind in IMAGE_REVIEW_KINDS:
            calls.append(self._gateways.image_verification.invoke(submission))

        for result in await asyncio.gather(*calls):
            state.record(result)

    async def _anchor(self, state: _RunState) -> None:
        submission = state.submission
        result = state.record(
            await self._gateways.blockchain_anchor.invoke(
                AnchorRequest(
                    content_hash=state.content_hash,
                    file_name=submission.file_name,
                    submitter=submission.submitter,
                    timestamp=submission.submitted_at,
                )
            )
        )

        hashing = state.results["hashing"]
        storage = state.results["storage_upload"]
        state.proof = ProofRecord(
            id=ProofRecord.id_for(submission.id),
            submission_id=submission.id,
            content_hash=state.content_hash,
            hash_origin=hashing.origin,
            storage_reference=Reference(value=storage.value.cid, origin=storage.origin),
            anchor_reference=Reference(value=result.value.tx_id, origin=result.origin),
        )

    async def _synthesise(self, state: _RunState) -> None:
        try:
            state.report = self._assembler.assemble(state.submission, state.results)
        except Exception:
            # Best effort: a report always exists once the proof does.
            self._logger.exception("report_assembly_failed", submission_id=state.submission.id)
            state.report = VerificationReport(
                id=report_id_for(state.submission.id),
                submission_id=state.submission.id,
                trust_score=0,
                verification_status=VerificationStatus.PENDING,
                caveats=["Verification report could not be computed; manual review required."],
            )
        await self._proof_store.save(state.proof, state.report)

    async def _enrich(self, state: _RunState) -> None:
        analysis = state.results.get("content_analysis")
        summary = analysis.value.summary if analysis and isinstance(analysis.value, ContentAnalysis) else None
        if not summary:
            return

        calls: list[Awaitable[CapabilityResult[Any]]] = []
        keys: list[str] = []
        if self._narration_enabled:
            calls.append(self._gateways.narration.invoke(NarrationRequest(text=summary)))
            keys.append("narration")
        for language in self._translation_targets:
            calls.append(
                self._gateways.translation.invoke(
                    TranslationRequest(text=summary, target_language=language)
                )
            )
            keys.append(f"translation:{language}")

        enrichment: dict[str, CapabilityResult[Any]] = {}
        for key, result in zip(keys, await asyncio.gather(*calls, return_exceptions=True)):
            if isinstance(result, BaseException):
                self._logger.warning(
                    "enrichment_call_failed",
                    submission_id=state.submission.id,
                    capability=key,
                    error=str(result),
                )
                continue
            enrichment[key] = state.record(result, key)

        report = self._assembler.attach_enrichment(state.report, enrichment)
        try:
            await self._proof_store.update_report(report)
        except StorageUnavailableError as e:
            self._logger.warning(
                "enrichment_not_persisted",
                submission_id=state.submission.id,
                error=str(e),
            )
        state.report = report

    # ── Helpers ───────────────────────────────────────────────────────────

    def _finish_stage(
        self,
        state: _RunState,
        stage: PipelineStage,
        stage_state: StageState,
        started_at: Optional[datetime] = None,
        detail: Optional[str] = None,
    ) -> None:
        now = datetime.now(timezone.utc)
        state.stages.append(
            StageRecord(
                stage=stage,
                state=stage_state,
                origins=dict(state.stage_origins) if stage_state != StageState.SKIPPED else {},
                detail=detail,
                started_at=started_at or now,
                finished_at=now,
            )
        )
        if stage_state != StageState.SKIPPED:
            state.stage_origins = {}
        self._emit(state.submission.id, stage, stage_state, detail)

    def _emit(
        self,
        submission_id: str,
        stage: PipelineStage,
        stage_state: StageState,
        detail: Optional[str] = None,
    ) -> None:
        self.emitter.emit(
            ProgressEvent(submission_id=submission_id, stage=stage, state=stage_state, detail=detail)
        )

    @staticmethod
    def _outcome(
        state: _RunState,
        status: OutcomeStatus,
        kind: FailureKind,
        error: str,
        stage: PipelineStage,
    ) -> PipelineOutcome:
        return PipelineOutcome(
            submission_id=state.submission.id,
            status=status,
            failure_kind=kind,
            error=error,
            failed_stage=stage,
            moderation=_moderation_verdict(state),
            stages=state.stages,
        )


def _moderation_verdict(state: _RunState) -> Optional[ModerationVerdict]:
    result = state.results.get("moderation")
    return result.value if result is not None else None


def _has_text_body(submission: Submission) -> bool:
    return (
        submission.media_kind == MediaKind.DOCUMENT
        and submission.mime_type.lower().startswith("text/")
    )


def _moderation_text(submission: Submission) -> str:
    parts = [submission.file_name]
    if submission.enrichment.description:
        parts.append(submission.enrichment.description)
    if submission.enrichment.location:
        parts.append(submission.enrichment.location)
    return "\n".join(parts)


def _analysis_text(state: _RunState) -> str:
    submission = state.submission
    parts = []
    if submission.enrichment.description:
        parts.append(submission.enrichment.description)
    transcript = state.results.get("transcription")
    if transcript is not None:
        parts.append(transcript.value.text)
    if not parts:
        parts.append(f"{submission.media_kind.value.capitalize()} evidence file {submission.file_name}.")
    return "\n\n".join(parts)


def _analysis_context(submission: Submission) -> Optional[str]:
    enrichment = submission.enrichment
    details = {
        "location": enrichment.location,
        "weather": enrichment.weather,
        "capture method": enrichment.capture_method,
        "captured at": enrichment.captured_at.isoformat() if enrichment.captured_at else None,
    }
    context = "; ".join(f"{k}: {v}" for k, v in details.items() if v)
    return context or None
