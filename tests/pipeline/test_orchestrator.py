"""Tests for StageOrchestrator.

Tests cover:
- Moderation outcomes (block halts, review flags)
- Full runs with real and mocked providers
- Idempotent replay and coalescing of concurrent runs
- Cancellation, progress events and failure policies
"""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import FakeProviders, make_settings, make_submission
from proof_pipeline.data_management.proof_store import ProofStore
from proof_pipeline.data_management.schemas import (
    FailureKind,
    ModerationAction,
    Origin,
    OutcomeStatus,
    PipelineStage,
    ProgressEvent,
    StageState,
    VerificationStatus,
)
from proof_pipeline.gateways.registry import build_gateways
from proof_pipeline.pipeline.orchestrator import StageOrchestrator


def stage_states(outcome) -> dict[PipelineStage, StageState]:
    return {record.stage: record.state for record in outcome.stages}


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def offline_orchestrator(offline_settings, forbidden_transport) -> StageOrchestrator:
    return StageOrchestrator(gateways=build_gateways(offline_settings, transport=forbidden_transport))


@pytest.fixture
def online_orchestrator(online_settings, providers: FakeProviders) -> StageOrchestrator:
    return StageOrchestrator(gateways=build_gateways(online_settings, transport=providers.transport()))


# ── Moderation Tests ─────────────────────────────────────────────────────


class TestModeration:
    @pytest.mark.asyncio
    async def test_block_halts_without_proof(self, offline_orchestrator: StageOrchestrator) -> None:
        submission = make_submission(description="Video of violence, hate and a threat")
        outcome = await offline_orchestrator.run(submission)

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.failure_kind == FailureKind.POLICY_VIOLATION
        assert outcome.failed_stage == PipelineStage.MODERATION
        assert outcome.is_terminal
        assert outcome.proof is None
        assert outcome.moderation.action == ModerationAction.BLOCK
        assert [r.stage for r in outcome.stages] == [PipelineStage.MODERATION]
        assert await offline_orchestrator.proof_store.get(submission.id) is None

    @pytest.mark.asyncio
    async def test_real_block_halts(self, online_settings, providers: FakeProviders) -> None:
        providers.overrides["/moderations"] = lambda r: httpx.Response(
            200,
            json={"results": [{"flagged": True, "categories": {"illegal": True}, "category_scores": {"illegal": 0.9}}]},
        )
        orchestrator = StageOrchestrator(build_gateways(online_settings, transport=providers.transport()))
        outcome = await orchestrator.run(make_submission())

        assert outcome.failure_kind == FailureKind.POLICY_VIOLATION
        assert providers.paths() == ["/v1/moderations"]

    @pytest.mark.asyncio
    async def test_review_is_flagged(self, offline_orchestrator: StageOrchestrator) -> None:
        outcome = await offline_orchestrator.run(make_submission(description="Violence at the protest"))

        assert outcome.status == OutcomeStatus.COMPLETED
        assert outcome.report.verification_status == VerificationStatus.FLAGGED
        assert outcome.report.moderation_action == ModerationAction.REVIEW
        # Only metadata completeness is real: 90 - 20.
        assert outcome.report.trust_score == 70

    @pytest.mark.asyncio
    async def test_text_document_body_is_screened(self, offline_orchestrator: StageOrchestrator) -> None:
        submission = make_submission(
            file_name="statement.txt",
            content=b"This document promotes violence, hate and is an explicit threat of abuse.",
            description="Witness statement",
        )
        outcome = await offline_orchestrator.run(submission)

        assert outcome.failure_kind == FailureKind.POLICY_VIOLATION
        assert outcome.moderation.action == ModerationAction.BLOCK
        assert outcome.proof is None
        assert await offline_orchestrator.proof_store.get(submission.id) is None

    @pytest.mark.asyncio
    async def test_binary_document_body_is_not_decoded(self, offline_orchestrator: StageOrchestrator) -> None:
        submission = make_submission(
            file_name="statement.pdf",
            content=b"%PDF-1.7 violence, hate and is an explicit threat of abuse",
            description="Witness statement",
        )
        outcome = await offline_orchestrator.run(submission)

        assert outcome.status == OutcomeStatus.COMPLETED
        assert outcome.moderation.action == ModerationAction.ALLOW

    @pytest.mark.asyncio
    async def test_text_body_sent_to_moderation_service(
        self, online_orchestrator: StageOrchestrator, providers: FakeProviders
    ) -> None:
        submission = make_submission(
            file_name="notes.txt",
            content="Water reached the second floor \xe9".encode("latin-1"),
            description="Field notes",
        )
        await online_orchestrator.run(submission)

        request = next(r for r in providers.requests if r.url.path.endswith("/moderations"))
        text = json.loads(request.content)["input"]
        assert text.startswith("notes.txt\nField notes")
        assert "Water reached the second floor \ufffd" in text


# ── Full Run Tests ───────────────────────────────────────────────────────


class TestFullRun:
    @pytest.mark.asyncio
    async def test_all_real_image_is_verified(
        self, online_orchestrator: StageOrchestrator, providers: FakeProviders
    ) -> None:
        submission = make_submission()
        outcome = await online_orchestrator.run(submission)

        assert outcome.status == OutcomeStatus.COMPLETED
        proof, report = outcome.proof, outcome.report
        assert proof.storage_reference.origin == Origin.REAL
        assert proof.anchor_reference.value == "TXREAL123"
        assert proof.hash_origin == Origin.REAL
        # 0.4*88 + 0.4*((88 + 85) / 2) + 0.2*90
        assert report.trust_score == 88
        assert report.verification_status == VerificationStatus.VERIFIED
        assert report.mocked_capabilities == []
        assert {"narration", "translation:es", "translation:fr"} <= set(report.per_stage_results)

        states = stage_states(outcome)
        assert states[PipelineStage.TRANSCRIPTION] == StageState.SKIPPED
        assert states[PipelineStage.ENRICHMENT] == StageState.COMPLETED
        assert providers.count("/audio/transcriptions") == 0

        stored = await online_orchestrator.proof_store.get_completed(submission.id)
        assert stored.proof == proof
        assert stored.report.per_stage_results.keys() == report.per_stage_results.keys()

    @pytest.mark.asyncio
    async def test_low_detector_confidence_stays_verified(
        self, online_orchestrator: StageOrchestrator, providers: FakeProviders
    ) -> None:
        providers.overrides["/detect"] = lambda r: httpx.Response(
            200, json={"confidence": 1.0, "is_deepfake": False}
        )
        outcome = await online_orchestrator.run(make_submission())

        deepfake = outcome.report.per_stage_results["deepfake_check"].value
        assert deepfake["confidence"] == pytest.approx(1.0)
        assert deepfake["risk_level"] == "low"
        # 0.4*88 + 0.4*((99 + 85) / 2) + 0.2*90
        assert outcome.report.trust_score == 90
        assert outcome.report.verification_status == VerificationStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_large_image_without_storage_credentials(self, providers: FakeProviders) -> None:
        config = make_settings(configured=True, pinata_jwt=None)
        orchestrator = StageOrchestrator(build_gateways(config, transport=providers.transport()))
        submission = make_submission(content=b"\xff\xd8\xff\xe0" + b"\x00" * (2 * 1024 * 1024))

        outcome = await orchestrator.run(submission)

        assert outcome.status == OutcomeStatus.COMPLETED
        assert outcome.proof.storage_reference.origin == Origin.MOCKED
        assert outcome.proof.anchor_reference.origin == Origin.REAL
        assert outcome.report.mocked_capabilities == ["storage_upload"]
        assert outcome.report.verification_status == VerificationStatus.PENDING
        assert outcome.report.trust_score == 88
        assert providers.count("/pinning/pinFileToIPFS") == 0

    @pytest.mark.asyncio
    async def test_offline_audio_runs_transcription(self, offline_orchestrator: StageOrchestrator) -> None:
        submission = make_submission(file_name="report.mp3", content=b"\x00" * 32_000)
        outcome = await offline_orchestrator.run(submission)

        assert outcome.status == OutcomeStatus.COMPLETED
        transcription = next(r for r in outcome.stages if r.stage == PipelineStage.TRANSCRIPTION)
        assert transcription.state == StageState.COMPLETED
        assert transcription.origins == {"transcription": Origin.MOCKED}
        assert "deepfake_check" not in outcome.report.per_stage_results
        assert outcome.report.verification_status == VerificationStatus.PENDING
        assert outcome.proof.anchor_reference.value.startswith("MOCK_ALGO")

    @pytest.mark.asyncio
    async def test_narration_disabled(self, offline_settings, forbidden_transport) -> None:
        orchestrator = StageOrchestrator(
            build_gateways(offline_settings, transport=forbidden_transport),
            translation_targets=["de"],
            narration_enabled=False,
        )
        outcome = await orchestrator.run(make_submission())
        results = outcome.report.per_stage_results
        assert "narration" not in results
        assert "translation:de" in results


# ── Idempotency Tests ────────────────────────────────────────────────────


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_completed_run_is_replayed(
        self, online_orchestrator: StageOrchestrator, providers: FakeProviders
    ) -> None:
        submission = make_submission()
        first = await online_orchestrator.run(submission)
        calls = len(providers.requests)

        second = await online_orchestrator.run(submission)

        assert second.replayed is True
        assert second.proof == first.proof
        assert len(providers.requests) == calls

    @pytest.mark.asyncio
    async def test_concurrent_runs_share_one_execution(
        self, online_orchestrator: StageOrchestrator, providers: FakeProviders
    ) -> None:
        submission = make_submission()
        first, second = await asyncio.gather(
            online_orchestrator.run(submission),
            online_orchestrator.run(submission),
        )

        assert first is second
        assert providers.count("/moderations") == 1
        assert providers.count("/v1/anchors") == 1
        assert not online_orchestrator.is_running(submission.id)


# ── Cancellation Tests ───────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_content_analysis(self, offline_orchestrator: StageOrchestrator) -> None:
        calls = 0

        def should_continue() -> bool:
            nonlocal calls
            calls += 1
            return calls < 3

        outcome = await offline_orchestrator.run(make_submission(), should_continue)

        assert outcome.status == OutcomeStatus.CANCELLED
        assert outcome.failure_kind == FailureKind.CANCELLED
        assert outcome.failed_stage == PipelineStage.CONTENT_ANALYSIS
        assert outcome.proof is None
        assert outcome.retryable

    @pytest.mark.asyncio
    async def test_cancel_after_synthesis_keeps_proof(self, offline_orchestrator: StageOrchestrator) -> None:
        calls = 0

        def should_continue() -> bool:
            nonlocal calls
            calls += 1
            # moderation, hashing, analysis, upload, anchor, synthesis, then stop
            return calls <= 6

        submission = make_submission()
        outcome = await offline_orchestrator.run(submission, should_continue)

        assert outcome.status == OutcomeStatus.COMPLETED
        assert stage_states(outcome)[PipelineStage.ENRICHMENT] == StageState.SKIPPED
        assert "narration" not in outcome.report.per_stage_results
        assert await offline_orchestrator.proof_store.get_completed(submission.id) is not None


# ── Progress Tests ───────────────────────────────────────────────────────


class TestProgress:
    @pytest.mark.asyncio
    async def test_events_in_stage_order(self, offline_orchestrator: StageOrchestrator) -> None:
        events: list[ProgressEvent] = []
        async_events: list[ProgressEvent] = []

        def broken(event: ProgressEvent) -> None:
            raise ValueError("subscriber bug")

        async def slow(event: ProgressEvent) -> None:
            await asyncio.sleep(0)
            async_events.append(event)

        offline_orchestrator.emitter.subscribe(broken)
        offline_orchestrator.emitter.subscribe(events.append)
        offline_orchestrator.emitter.subscribe(slow)

        outcome = await offline_orchestrator.run(make_submission())
        await offline_orchestrator.emitter.wait_idle()

        assert outcome.status == OutcomeStatus.COMPLETED
        assert (events[0].stage, events[0].state) == (PipelineStage.MODERATION, StageState.STARTED)
        assert (events[1].stage, events[1].state) == (PipelineStage.MODERATION, StageState.COMPLETED)
        assert (PipelineStage.TRANSCRIPTION, StageState.SKIPPED) in [(e.stage, e.state) for e in events]
        assert (events[-1].stage, events[-1].state) == (PipelineStage.ENRICHMENT, StageState.COMPLETED)
        assert len(async_events) == len(events)

    def test_unsubscribe(self, offline_orchestrator: StageOrchestrator) -> None:
        unsubscribe = offline_orchestrator.emitter.subscribe(lambda e: None)
        assert offline_orchestrator.emitter.subscriber_count == 1
        unsubscribe()
        assert offline_orchestrator.emitter.subscriber_count == 0


# ── Failure Policy Tests ─────────────────────────────────────────────────


class TestFailurePolicy:
    @pytest.mark.asyncio
    async def test_soft_transcription_failure_continues(self, offline_orchestrator: StageOrchestrator) -> None:
        offline_orchestrator.gateways.transcription.invoke = AsyncMock(side_effect=RuntimeError("decoder crash"))
        outcome = await offline_orchestrator.run(make_submission(file_name="clip.mp4", content=b"\x00" * 64))

        assert outcome.status == OutcomeStatus.COMPLETED
        assert stage_states(outcome)[PipelineStage.TRANSCRIPTION] == StageState.FAILED
        assert "transcription" not in outcome.report.per_stage_results

    @pytest.mark.asyncio
    async def test_hard_stage_error(self, offline_orchestrator: StageOrchestrator) -> None:
        offline_orchestrator.gateways.content_analysis.invoke = AsyncMock(side_effect=RuntimeError("boom"))
        outcome = await offline_orchestrator.run(make_submission())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.failure_kind == FailureKind.STAGE_ERROR
        assert outcome.failed_stage == PipelineStage.CONTENT_ANALYSIS
        assert outcome.retryable

    @pytest.mark.asyncio
    async def test_enrichment_failure_is_soft(self, offline_orchestrator: StageOrchestrator) -> None:
        offline_orchestrator.gateways.narration.invoke = AsyncMock(side_effect=RuntimeError("tts down"))
        outcome = await offline_orchestrator.run(make_submission())

        assert outcome.status == OutcomeStatus.COMPLETED
        assert "narration" not in outcome.report.per_stage_results
        assert "translation:es" in outcome.report.per_stage_results

    @pytest.mark.asyncio
    async def test_proof_store_unavailable(self, offline_settings, forbidden_transport, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        orchestrator = StageOrchestrator(
            build_gateways(offline_settings, transport=forbidden_transport),
            proof_store=ProofStore(str(blocker / "proofs.json")),
        )
        outcome = await orchestrator.run(make_submission())

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.failure_kind == FailureKind.STORAGE_UNAVAILABLE
        assert outcome.failed_stage == PipelineStage.VERIFICATION_SYNTHESIS
        assert outcome.retryable
