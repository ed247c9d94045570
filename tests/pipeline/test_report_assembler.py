"""Tests for VerificationReportAssembler.

Tests cover:
- Weighted trust score over real results only
- Status classification precedence
- Mocked capability caveats
- Enrichment attachment and co-signatures
"""

from typing import Any

import pytest

from conftest import make_submission
from proof_pipeline.data_management.schemas import (
    CapabilityResult,
    CoSignature,
    ContentAnalysis,
    DeepfakeAssessment,
    ImageAssessment,
    ModerationAction,
    ModerationVerdict,
    Narration,
    Origin,
    RiskLevel,
    StorageReceipt,
    Translation,
    VerificationStatus,
)
from proof_pipeline.pipeline.report_assembler import VerificationReportAssembler


def result(capability: str, value: Any, origin: Origin = Origin.REAL) -> CapabilityResult[Any]:
    return CapabilityResult[Any](capability=capability, value=value, origin=origin)


def analysis(credibility: int, flags: list[str] | None = None) -> ContentAnalysis:
    return ContentAnalysis(
        summary="Flood water covers the road.",
        event_tags=["flood"],
        credibility_score=credibility,
        contextual_flags=flags or [],
    )


def deepfake(confidence: float, flagged: bool = False) -> DeepfakeAssessment:
    return DeepfakeAssessment(
        is_deepfake=confidence >= 50,
        confidence=confidence,
        risk_level=RiskLevel.from_confidence(confidence),
        detection_method="test",
        flagged_for_review=flagged,
    )


def core_results(
    credibility: int = 80,
    deepfake_confidence: float = 10.0,
    action: ModerationAction = ModerationAction.ALLOW,
    storage_origin: Origin = Origin.REAL,
) -> dict[str, CapabilityResult[Any]]:
    return {
        "moderation": result(
            "moderation",
            ModerationVerdict(flagged=action != ModerationAction.ALLOW, action=action),
        ),
        "content_analysis": result("content_analysis", analysis(credibility)),
        "storage_upload": result(
            "storage_upload",
            StorageReceipt(cid="bafybeitest", gateway_url="https://ipfs.test/bafybeitest"),
            storage_origin,
        ),
        "deepfake_check": result("deepfake_check", deepfake(deepfake_confidence)),
    }


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def assembler() -> VerificationReportAssembler:
    return VerificationReportAssembler()


# ── Trust Score Tests ────────────────────────────────────────────────────


class TestTrustScore:
    def test_verified_example(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(make_submission(), core_results())
        # 0.4*80 + 0.4*(100-10) + 0.2*90
        assert report.trust_score == 86
        assert report.verification_status == VerificationStatus.VERIFIED
        assert report.mocked_capabilities == []
        assert report.caveats == []

    def test_disputed_example(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(
            make_submission(with_location=False),
            core_results(credibility=50, deepfake_confidence=50.0),
        )
        # 0.4*50 + 0.4*50 + 0.2*70
        assert report.trust_score == 54
        assert report.verification_status == VerificationStatus.DISPUTED

    def test_mocked_results_do_not_count(self, assembler: VerificationReportAssembler) -> None:
        results = core_results()
        results["content_analysis"] = result("content_analysis", analysis(10), Origin.MOCKED)
        results["deepfake_check"] = result("deepfake_check", deepfake(99.0), Origin.MOCKED)
        submission = make_submission()
        # Only metadata completeness remains.
        assert assembler.trust_score(submission, results, ModerationAction.ALLOW) == 90

    def test_image_and_deepfake_are_averaged(self, assembler: VerificationReportAssembler) -> None:
        results = core_results(credibility=80, deepfake_confidence=20.0)
        results["image_verification"] = result(
            "image_verification", ImageAssessment(description="street", overall_credibility=60)
        )
        # integrity = (80 + 60) / 2 = 70 -> 32 + 28 + 18
        assert assembler.trust_score(make_submission(), results, ModerationAction.ALLOW) == 78

    def test_review_penalty_and_floor(self, assembler: VerificationReportAssembler) -> None:
        results = core_results(credibility=5, deepfake_confidence=100.0)
        submission = make_submission(with_location=False)
        # 2 + 0 + 14 - 20 clamps to 0
        assert assembler.trust_score(submission, results, ModerationAction.REVIEW) == 0


# ── Classification Tests ─────────────────────────────────────────────────


class TestClassification:
    def test_review_is_flagged(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(make_submission(), core_results(action=ModerationAction.REVIEW))
        assert report.verification_status == VerificationStatus.FLAGGED
        assert report.moderation_action == ModerationAction.REVIEW
        assert report.trust_score == 66

    def test_mocked_required_capability_is_pending(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(make_submission(), core_results(storage_origin=Origin.MOCKED))
        assert report.trust_score == 86
        assert report.verification_status == VerificationStatus.PENDING
        assert report.mocked_capabilities == ["storage_upload"]
        assert "decentralized storage" in report.caveats[0]

    def test_critical_deepfake_is_flagged(self, assembler: VerificationReportAssembler) -> None:
        results = core_results(deepfake_confidence=92.0)
        results["deepfake_check"] = result("deepfake_check", deepfake(92.0, flagged=True))
        report = assembler.assemble(make_submission(), results)
        assert report.verification_status == VerificationStatus.FLAGGED
        assert any("Manipulation detector" in c for c in report.caveats)

    def test_suspicious_analysis_flag(self, assembler: VerificationReportAssembler) -> None:
        results = core_results()
        results["content_analysis"] = result(
            "content_analysis", analysis(90, flags=["unverified_claims", "high_urgency"])
        )
        report = assembler.assemble(make_submission(), results)
        assert report.verification_status == VerificationStatus.FLAGGED

    def test_low_score_is_pending(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(
            make_submission(with_location=False),
            core_results(credibility=10, deepfake_confidence=60.0),
        )
        # 4 + 16 + 14
        assert report.trust_score == 34
        assert report.verification_status == VerificationStatus.PENDING

    def test_classify_precedence(self) -> None:
        classify = VerificationReportAssembler.classify
        assert classify(95, ModerationAction.REVIEW, [], []) == VerificationStatus.FLAGGED
        assert classify(95, ModerationAction.ALLOW, [], ["blockchain_anchor"]) == VerificationStatus.PENDING
        assert classify(95, ModerationAction.ALLOW, [], ["narration"]) == VerificationStatus.VERIFIED
        assert classify(75, ModerationAction.ALLOW, [], []) == VerificationStatus.VERIFIED
        assert classify(40, ModerationAction.ALLOW, [], []) == VerificationStatus.DISPUTED
        assert classify(39, ModerationAction.ALLOW, [], []) == VerificationStatus.PENDING

    def test_per_stage_results_are_plain_dicts(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(make_submission(), core_results())
        stored = report.per_stage_results["content_analysis"]
        assert stored.value["credibility_score"] == 80
        assert stored.origin == Origin.REAL


# ── Enrichment and Co-signature Tests ────────────────────────────────────


class TestPostRun:
    def test_attach_enrichment_keeps_score(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(make_submission(), core_results())
        enriched = assembler.attach_enrichment(
            report,
            {
                "narration": result(
                    "narration", Narration(voice_id="v", text="t"), Origin.MOCKED
                ),
                "translation:es": result(
                    "translation",
                    Translation(translated_text="inundación", target_language="es"),
                ),
            },
        )
        assert enriched.trust_score == report.trust_score
        assert enriched.verification_status == report.verification_status
        assert set(enriched.per_stage_results) >= {"narration", "translation:es"}
        assert enriched.mocked_capabilities == ["narration"]
        assert enriched.caveats == ["Narration audio was not generated."]

    def test_translation_caveat_names_language(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(make_submission(), core_results())
        enriched = assembler.attach_enrichment(
            report,
            {
                "translation:fr": result(
                    "translation",
                    Translation(translated_text="[FR] x", target_language="fr"),
                    Origin.MOCKED,
                )
            },
        )
        assert enriched.caveats[-1].endswith("(fr)")

    def test_verified_co_signature_raises_status(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(
            make_submission(with_location=False),
            core_results(credibility=50, deepfake_confidence=50.0),
        )
        signature = CoSignature(organization_name="Newsroom", verifier_name="A. Editor")

        signed = assembler.apply_co_signature(report, signature)
        assert signed.trust_score == 64
        assert signed.verification_status == VerificationStatus.VERIFIED

        again = assembler.apply_co_signature(signed, signature)
        assert again.trust_score == 64
        assert len(again.co_signatures) == 1

    def test_unverified_co_signature_changes_nothing(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(make_submission(), core_results(action=ModerationAction.REVIEW))
        signed = assembler.apply_co_signature(
            report,
            CoSignature(organization_name="NGO", verifier_name="B", is_verified=False),
        )
        assert signed.verification_status == VerificationStatus.FLAGGED
        assert signed.trust_score == report.trust_score
        assert len(signed.co_signatures) == 1

    def test_score_capped_at_100(self, assembler: VerificationReportAssembler) -> None:
        report = assembler.assemble(make_submission(), core_results(credibility=100, deepfake_confidence=0.0))
        assert report.trust_score == 98
        signed = assembler.apply_co_signature(
            report, CoSignature(organization_name="Newsroom", verifier_name="A")
        )
        assert signed.trust_score == 100
