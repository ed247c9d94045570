"""Verification report assembly: trust score and status classification.

Deterministic aggregation of a run's capability results:

Trust score (0-100), from sub-scores of REAL results only:
- content credibility (ContentAnalysis.credibility_score), weight 0.4
- manipulation integrity (100 - deepfake confidence, image credibility;
  averaged when both exist), weight 0.4
- metadata completeness (90 with location and capture time, else 70),
  weight 0.2; user-supplied, so always present
Weights are renormalised over the sub-scores that exist. A moderation
``review`` costs 20 points.

Status, first match wins:
1. flagged  - moderation review, or any real result carries a block-adjacent flag
2. pending  - a required capability was mocked
3. verified - score >= 75
4. disputed - 40 <= score < 75
5. pending
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from proof_pipeline.data_management.schemas.capability_schema import (
    CapabilityResult,
    ContentAnalysis,
    DeepfakeAssessment,
    ImageAssessment,
    ModerationAction,
    ModerationVerdict,
    Origin,
    RiskLevel,
)
from proof_pipeline.data_management.schemas.proof_schema import (
    CoSignature,
    VerificationReport,
    VerificationStatus,
)
from proof_pipeline.data_management.schemas.submission_schema import Submission

CREDIBILITY_WEIGHT = 0.4
MANIPULATION_WEIGHT = 0.4
METADATA_WEIGHT = 0.2

METADATA_COMPLETE_SCORE = 90
METADATA_PARTIAL_SCORE = 70
REVIEW_PENALTY = 20
CO_SIGNATURE_BONUS = 10

VERIFIED_THRESHOLD = 75
DISPUTED_THRESHOLD = 40
LOW_IMAGE_CREDIBILITY = 30

REQUIRED_CAPABILITIES = ("content_analysis", "storage_upload", "blockchain_anchor")
SUSPICIOUS_ANALYSIS_FLAGS = frozenset({"unverified_claims", "manipulated_media"})

REPORT_NAMESPACE = uuid.UUID("9a3e44b2-7f3c-4f41-8e0a-2d8f6c1b7e55")


def report_id_for(submission_id: str) -> str:
    return str(uuid.uuid5(REPORT_NAMESPACE, submission_id))


CAVEATS = {
    "moderation": "Content screening used offline keyword rules, not the moderation service.",
    "hashing": "The artifact could not be read; its fingerprint was derived from submission details.",
    "transcription": "Transcript is placeholder text; no speech recognition was performed.",
    "content_analysis": "Content analysis is demo output; credibility was not assessed.",
    "storage_upload": "Artifact was not uploaded to decentralized storage; the content id is a placeholder.",
    "blockchain_anchor": "Proof was not anchored on-chain; the transaction id is a placeholder.",
    "narration": "Narration audio was not generated.",
    "translation": "Translations are approximate dictionary substitutions.",
    "deepfake_check": "Manipulation detection did not run; the result is a placeholder.",
    "image_verification": "Image authenticity review did not run; the result is a placeholder.",
}


class VerificationReportAssembler:
    """Builds VerificationReports from capability results."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger().bind(component="VerificationReportAssembler")

    def assemble(
        self,
        submission: Submission,
        results: dict[str, CapabilityResult[Any]],
    ) -> VerificationReport:
        """Aggregate a run's results into a report.

        Args:
            submission: The submission the results belong to.
            results: Capability results keyed by capability name.
        """
        moderation = self._value(results, "moderation", ModerationVerdict, real_only=False)
        moderation_action = moderation.action if moderation else ModerationAction.ALLOW

        score = self.trust_score(submission, results, moderation_action)
        flags = self.block_adjacent_flags(results)
        mocked = sorted(name for name, r in results.items() if r.origin == Origin.MOCKED)

        status = self.classify(score, moderation_action, flags, mocked)

        report = VerificationReport(
            id=report_id_for(submission.id),
            submission_id=submission.id,
            trust_score=score,
            verification_status=status,
            per_stage_results={name: _flatten(r) for name, r in results.items()},
            moderation_action=moderation_action,
            mocked_capabilities=mocked,
            caveats=[*(_caveat(name) for name in mocked), *flags],
        )

        self._logger.info(
            "report_assembled",
            submission_id=submission.id,
            trust_score=report.trust_score,
            status=report.verification_status.value,
            mocked=mocked,
        )
        return report

    def trust_score(
        self,
        submission: Submission,
        results: dict[str, CapabilityResult[Any]],
        moderation_action: ModerationAction,
    ) -> int:
        weighted: list[tuple[float, float]] = []

        analysis = self._value(results, "content_analysis", ContentAnalysis)
        if analysis is not None:
            weighted.append((analysis.credibility_score, CREDIBILITY_WEIGHT))

        integrity = self._manipulation_integrity(results)
        if integrity is not None:
            weighted.append((integrity, MANIPULATION_WEIGHT))

        metadata = (
            METADATA_COMPLETE_SCORE
            if submission.enrichment.has_location_and_time
            else METADATA_PARTIAL_SCORE
        )
        weighted.append((metadata, METADATA_WEIGHT))

        total_weight = sum(w for _, w in weighted)
        score = sum(s * w for s, w in weighted) / total_weight

        if moderation_action == ModerationAction.REVIEW:
            score -= REVIEW_PENALTY

        return int(max(0, min(100, round(score))))

    def block_adjacent_flags(self, results: dict[str, CapabilityResult[Any]]) -> list[str]:
        """Human-readable reasons a real result warrants review."""
        flags: list[str] = []

        deepfake = self._value(results, "deepfake_check", DeepfakeAssessment)
        if deepfake and (deepfake.flagged_for_review or deepfake.risk_level == RiskLevel.CRITICAL):
            flags.append(
                f"Manipulation detector flagged the artifact "
                f"({deepfake.risk_level.value} risk, {deepfake.confidence:.0f}% confidence)."
            )

        image = self._value(results, "image_verification", ImageAssessment)
        if image and image.overall_credibility < LOW_IMAGE_CREDIBILITY:
            flags.append(
                f"Image authenticity review scored {image.overall_credibility}/100."
            )

        analysis = self._value(results, "content_analysis", ContentAnalysis)
        if analysis:
            suspicious = sorted(SUSPICIOUS_ANALYSIS_FLAGS.intersection(analysis.contextual_flags))
            if suspicious:
                flags.append(f"Content analysis raised: {', '.join(suspicious)}.")

        return flags

    @staticmethod
    def classify(
        score: int,
        moderation_action: ModerationAction,
        flags: list[str],
        mocked: list[str],
    ) -> VerificationStatus:
        if moderation_action == ModerationAction.REVIEW or flags:
            return VerificationStatus.FLAGGED
        if any(name in mocked for name in REQUIRED_CAPABILITIES):
            return VerificationStatus.PENDING
        if score >= VERIFIED_THRESHOLD:
            return VerificationStatus.VERIFIED
        if score >= DISPUTED_THRESHOLD:
            return VerificationStatus.DISPUTED
        return VerificationStatus.PENDING

    def attach_enrichment(
        self,
        report: VerificationReport,
        results: dict[str, CapabilityResult[Any]],
    ) -> VerificationReport:
        """Record enrichment results on a report without touching score or status."""
        if not results:
            return report
        mocked = sorted(name for name, r in results.items() if r.origin == Origin.MOCKED)
        return report.model_copy(
            update={
                "per_stage_results": {
                    **report.per_stage_results,
                    **{name: _flatten(r) for name, r in results.items()},
                },
                "mocked_capabilities": sorted({*report.mocked_capabilities, *mocked}),
                "caveats": [*report.caveats, *(_caveat(name) for name in mocked)],
                "updated_at": datetime.now(timezone.utc),
            }
        )

    def apply_co_signature(
        self,
        report: VerificationReport,
        co_signature: CoSignature,
    ) -> VerificationReport:
        """Attach a co-signature. Status and score only ever go up."""
        if any(c.id == co_signature.id for c in report.co_signatures):
            return report

        trust_score = report.trust_score
        status = report.verification_status
        if co_signature.is_verified:
            trust_score = min(100, trust_score + CO_SIGNATURE_BONUS)
            if VerificationStatus.VERIFIED.rank > status.rank:
                status = VerificationStatus.VERIFIED

        updated = report.model_copy(
            update={
                "co_signatures": [*report.co_signatures, co_signature],
                "trust_score": trust_score,
                "verification_status": status,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        self._logger.info(
            "co_signature_applied",
            submission_id=report.submission_id,
            organization=co_signature.organization_name,
            status=status.value,
            trust_score=trust_score,
        )
        return updated

    def _manipulation_integrity(self, results: dict[str, CapabilityResult[Any]]) -> Optional[float]:
        scores: list[float] = []
        deepfake = self._value(results, "deepfake_check", DeepfakeAssessment)
        if deepfake is not None:
            scores.append(100.0 - deepfake.confidence)
        image = self._value(results, "image_verification", ImageAssessment)
        if image is not None:
            scores.append(float(image.overall_credibility))
        if not scores:
            return None
        return sum(scores) / len(scores)

    @staticmethod
    def _value(
        results: dict[str, CapabilityResult[Any]],
        capability: str,
        model: type,
        real_only: bool = True,
    ) -> Any:
        result = results.get(capability)
        if result is None:
            return None
        if real_only and result.origin != Origin.REAL:
            return None
        if isinstance(result.value, model):
            return result.value
        return model.model_validate(result.value)


def _flatten(result: CapabilityResult[Any]) -> CapabilityResult[dict[str, Any]]:
    value = result.value
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    return CapabilityResult[dict[str, Any]](
        capability=result.capability,
        value=value,
        origin=result.origin,
        error=result.error,
        produced_at=result.produced_at,
    )


def _caveat(capability: str) -> str:
    # Per-language results are keyed "translation:<lang>".
    base, _, qualifier = capability.partition(":")
    text = CAVEATS.get(base, f"{base} result is a placeholder.")
    return f"{text} ({qualifier})" if qualifier else text
