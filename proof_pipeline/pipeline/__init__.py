"""Evidence pipeline: intake routing, stage orchestration and report assembly.

Usage:
    from proof_pipeline.pipeline import EvidencePipeline

    pipeline = EvidencePipeline()
    proof, report = await pipeline.submit(submission)
"""

from proof_pipeline.pipeline.evidence_pipeline import EvidencePipeline
from proof_pipeline.pipeline.orchestrator import StageOrchestrator
from proof_pipeline.pipeline.report_assembler import VerificationReportAssembler

__all__ = ["EvidencePipeline", "StageOrchestrator", "VerificationReportAssembler"]
