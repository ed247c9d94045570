"""Proof and report storage keyed by submission id.

Follows the store pattern used elsewhere in the package:
- O(1) lookup by submission id
- asyncio lock around every mutation
- Optional JSON persistence

Unlike a best-effort cache, a failed write here is a failed save: the
in-memory state is rolled back and StorageUnavailableError is raised so the
caller can route the submission to the offline queue.

Usage:
    store = ProofStore(persistence_path="data/proofs.json")
    await store.save(proof, report)
    stored = await store.get("submission-id")
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ValidationError

from proof_pipeline.data_management.schemas.proof_schema import (
    ProofRecord,
    ProofStatus,
    VerificationReport,
)
from proof_pipeline.errors import StorageUnavailableError


class StoredProof(BaseModel):
    proof: ProofRecord
    report: VerificationReport


class ProofStore:
    """Durable store of completed runs.

    Data structure:
    {
        submission_id: StoredProof(proof, report),
        ...
    }
    """

    def __init__(self, persistence_path: Optional[str] = None) -> None:
        """Initialize ProofStore.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only.
        """
        self._records: dict[str, StoredProof] = {}
        self._lock = asyncio.Lock()
        self._persistence_path = Path(persistence_path) if persistence_path else None
        self._logger = structlog.get_logger().bind(component="ProofStore")

        if self._persistence_path and self._persistence_path.is_file():
            self._load_from_file()

    async def save(self, proof: ProofRecord, report: VerificationReport) -> None:
        """Upsert the proof and report for a submission.

        Raises:
            StorageUnavailableError: The store file could not be written.
        """
        async with self._lock:
            previous = self._records.get(proof.submission_id)
            self._records[proof.submission_id] = StoredProof(proof=proof, report=report)
            try:
                self._save_to_file()
            except OSError as e:
                if previous is None:
                    del self._records[proof.submission_id]
                else:
                    self._records[proof.submission_id] = previous
                self._logger.error(
                    "proof_save_failed",
                    submission_id=proof.submission_id,
                    error=str(e),
                )
                raise StorageUnavailableError(f"proof store unavailable: {e}") from e

            self._logger.debug(
                "proof_saved",
                submission_id=proof.submission_id,
                proof_id=proof.id,
                status=report.verification_status.value,
                replaced=previous is not None,
            )

    async def get(self, submission_id: str) -> Optional[StoredProof]:
        async with self._lock:
            return self._records.get(submission_id)

    async def get_completed(self, submission_id: str) -> Optional[StoredProof]:
        """Stored run for the submission if its proof completed."""
        async with self._lock:
            stored = self._records.get(submission_id)
            if stored and stored.proof.status == ProofStatus.COMPLETED:
                return stored
            return None

    async def update_report(self, report: VerificationReport) -> bool:
        """Replace the report of an existing record.

        Returns:
            True if updated, False if no record exists for the submission.

        Raises:
            StorageUnavailableError: The store file could not be written.
        """
        async with self._lock:
            stored = self._records.get(report.submission_id)
            if stored is None:
                return False

            self._records[report.submission_id] = StoredProof(proof=stored.proof, report=report)
            try:
                self._save_to_file()
            except OSError as e:
                self._records[report.submission_id] = stored
                raise StorageUnavailableError(f"proof store unavailable: {e}") from e

            self._logger.info(
                "report_updated",
                submission_id=report.submission_id,
                status=report.verification_status.value,
                trust_score=report.trust_score,
            )
            return True

    async def list_all(self) -> list[StoredProof]:
        async with self._lock:
            return sorted(self._records.values(), key=lambda s: s.proof.created_at)

    async def search(self, query: str) -> list[StoredProof]:
        """Case-insensitive search over summaries, key facts and transcripts."""
        needle = query.lower().strip()
        if not needle:
            return []
        async with self._lock:
            return [s for s in self._records.values() if needle in _searchable_text(s.report)]

    async def filter_by_tags(self, tags: list[str]) -> list[StoredProof]:
        """Records whose analysis event tags include any of ``tags``."""
        wanted = {t.lower() for t in tags}
        async with self._lock:
            return [
                s
                for s in self._records.values()
                if wanted & {t.lower() for t in _event_tags(s.report)}
            ]

    async def get_stats(self) -> dict[str, Any]:
        async with self._lock:
            status_counts: dict[str, int] = {}
            mocked = 0
            for stored in self._records.values():
                status = stored.report.verification_status.value
                status_counts[status] = status_counts.get(status, 0) + 1
                if stored.report.mocked_capabilities:
                    mocked += 1
            return {
                "total": len(self._records),
                "by_status": status_counts,
                "with_mocked_capabilities": mocked,
            }

    def _save_to_file(self) -> None:
        """Write the whole store atomically (synchronous)."""
        if not self._persistence_path:
            return
        self._persistence_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            submission_id: stored.model_dump(mode="json")
            for submission_id, stored in self._records.items()
        }
        tmp_path = self._persistence_path.with_name(self._persistence_path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_path, self._persistence_path)

    def _load_from_file(self) -> None:
        try:
            with open(self._persistence_path, encoding="utf-8") as f:
                data = json.load(f)
            self._records = {
                submission_id: StoredProof.model_validate(raw)
                for submission_id, raw in data.items()
            }
        except (OSError, ValueError, ValidationError) as e:
            raise StorageUnavailableError(
                f"proof store at {self._persistence_path} is unreadable: {e}"
            ) from e
        self._logger.info(
            "proof_store_loaded",
            path=str(self._persistence_path),
            records=len(self._records),
        )


def _analysis_value(report: VerificationReport) -> dict[str, Any]:
    result = report.per_stage_results.get("content_analysis")
    return result.value if result else {}


def _event_tags(report: VerificationReport) -> list[str]:
    return list(_analysis_value(report).get("event_tags", []))


def _searchable_text(report: VerificationReport) -> str:
    analysis = _analysis_value(report)
    parts = [analysis.get("summary", ""), *analysis.get("key_facts", [])]
    transcript = report.per_stage_results.get("transcription")
    if transcript:
        parts.append(transcript.value.get("text", ""))
    return " ".join(parts).lower()
