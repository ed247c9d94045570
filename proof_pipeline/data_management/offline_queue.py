"""Durable FIFO queue for submissions accepted while offline.

Entries are keyed by submission id and ordered by a monotonically increasing
sequence number that survives restarts. The whole queue is rewritten
atomically (temp file + rename) on every change, so a crash leaves either the
old or the new file, never a torn one.

``drain()`` replays entries in order through the stage orchestrator. An entry
leaves the queue only after its run reaches a terminal outcome; the first
non-terminal outcome stops the drain so later entries never overtake it.
An entry left unresolved ``max_attempts`` times in a row is parked: it gets a
fresh sequence number behind every newer entry and the drain moves on.

Usage:
    queue = OfflineQueue("data/offline_queue.json", runner=orchestrator.run)
    ack = await queue.enqueue(submission)
    outcomes = await queue.drain()
"""

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from proof_pipeline.config.logging import get_logger
from proof_pipeline.data_management.schemas.proof_schema import (
    OfflineQueueEntry,
    PipelineOutcome,
    QueuedAck,
)
from proof_pipeline.data_management.schemas.submission_schema import Submission
from proof_pipeline.errors import QueuePersistenceError

ContinuePredicate = Callable[[], bool]
Runner = Callable[[Submission, ContinuePredicate], Awaitable[PipelineOutcome]]

DEFAULT_MAX_ATTEMPTS = 3

logger = get_logger("offline_queue")


def _always_online() -> bool:
    return True


class OfflineQueue:
    """Persistent offline submission queue."""

    def __init__(
        self,
        persistence_path: str | Path,
        runner: Optional[Runner] = None,
        is_online: Optional[ContinuePredicate] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """
        Args:
            persistence_path: JSON file backing the queue. Created on first write.
            runner: Coroutine function running one submission to an outcome.
            is_online: Connectivity predicate consulted before and during each run.
            max_attempts: Consecutive unresolved runs after which an entry is
                parked behind newer entries so it cannot block them.

        Raises:
            QueuePersistenceError: An existing queue file cannot be read.
        """
        self._path = Path(persistence_path)
        self._runner = runner
        self._is_online = is_online or _always_online
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._entries: dict[str, OfflineQueueEntry] = {}
        self._next_sequence = 1
        self._lock = asyncio.Lock()
        self._draining = False

        if self._path.is_file():
            self._load()

    def attach(self, runner: Runner, is_online: Optional[ContinuePredicate] = None) -> None:
        """Set the runner (and optionally the connectivity predicate) used by drain."""
        self._runner = runner
        if is_online is not None:
            self._is_online = is_online

    # ── Queue operations ──────────────────────────────────────────────────

    async def enqueue(self, submission: Submission) -> QueuedAck:
        """Persist a submission for later processing.

        Enqueueing an id that is already queued returns the existing ack.

        Raises:
            QueuePersistenceError: The queue file could not be written.
        """
        async with self._lock:
            existing = self._entries.get(submission.id)
            if existing is not None:
                logger.info(f"Submission {submission.id} already queued")
                return self._ack(existing, already_queued=True)

            entry = OfflineQueueEntry(
                submission=submission,
                sequence=self._next_sequence,
                enqueued_at=datetime.now(timezone.utc),
            )
            self._entries[submission.id] = entry
            self._next_sequence += 1
            try:
                self._persist()
            except QueuePersistenceError:
                del self._entries[submission.id]
                self._next_sequence -= 1
                raise

            logger.info(
                f"Queued submission {submission.id} "
                f"(sequence={entry.sequence}, pending={len(self._entries)})"
            )
            return self._ack(entry)

    async def drain(self) -> list[PipelineOutcome]:
        """Process queued submissions in FIFO order.

        Returns:
            Terminal outcomes of the entries removed during this drain. A
            concurrent call returns an empty list immediately.

        Raises:
            QueuePersistenceError: The queue file could not be written.
        """
        if self._runner is None:
            raise RuntimeError("OfflineQueue.drain() called before a runner was attached")
        if self._draining:
            logger.debug("Drain already in progress, skipping")
            return []

        self._draining = True
        outcomes: list[PipelineOutcome] = []
        parked: set[str] = set()
        try:
            while True:
                entry = self._head()
                if entry is None or entry.submission.id in parked:
                    break
                if not self._is_online():
                    logger.info(f"Connectivity lost, pausing drain with {len(self._entries)} pending")
                    break

                submission_id = entry.submission.id
                try:
                    outcome = await self._runner(entry.submission, self._is_online)
                except QueuePersistenceError:
                    raise
                except Exception as e:
                    logger.exception(f"Run of queued submission {submission_id} raised")
                    error = f"{type(e).__name__}: {e}"
                else:
                    if outcome.is_terminal:
                        await self._remove(submission_id)
                        outcomes.append(outcome)
                        logger.info(f"Drained submission {submission_id} ({outcome.status.value})")
                        continue
                    error = outcome.error or outcome.status.value

                entry = await self._record_attempt(submission_id, error)
                if entry is not None and self._due_for_parking(entry) and self._is_online():
                    await self._park(submission_id)
                    parked.add(submission_id)
                    continue

                logger.warning(f"Queued submission {submission_id} not resolved ({error}), stopping drain")
                break
        finally:
            self._draining = False

        return outcomes

    def pending(self) -> int:
        return len(self._entries)

    def entries(self) -> list[OfflineQueueEntry]:
        """Queued entries in FIFO order."""
        return sorted(self._entries.values(), key=lambda e: e.sequence)

    def get(self, submission_id: str) -> Optional[OfflineQueueEntry]:
        return self._entries.get(submission_id)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def stats(self) -> dict[str, Any]:
        ordered = self.entries()
        return {
            "pending": len(ordered),
            "oldest_enqueued_at": ordered[0].enqueued_at.isoformat() if ordered else None,
            "total_attempts": sum(e.attempts for e in ordered),
            "parked": sum(1 for e in ordered if e.times_parked),
            "draining": self._draining,
            "path": str(self._path),
        }

    # ── Internals ─────────────────────────────────────────────────────────

    def _head(self) -> Optional[OfflineQueueEntry]:
        if not self._entries:
            return None
        return min(self._entries.values(), key=lambda e: e.sequence)

    def _due_for_parking(self, entry: OfflineQueueEntry) -> bool:
        return entry.attempts >= self._max_attempts * (entry.times_parked + 1)

    def _ack(self, entry: OfflineQueueEntry, already_queued: bool = False) -> QueuedAck:
        position = sum(1 for e in self._entries.values() if e.sequence <= entry.sequence)
        return QueuedAck(
            submission_id=entry.submission.id,
            sequence=entry.sequence,
            enqueued_at=entry.enqueued_at,
            position=position,
            already_queued=already_queued,
        )

    async def _remove(self, submission_id: str) -> None:
        async with self._lock:
            removed = self._entries.pop(submission_id, None)
            if removed is None:
                return
            try:
                self._persist()
            except QueuePersistenceError:
                self._entries[submission_id] = removed
                raise

    async def _record_attempt(self, submission_id: str, error: str) -> Optional[OfflineQueueEntry]:
        async with self._lock:
            entry = self._entries.get(submission_id)
            if entry is None:
                return None
            entry = self._entries[submission_id] = entry.model_copy(
                update={
                    "attempts": entry.attempts + 1,
                    "last_error": error,
                    "last_attempt_at": datetime.now(timezone.utc),
                }
            )
            self._persist()
            return entry

    async def _park(self, submission_id: str) -> None:
        """Move a repeatedly failing entry behind every newer entry."""
        async with self._lock:
            entry = self._entries.get(submission_id)
            if entry is None:
                return
            self._entries[submission_id] = entry.model_copy(
                update={"sequence": self._next_sequence, "times_parked": entry.times_parked + 1}
            )
            self._next_sequence += 1
            try:
                self._persist()
            except QueuePersistenceError:
                self._entries[submission_id] = entry
                self._next_sequence -= 1
                raise
        logger.warning(
            f"Queued submission {submission_id} failed {self._max_attempts} times in a row "
            f"({entry.last_error}), parked behind newer entries"
        )

    def _persist(self) -> None:
        data = {
            "next_sequence": self._next_sequence,
            "entries": {
                submission_id: entry.model_dump(mode="json")
                for submission_id, entry in self._entries.items()
            },
        }
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as e:
            logger.error(f"Failed to persist offline queue to {self._path}: {e}")
            raise QueuePersistenceError(f"cannot write offline queue {self._path}: {e}") from e

    def _load(self) -> None:
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            self._entries = {
                submission_id: OfflineQueueEntry.model_validate(raw)
                for submission_id, raw in data.get("entries", {}).items()
            }
        except (OSError, ValueError, ValidationError) as e:
            raise QueuePersistenceError(f"cannot read offline queue {self._path}: {e}") from e

        highest = max((e.sequence for e in self._entries.values()), default=0)
        self._next_sequence = max(int(data.get("next_sequence", 1)), highest + 1)
        logger.info(f"Loaded offline queue from {self._path} ({len(self._entries)} pending)")
