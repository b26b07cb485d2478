"""
Batch scoring over many subjects with per-subject failure isolation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from .engine import ScoringEngine
from .errors import ScoringError
from .models import ScoreTrigger

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Summary of a batch run."""
    processed: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "errors": dict(self.errors),
            "skipped": list(self.skipped),
            "cancelled": self.cancelled,
        }


class BatchRunner:
    """
    Scores subjects with a bounded pool of workers.

    Each subject runs inside its own failure boundary: whatever goes wrong
    is recorded against its id and the run carries on. Every
    ``throttle_every`` subjects a worker yields for ``throttle_seconds``.
    Cancellation takes effect between subjects; subjects already being
    scored finish, and subjects never started are reported as skipped.
    """

    def __init__(
        self,
        engine: ScoringEngine,
        workers: int = 4,
        throttle_every: int = 10,
        throttle_seconds: float = 0.1,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.engine = engine
        self.workers = workers
        self.throttle_every = throttle_every
        self.throttle_seconds = throttle_seconds
        self._cancel = asyncio.Event()
        self._started = 0

    @classmethod
    def from_settings(cls, engine: ScoringEngine, settings) -> "BatchRunner":
        return cls(
            engine,
            workers=settings.batch_workers,
            throttle_every=settings.batch_throttle_every,
            throttle_seconds=settings.batch_throttle_seconds,
        )

    def cancel(self):
        """Stop handing out new subjects."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    async def run(
        self,
        subject_ids: Iterable[str],
        trigger: ScoreTrigger = ScoreTrigger.SCHEDULED,
    ) -> BatchResult:
        """
        Score every subject once.

        Args:
            subject_ids: Subjects to score; duplicates are scored once
            trigger: Trigger recorded on each snapshot

        Returns:
            BatchResult with processed count and per-subject errors
        """
        ids = list(subject_ids)
        unique = list(dict.fromkeys(ids))
        if len(unique) != len(ids):
            logger.warning(f"Ignoring {len(ids) - len(unique)} duplicate subject ids in batch")

        self._cancel.clear()
        self._started = 0
        result = BatchResult()

        queue: asyncio.Queue = asyncio.Queue()
        for subject_id in unique:
            queue.put_nowait(subject_id)

        logger.info(f"Batch scoring {len(unique)} subjects with {self.workers} workers")
        workers = [
            asyncio.create_task(self._worker(queue, result, trigger))
            for _ in range(min(self.workers, len(unique)))
        ]
        if workers:
            await asyncio.gather(*workers)

        while not queue.empty():
            result.skipped.append(queue.get_nowait())
        result.cancelled = self.cancelled

        logger.info(
            f"Batch complete: {result.processed} processed, {result.failed} failed"
            + (f", {len(result.skipped)} skipped after cancellation" if result.skipped else "")
        )
        return result

    async def _worker(self, queue: asyncio.Queue, result: BatchResult, trigger: ScoreTrigger):
        while not self._cancel.is_set():
            try:
                subject_id = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            self._started += 1
            started = self._started
            await self._score_one(subject_id, result, trigger)

            if self.throttle_every and started % self.throttle_every == 0:
                await asyncio.sleep(self.throttle_seconds)

    async def _score_one(self, subject_id: str, result: BatchResult, trigger: ScoreTrigger):
        try:
            await self.engine.score_subject(subject_id, trigger)
            result.processed += 1
        except ScoringError as e:
            logger.error(f"Scoring failed for {subject_id}: {e.describe()}")
            result.errors[subject_id] = e.describe()
        except Exception as e:
            logger.exception(f"Unexpected error scoring {subject_id}")
            result.errors[subject_id] = f"{type(e).__name__}: {e}"
