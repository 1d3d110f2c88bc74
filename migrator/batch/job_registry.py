"""
Job registry and lifecycle.

Holds every in-flight and recently finished Job in memory. Each job has
its own lock so progress callbacks from one batch never serialize
behind another batch; the table lock only guards insert, remove and
lookup.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any, List, Callable, Sequence
import asyncio
import copy
import threading

from config.logging_config import get_logger
from config.constants import (
    DEFAULT_STEP_NAMES,
    JOB_RETENTION_SECONDS,
    JOB_EVICTION_INTERVAL_SECONDS,
)

from .errors import JobAlreadyExistsError
from .models import BatchResult
from .progress_broadcaster import ProgressBroadcaster

logger = get_logger(__name__)


class JobStatus(str, Enum):
    """Job status enumeration."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


@dataclass
class Step:
    """A named phase of a job."""
    name: str
    progress: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "progress": self.progress}


@dataclass
class Job:
    """One batch-conversion run."""
    id: str
    steps: List[Step]
    status: JobStatus = JobStatus.PENDING
    current_step: str = ""
    result: Optional[BatchResult] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    @property
    def overall_progress(self) -> float:
        """Mean of all step progress values."""
        if not self.steps:
            return 0.0
        return sum(s.progress for s in self.steps) / len(self.steps)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary."""
        return {
            "id": self.id,
            "status": self.status.value,
            "overall_progress": self.overall_progress,
            "current_step": self.current_step,
            "steps": [s.to_dict() for s in self.steps],
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "completed_at": _iso(self.completed_at),
            "failed_at": _iso(self.failed_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class _Entry:
    """A job plus the lock that serializes its mutations."""

    __slots__ = ("job", "lock")

    def __init__(self, job: Job):
        self.job = job
        self.lock = threading.Lock()


class JobRegistry:
    """
    In-memory table of jobs with per-job locking.

    Update paths (start, update_step_progress, complete, fail) are
    silent no-ops for unknown ids, so a late progress callback racing
    with eviction is harmless. Only ``get`` reports a missing job, by
    returning None.

    Usage:
        registry = JobRegistry(broadcaster=ProgressBroadcaster())
        registry.create("job-1")
        registry.start("job-1")
        registry.update_step_progress("job-1", 0, 50, "Extracting...")
        registry.complete("job-1", batch_result)
        snapshot = registry.get("job-1")
    """

    def __init__(
        self,
        broadcaster: Optional[ProgressBroadcaster] = None,
        retention_seconds: float = JOB_RETENTION_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize registry.

        Args:
            broadcaster: Where job events are published (optional)
            retention_seconds: Age after which evict_stale removes a job
            clock: Time source, injectable for tests
        """
        self.broadcaster = broadcaster
        self.retention = timedelta(seconds=retention_seconds)
        self._clock = clock

        self._jobs: Dict[str, _Entry] = {}
        self._table_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    def create(self, job_id: str, step_names: Optional[Sequence[str]] = None) -> Job:
        """
        Register a new pending job.

        Args:
            job_id: Unique job identifier
            step_names: Ordered step names (defaults to extract/convert/package)

        Returns:
            Snapshot of the created job

        Raises:
            JobAlreadyExistsError: If job_id is already registered
        """
        names = list(step_names or DEFAULT_STEP_NAMES)
        if not names:
            raise ValueError("A job needs at least one step")

        now = self._clock()
        job = Job(
            id=job_id,
            steps=[Step(name=name) for name in names],
            created_at=now,
            updated_at=now,
        )
        entry = _Entry(job)

        with self._table_lock:
            if job_id in self._jobs:
                raise JobAlreadyExistsError(f"Job already exists: {job_id}")
            self._jobs[job_id] = entry

        with entry.lock:
            logger.info(f"Job created: {job_id} ({len(names)} steps)")
            return self._publish(job)

    def get(self, job_id: str) -> Optional[Job]:
        """
        Get a snapshot of a job.

        Returns:
            Deep copy of the job, or None if unknown or evicted
        """
        entry = self._entry(job_id)
        if entry is None:
            return None
        with entry.lock:
            return copy.deepcopy(entry.job)

    def list_jobs(self) -> List[Job]:
        """Snapshots of every registered job, newest first."""
        with self._table_lock:
            entries = list(self._jobs.values())

        jobs = []
        for entry in entries:
            with entry.lock:
                jobs.append(copy.deepcopy(entry.job))
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def delete(self, job_id: str) -> bool:
        """Remove a job. Returns True if it existed."""
        with self._table_lock:
            removed = self._jobs.pop(job_id, None)
        if removed:
            logger.info(f"Job deleted: {job_id}")
        return removed is not None

    def __contains__(self, job_id: str) -> bool:
        with self._table_lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._jobs)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def start(self, job_id: str) -> Optional[Job]:
        """Move a pending job to running."""
        return self._mutate(job_id, "start", self._apply_start)

    def update_step_progress(
        self,
        job_id: str,
        step_index: int,
        progress: float,
        label: Optional[str] = None,
    ) -> Optional[Job]:
        """
        Set one step's progress and publish the new snapshot.

        Step progress never moves backwards; a lower value than the
        current one leaves the step unchanged but still refreshes the
        label and timestamp.

        Args:
            job_id: Job identifier
            step_index: Index into the job's steps
            progress: New progress, 0..100
            label: Current step description (defaults to the step name)

        Returns:
            Updated snapshot, or None if the job is unknown or terminal

        Raises:
            ValueError: If progress is outside 0..100 or step_index is invalid
        """
        if not 0 <= progress <= 100:
            raise ValueError(f"Progress must be within 0..100, got {progress}")

        def apply(job: Job):
            if not 0 <= step_index < len(job.steps):
                raise ValueError(
                    f"Step index {step_index} out of range for job {job.id} "
                    f"({len(job.steps)} steps)"
                )
            step = job.steps[step_index]
            step.progress = max(step.progress, float(progress))
            job.current_step = label or step.name

        return self._mutate(job_id, "update", apply)

    def complete(self, job_id: str, result: BatchResult) -> Optional[Job]:
        """
        Mark job as completed with its batch result.

        Every step is brought to 100 so overall progress is 100.
        """
        def apply(job: Job):
            for step in job.steps:
                step.progress = 100.0
            job.status = JobStatus.COMPLETED
            job.result = copy.deepcopy(result)
            job.current_step = "Completed"
            job.completed_at = self._clock()

        snapshot = self._mutate(job_id, "complete", apply)
        if snapshot:
            logger.info(
                f"Job completed: {job_id} "
                f"({result.processed_files}/{result.total_files} files, "
                f"{result.success_rate}% success)"
            )
        return snapshot

    def fail(self, job_id: str, error: str) -> Optional[Job]:
        """Mark job as failed."""
        def apply(job: Job):
            job.status = JobStatus.FAILED
            job.error = error
            job.current_step = f"Failed: {error}"
            job.failed_at = self._clock()

        snapshot = self._mutate(job_id, "fail", apply)
        if snapshot:
            logger.error(f"Job failed: {job_id} - {error}")
        return snapshot

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def evict_stale(self, now: Optional[datetime] = None) -> List[str]:
        """
        Remove every job created longer ago than the retention window.

        Status does not matter: running jobs are evicted too.

        Returns:
            Ids of evicted jobs
        """
        cutoff = (now or self._clock()) - self.retention

        with self._table_lock:
            stale = [
                job_id for job_id, entry in self._jobs.items()
                if entry.job.created_at < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]

        if stale:
            logger.info(f"Evicted {len(stale)} stale jobs")
        return stale

    async def run_eviction_loop(self, interval: float = JOB_EVICTION_INTERVAL_SECONDS):
        """Call evict_stale every `interval` seconds until cancelled."""
        logger.info(f"Job eviction loop started (every {interval}s)")
        while True:
            await asyncio.sleep(interval)
            self.evict_stale()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _entry(self, job_id: str) -> Optional[_Entry]:
        with self._table_lock:
            return self._jobs.get(job_id)

    def _mutate(self, job_id: str, action: str, apply: Callable[[Job], None]) -> Optional[Job]:
        entry = self._entry(job_id)
        if entry is None:
            logger.debug(f"Ignoring {action} for unknown job {job_id}")
            return None

        with entry.lock:
            job = entry.job
            if job.is_terminal:
                logger.warning(
                    f"Ignoring {action} for job {job_id}: already {job.status.value}"
                )
                return None
            apply(job)
            job.updated_at = self._clock()
            return self._publish(job)

    @staticmethod
    def _apply_start(job: Job):
        if job.status == JobStatus.PENDING:
            job.status = JobStatus.RUNNING

    def _publish(self, job: Job) -> Job:
        """Publish a snapshot while the job lock is held, keeping per-job order."""
        snapshot = copy.deepcopy(job)
        if self.broadcaster:
            self.broadcaster.publish(job.id, snapshot.to_dict())
        return snapshot
