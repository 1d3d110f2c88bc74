"""
Batch orchestrator.

Composes the registry, archiver, worker pool and aggregator into one
job: extract -> discover -> convert -> aggregate -> package -> finalize.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Any, Tuple, Union
import asyncio
import shutil
import time
import uuid

from config.logging_config import get_logger
from config.constants import (
    BATCH_MAX_CONCURRENCY,
    ITEM_TIMEOUT_SECONDS,
    BATCH_DEADLINE_SECONDS,
    STEP_EXTRACT,
    STEP_CONVERT,
    STEP_PACKAGE,
    STEP_PROGRESS_START,
    STEP_PROGRESS_SPAN,
)

from .errors import ExtractionError
from .job_registry import JobRegistry
from .models import BatchResult, NamedContent
from .ports import ArchivePort, ConversionPort
from .result_aggregator import ResultAggregator
from .worker_pool import WorkerPool

logger = get_logger(__name__)


def band_progress(completed: int, total: int) -> int:
    """
    Map completed/total onto 10..90 of the convert step.

    The first and last 10% are left for setup and teardown, so 100 is
    only reached once the pool has returned.
    """
    if total <= 0:
        return STEP_PROGRESS_START
    return STEP_PROGRESS_START + int(completed / total * STEP_PROGRESS_SPAN + 0.5)


@dataclass
class OrchestratorConfig:
    """Configuration for BatchOrchestrator."""
    max_concurrency: int = BATCH_MAX_CONCURRENCY  # cap on the profile's own limit
    item_timeout: float = ITEM_TIMEOUT_SECONDS
    deadline: Optional[float] = BATCH_DEADLINE_SECONDS

    @classmethod
    def from_settings(cls, settings) -> "OrchestratorConfig":
        return cls(
            max_concurrency=settings.max_concurrency,
            item_timeout=settings.item_timeout_seconds,
            deadline=settings.batch_deadline_seconds,
        )


class BatchOrchestrator:
    """
    Runs one conversion profile over input bundles.

    Only ExtractionError, BatchTimeoutError and unexpected errors escape
    ``run``; each of them fails the job first. Item failures end up in
    the BatchResult and packaging failures in
    ``BatchResult.packaging_error``.

    Usage:
        orchestrator = BatchOrchestrator(
            registry=registry,
            profile=get_profile("oracle-to-snowflake"),
            converter=LLMConverter(provider, profile),
            archiver=ZipArchiver(settings.temp_dir, settings.zips_dir),
        )
        job_id, result = await orchestrator.run("uploads/oracle.zip")
    """

    def __init__(
        self,
        registry: JobRegistry,
        profile: Any,
        converter: Optional[ConversionPort] = None,
        archiver: Optional[ArchivePort] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            registry: Where the job is tracked
            profile: ConversionProfile (file discovery, naming, concurrency)
            converter: Default ConversionPort
            archiver: Default ArchivePort
            config: Pool and timeout settings
        """
        self.registry = registry
        self.profile = profile
        self.converter = converter
        self.archiver = archiver
        self.config = config or OrchestratorConfig()
        self.aggregator = ResultAggregator()

        logger.info(
            f"BatchOrchestrator initialized: "
            f"profile={profile.name}, "
            f"workers={self.worker_limit}, "
            f"item_timeout={self.config.item_timeout}s, "
            f"deadline={self.config.deadline}s"
        )

    @property
    def worker_limit(self) -> int:
        return max(1, min(self.profile.max_concurrency, self.config.max_concurrency))

    def new_job_id(self) -> str:
        return f"{self.profile.name}_{uuid.uuid4().hex[:12]}"

    def create_job(self, job_id: Optional[str] = None) -> str:
        """Register a pending job ahead of ``run`` so callers can hand out its id."""
        job_id = job_id or self.new_job_id()
        self.registry.create(job_id, self.profile.step_names)
        return job_id

    async def run(
        self,
        bundle_path: Union[str, Path],
        converter: Optional[ConversionPort] = None,
        archiver: Optional[ArchivePort] = None,
        job_id: Optional[str] = None,
    ) -> Tuple[str, BatchResult]:
        """
        Process a bundle end-to-end.

        Args:
            bundle_path: Input bundle
            converter: ConversionPort for this run (defaults to the constructor's)
            archiver: ArchivePort for this run (defaults to the constructor's)
            job_id: Id of a job created with ``create_job``; a new job is
                registered when omitted

        Returns:
            Tuple of (job id, BatchResult)

        Raises:
            ExtractionError: Bundle could not be read
            BatchTimeoutError: Deadline elapsed before every file finished
        """
        converter = converter or self.converter
        archiver = archiver or self.archiver
        if converter is None or archiver is None:
            raise ValueError("BatchOrchestrator.run needs a converter and an archiver")

        if job_id is None or job_id not in self.registry:
            job_id = self.create_job(job_id)

        start_time = time.time()
        work_dir: Optional[Path] = None
        self.registry.start(job_id)
        logger.info(f"[{job_id}] Starting {self.profile.name} batch for {bundle_path}")

        try:
            # Phase 1: extract and discover
            self.registry.update_step_progress(
                job_id, STEP_EXTRACT, STEP_PROGRESS_START, "Extracting archive..."
            )
            # zip and file I/O run in a worker thread so other jobs keep moving
            work_dir = await asyncio.to_thread(archiver.extract, bundle_path)
            items = await asyncio.to_thread(self._load_items, work_dir)
            self.registry.update_step_progress(
                job_id, STEP_EXTRACT, 100, f"Found {len(items)} files"
            )

            # Phase 2: convert
            self.registry.update_step_progress(
                job_id, STEP_CONVERT, STEP_PROGRESS_START, f"Converting {len(items)} files..."
            )

            def on_progress(completed: int, total: int):
                self.registry.update_step_progress(
                    job_id,
                    STEP_CONVERT,
                    band_progress(completed, total),
                    f"Converted {completed}/{total} files",
                )

            pool = WorkerPool(
                max_concurrency=self.worker_limit,
                item_timeout=self.config.item_timeout,
                output_namer=self.profile.output_name,
            )
            results = await pool.run(
                items,
                converter,
                deadline=self.config.deadline,
                on_progress=on_progress,
            )
            batch = self.aggregator.aggregate(results, expected_total=len(items))
            self.registry.update_step_progress(
                job_id, STEP_CONVERT, 100,
                f"Converted {batch.processed_files}/{batch.total_files} files",
            )

            # Phase 3: package
            await self._package(job_id, batch, archiver)

            self.registry.complete(job_id, batch)
            logger.info(
                f"[{job_id}] Done in {time.time() - start_time:.1f}s: "
                f"{batch.processed_files} converted, {batch.failed_files} failed"
            )
            return job_id, batch

        except asyncio.CancelledError:
            self.registry.fail(job_id, "Cancelled")
            raise

        except Exception as e:
            self.registry.fail(job_id, str(e))
            raise

        finally:
            if work_dir is not None:
                shutil.rmtree(work_dir, ignore_errors=True)
                logger.debug(f"[{job_id}] Removed working directory {work_dir}")

    def _load_items(self, work_dir: Path):
        try:
            return self.profile.load_items(work_dir)
        except OSError as e:
            raise ExtractionError(f"Failed to read extracted files: {e}") from e

    async def _package(self, job_id: str, batch: BatchResult, archiver: ArchivePort):
        """Pack successful outputs. Failure is recorded, never raised."""
        self.registry.update_step_progress(
            job_id, STEP_PACKAGE, STEP_PROGRESS_START, "Creating final package..."
        )

        successful = batch.successful
        if not successful:
            logger.warning(f"[{job_id}] No successful conversions, skipping package")
            self.registry.update_step_progress(job_id, STEP_PACKAGE, 100, "Nothing to package")
            return

        files = [NamedContent(name=r.converted, content=r.content) for r in successful]
        try:
            bundle = await asyncio.to_thread(archiver.pack, files, self.profile.bundle_prefix)
            batch.bundle_path = str(bundle)
        except Exception as e:
            logger.error(f"[{job_id}] Packaging failed: {e}")
            batch.packaging_error = str(e)

        self.registry.update_step_progress(job_id, STEP_PACKAGE, 100, "Package step finished")
