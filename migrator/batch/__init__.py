"""
Parallel batch-conversion core.

Job lifecycle, worker pool, progress fan-out and result aggregation.
"""

from .errors import (
    BatchConversionError,
    ExtractionError,
    ConversionError,
    ItemTimeoutError,
    BatchTimeoutError,
    PackagingError,
    JobAlreadyExistsError,
)
from .models import WorkItem, ConversionResult, NamedContent, BatchResult
from .ports import ConversionPort, ArchivePort
from .job_registry import JobRegistry, Job, Step, JobStatus
from .progress_broadcaster import (
    ProgressBroadcaster,
    create_logging_callback,
    create_queue_callback,
)
from .worker_pool import WorkerPool, Worker, WorkQueue, PoolStats
from .result_aggregator import ResultAggregator, natural_sort_key, sort_results
from .orchestrator import BatchOrchestrator, OrchestratorConfig, band_progress

__all__ = [
    # Errors
    'BatchConversionError',
    'ExtractionError',
    'ConversionError',
    'ItemTimeoutError',
    'BatchTimeoutError',
    'PackagingError',
    'JobAlreadyExistsError',
    # Records
    'WorkItem',
    'ConversionResult',
    'NamedContent',
    'BatchResult',
    # Ports
    'ConversionPort',
    'ArchivePort',
    # Job management
    'JobRegistry',
    'Job',
    'Step',
    'JobStatus',
    # Progress
    'ProgressBroadcaster',
    'create_logging_callback',
    'create_queue_callback',
    # Worker pool
    'WorkerPool',
    'Worker',
    'WorkQueue',
    'PoolStats',
    # Aggregation
    'ResultAggregator',
    'natural_sort_key',
    'sort_results',
    # Orchestrator
    'BatchOrchestrator',
    'OrchestratorConfig',
    'band_progress',
]
