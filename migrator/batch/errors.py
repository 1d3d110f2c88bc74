"""
Error taxonomy for batch conversion.

Item-level errors (ConversionError, ItemTimeoutError) never leave a
Worker; they are recorded in that item's ConversionResult. Job-level
errors (ExtractionError, BatchTimeoutError) fail the job and escape
the orchestrator.
"""


class BatchConversionError(Exception):
    """Base class for batch conversion errors."""


class ExtractionError(BatchConversionError):
    """The input bundle could not be extracted. Fatal to the job."""


class ConversionError(BatchConversionError):
    """A single file failed to convert. Recoverable at batch level."""


class ItemTimeoutError(ConversionError):
    """A single conversion call exceeded the per-item timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Conversion timed out after {timeout:g}s")


class BatchTimeoutError(BatchConversionError):
    """The pool-wide deadline elapsed before every item finished."""

    def __init__(self, deadline: float, completed: int, total: int):
        self.deadline = deadline
        self.completed = completed
        self.total = total
        super().__init__(
            f"Batch timed out after {deadline:g}s: "
            f"{total - completed} of {total} files unprocessed"
        )


class PackagingError(BatchConversionError):
    """Converted outputs could not be written to a bundle."""


class JobAlreadyExistsError(BatchConversionError):
    """A job with the same id is already registered."""
