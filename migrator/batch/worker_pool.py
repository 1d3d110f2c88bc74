"""
Bounded worker pool for file conversion.

Workers pull from one shared queue, so a fast worker drains more items
than a slow one. Results travel back to the pool as messages on an
asyncio queue; a single collector task counts them and resolves on the
Nth result, racing against the batch deadline.
"""

from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Callable, Iterable, Any
import asyncio
import functools
import inspect
import threading
import time

from config.logging_config import get_logger
from config.constants import BATCH_MAX_CONCURRENCY, ITEM_TIMEOUT_SECONDS

from .errors import BatchTimeoutError, ConversionError, ItemTimeoutError
from .models import WorkItem, ConversionResult

logger = get_logger(__name__)


# (completed, total)
ProgressFunc = Callable[[int, int], None]
# (item, source_type) -> output artifact name
OutputNamer = Callable[[WorkItem, Optional[str]], str]


def default_output_namer(item: WorkItem, source_type: Optional[str] = None) -> str:
    return item.path


async def invoke(func: Callable[..., Any], *args) -> Any:
    """
    Call a converter method whether it is async or blocking.

    Blocking callables run in the default executor so they do not stall
    the event loop.
    """
    if inspect.iscoroutinefunction(func):
        return await func(*args)

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, functools.partial(func, *args))
    if inspect.isawaitable(result):
        result = await result
    return result


class WorkQueue:
    """Ordered queue of pending items with mutually exclusive pop."""

    def __init__(self, items: Iterable[WorkItem] = ()):
        self._items = deque(items)
        self._lock = threading.Lock()

    def pop(self) -> Optional[WorkItem]:
        """Take the next item, or None when the queue is drained."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class Worker:
    """
    One execution unit. Pulls an item, converts it, reports a result and
    repeats until the queue is empty.

    Item failures never escape ``run``: every pulled item yields exactly
    one ConversionResult on the report queue.
    """

    def __init__(
        self,
        worker_id: int,
        queue: WorkQueue,
        converter: Any,
        reports: asyncio.Queue,
        item_timeout: float = ITEM_TIMEOUT_SECONDS,
        output_namer: OutputNamer = default_output_namer,
    ):
        self.worker_id = worker_id
        self.queue = queue
        self.converter = converter
        self.reports = reports
        self.item_timeout = item_timeout
        self.output_namer = output_namer

        self.current_item: Optional[WorkItem] = None
        self.processed = 0

    async def run(self) -> int:
        """Drain the queue. Returns the number of items handled."""
        while True:
            item = self.queue.pop()
            if item is None:
                break

            self.current_item = item
            result = await self.process(item)
            self.current_item = None
            self.processed += 1
            await self.reports.put(result)

        logger.debug(f"Worker {self.worker_id} finished after {self.processed} items")
        return self.processed

    async def process(self, item: WorkItem) -> ConversionResult:
        """Convert one item under the per-item timeout."""
        start_time = time.time()
        source_type = item.source_type

        try:
            source_type, content = await asyncio.wait_for(
                self._convert(item),
                timeout=self.item_timeout,
            )
            converted = self.output_namer(item, source_type)
            duration_ms = (time.time() - start_time) * 1000

            logger.debug(
                f"Worker {self.worker_id}: {item.path} -> {converted} "
                f"({duration_ms:.0f}ms)"
            )
            return ConversionResult(
                original=item.path,
                success=True,
                converted=converted,
                content=content,
                source_type=source_type,
                duration_ms=duration_ms,
            )

        except asyncio.TimeoutError:
            error = str(ItemTimeoutError(self.item_timeout))

        except Exception as e:
            error = str(e) or e.__class__.__name__

        logger.warning(f"Worker {self.worker_id}: {item.path} failed: {error}")
        return ConversionResult(
            original=item.path,
            success=False,
            error=error,
            source_type=source_type,
            duration_ms=(time.time() - start_time) * 1000,
        )

    async def _convert(self, item: WorkItem):
        source_type = item.source_type
        classify = getattr(self.converter, "classify", None)
        try:
            if source_type is None and callable(classify):
                source_type = await invoke(classify, item.raw_content)

            content = await invoke(
                self.converter.convert, item.raw_content, item.name, source_type
            )
        except (asyncio.TimeoutError, TimeoutError) as e:
            # only wait_for in process() may report the per-item timeout
            raise ConversionError(str(e) or e.__class__.__name__) from e

        if not isinstance(content, str):
            raise ConversionError(
                f"Converter returned {type(content).__name__}, expected text"
            )
        return source_type, content


@dataclass
class PoolStats:
    """Statistics from the last pool run."""
    total_items: int = 0
    worker_count: int = 0
    successful: int = 0
    failed: int = 0
    duration_ms: float = 0.0


class WorkerPool:
    """
    Runs a batch of WorkItems across min(max_concurrency, len(items))
    workers.

    Usage:
        pool = WorkerPool(max_concurrency=8, item_timeout=120)
        results = await pool.run(
            items,
            converter,
            deadline=600,
            on_progress=lambda done, total: print(done, total),
        )
    """

    def __init__(
        self,
        max_concurrency: int = BATCH_MAX_CONCURRENCY,
        item_timeout: float = ITEM_TIMEOUT_SECONDS,
        output_namer: OutputNamer = default_output_namer,
    ):
        """
        Initialize worker pool.

        Args:
            max_concurrency: Upper bound on workers
            item_timeout: Timeout per conversion call in seconds
            output_namer: Builds the artifact name for a converted item
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.max_concurrency = max_concurrency
        self.item_timeout = item_timeout
        self.output_namer = output_namer

        self.last_stats = PoolStats()

    async def run(
        self,
        items: List[WorkItem],
        converter: Any,
        deadline: Optional[float] = None,
        on_progress: Optional[ProgressFunc] = None,
    ) -> List[ConversionResult]:
        """
        Convert every item and collect one result per item.

        Args:
            items: Items to convert
            converter: ConversionPort implementation
            deadline: Seconds allowed for the whole batch (None = unbounded)
            on_progress: Optional callback(completed, total)

        Returns:
            Results in completion order, exactly one per item

        Raises:
            BatchTimeoutError: If the deadline elapses first. Every worker
                is cancelled and partial results are discarded.
        """
        if not items:
            self.last_stats = PoolStats()
            return []

        total = len(items)
        worker_count = min(self.max_concurrency, total)
        start_time = time.time()

        queue = WorkQueue(items)
        reports: asyncio.Queue = asyncio.Queue()
        workers = [
            Worker(
                worker_id=i,
                queue=queue,
                converter=converter,
                reports=reports,
                item_timeout=self.item_timeout,
                output_namer=self.output_namer,
            )
            for i in range(worker_count)
        ]

        logger.info(
            f"Processing {total} items with {worker_count} workers "
            f"(item timeout {self.item_timeout}s, deadline {deadline}s)"
        )

        results: List[ConversionResult] = []

        async def collect():
            while len(results) < total:
                result = await reports.get()
                results.append(result)
                if on_progress:
                    try:
                        on_progress(len(results), total)
                    except Exception as e:
                        logger.error(f"Progress callback error: {e}")

        tasks = [
            asyncio.create_task(worker.run(), name=f"worker-{worker.worker_id}")
            for worker in workers
        ]

        try:
            if deadline is None:
                await collect()
            else:
                await asyncio.wait_for(collect(), timeout=deadline)

        except asyncio.TimeoutError:
            in_flight = [w.current_item.path for w in workers if w.current_item]
            logger.error(
                f"Batch deadline of {deadline}s elapsed with {len(results)}/{total} "
                f"results; cancelling {len(in_flight)} in-flight items"
            )
            raise BatchTimeoutError(deadline, len(results), total) from None

        finally:
            await self._shutdown(tasks)

        successful = sum(1 for r in results if r.success)
        self.last_stats = PoolStats(
            total_items=total,
            worker_count=worker_count,
            successful=successful,
            failed=total - successful,
            duration_ms=(time.time() - start_time) * 1000,
        )

        logger.info(
            f"Pool complete: {successful}/{total} successful, "
            f"{total - successful} failed"
        )
        return results

    @staticmethod
    async def _shutdown(tasks: List[asyncio.Task]):
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
