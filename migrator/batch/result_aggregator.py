"""
Result ordering and aggregation.

Workers finish in any order; everything exposed to callers goes through
``sort_results`` first so the final order depends only on the set of
original paths.
"""

from typing import List, Optional, Tuple, Union
import re

from config.logging_config import get_logger

from .models import ConversionResult, BatchResult

logger = get_logger(__name__)

_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(value: str) -> Tuple[Tuple[Union[str, int], ...], str]:
    """
    Numeric-aware, case-insensitive sort key.

    "file2" sorts before "file10" and "B.sql" next to "b.sql". The raw
    value breaks ties so the order stays total.
    """
    parts = _DIGITS.split(value.casefold())
    # split() alternates text/digits starting with text, so positions
    # always compare str with str and int with int
    key = tuple(int(p) if i % 2 else p for i, p in enumerate(parts))
    return key, value


def sort_results(results: List[ConversionResult]) -> List[ConversionResult]:
    """Return results ordered by original path."""
    return sorted(results, key=lambda r: natural_sort_key(r.original))


def success_rate(processed: int, total: int) -> int:
    """Percentage of successful items, rounded half up. 0 for an empty batch."""
    if total == 0:
        return 0
    return int(processed * 100 / total + 0.5)


class ResultAggregator:
    """
    Turns a pool's result list into a BatchResult.

    Usage:
        aggregator = ResultAggregator()
        batch = aggregator.aggregate(results, expected_total=len(items))
    """

    def aggregate(
        self,
        results: List[ConversionResult],
        expected_total: Optional[int] = None,
    ) -> BatchResult:
        """
        Sort results and compute counts.

        Args:
            results: One ConversionResult per input item, any order
            expected_total: Number of items submitted, when known

        Returns:
            BatchResult with sorted results

        Raises:
            ValueError: If results do not map 1:1 onto the submitted items
        """
        if expected_total is not None and len(results) != expected_total:
            raise ValueError(
                f"Expected {expected_total} results, got {len(results)}"
            )

        originals = [r.original for r in results]
        if len(set(originals)) != len(originals):
            raise ValueError("Duplicate results for the same input file")

        ordered = sort_results(results)
        processed = sum(1 for r in ordered if r.success)
        failed = len(ordered) - processed

        batch = BatchResult(
            total_files=len(ordered),
            processed_files=processed,
            failed_files=failed,
            success_rate=success_rate(processed, len(ordered)),
            results=ordered,
        )

        logger.info(
            f"Aggregated {batch.total_files} results: "
            f"{batch.processed_files} processed, {batch.failed_files} failed "
            f"({batch.success_rate}%)"
        )
        return batch
