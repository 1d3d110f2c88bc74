"""
Data records passed between the worker pool, the aggregator and the
job registry.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any


@dataclass(frozen=True)
class WorkItem:
    """One input file. Immutable once enqueued."""
    path: str  # relative to the extracted bundle, posix separators
    raw_content: str
    source_type: Optional[str] = None

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class ConversionResult:
    """Outcome for exactly one WorkItem."""
    original: str
    success: bool
    converted: Optional[str] = None
    content: Optional[str] = None
    error: Optional[str] = None
    source_type: Optional[str] = None
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original": self.original,
            "converted": self.converted,
            "content": self.content,
            "success": self.success,
            "error": self.error,
            "source_type": self.source_type,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass(frozen=True)
class NamedContent:
    """One artifact to be written into an output bundle."""
    name: str
    content: str


@dataclass
class BatchResult:
    """Aggregate outcome of a whole job."""
    total_files: int
    processed_files: int
    failed_files: int
    success_rate: int
    results: List[ConversionResult] = field(default_factory=list)
    bundle_path: Optional[str] = None
    packaging_error: Optional[str] = None

    @property
    def successful(self) -> List[ConversionResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[ConversionResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self, include_content: bool = True) -> Dict[str, Any]:
        results = [r.to_dict() for r in self.results]
        if not include_content:
            for r in results:
                r.pop("content", None)
        return {
            "total_files": self.total_files,
            "processed_files": self.processed_files,
            "failed_files": self.failed_files,
            "success_rate": self.success_rate,
            "bundle_path": self.bundle_path,
            "packaging_error": self.packaging_error,
            "results": results,
        }
