"""
Pytest configuration and shared fixtures for code-migrator tests.
"""
import sys
import asyncio
import zipfile
import pytest
import tempfile
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Generator, Iterable, Optional

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from migrator.batch import JobRegistry, ProgressBroadcaster, WorkItem


# ============================================================================
# Test doubles
# ============================================================================

class ScriptedConverter:
    """
    Async converter whose behavior is scripted per file name.

    Files in `fail` raise, files in `hang` never return (until
    cancelled), everything else is upper-cased after `delay` seconds.
    """

    def __init__(
        self,
        fail: Iterable[str] = (),
        hang: Iterable[str] = (),
        delay: float = 0.0,
        source_type: Optional[str] = None,
    ):
        self.fail = set(fail)
        self.hang = set(hang)
        self.delay = delay
        self.source_type = source_type
        self.calls = []
        self.cancelled = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def convert(self, content: str, name: str, source_type: Optional[str] = None) -> str:
        self.calls.append((name, source_type))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if name in self.hang:
                try:
                    await asyncio.sleep(3600)
                except asyncio.CancelledError:
                    self.cancelled.append(name)
                    raise
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if name in self.fail:
                raise RuntimeError(f"cannot convert {name}")
            return content.upper()
        finally:
            self.in_flight -= 1


class FakeClock:
    """Injectable clock for registry tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class RecordingArchiver:
    """ArchivePort double: extracts a prepared directory, records packs."""

    def __init__(self, source_dir: Path, work_root: Path, fail_pack: bool = False):
        self.source_dir = source_dir
        self.work_root = work_root
        self.fail_pack = fail_pack
        self.extracted = []
        self.packed = []

    def extract(self, bundle_path) -> Path:
        target = self.work_root / f"work_{len(self.extracted)}"
        shutil.copytree(self.source_dir, target)
        self.extracted.append(target)
        return target

    def pack(self, files, bundle_name: str) -> Path:
        if self.fail_pack:
            raise OSError("disk full")
        self.packed.append((bundle_name, list(files)))
        return self.work_root / f"{bundle_name}.zip"


# ============================================================================
# Fixtures: Filesystem
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def make_tree(temp_dir: Path):
    """Write a {relative path: content} mapping under temp_dir/src."""
    def _make(files: Dict[str, str], name: str = "src") -> Path:
        root = temp_dir / name
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root
    return _make


@pytest.fixture
def make_bundle(temp_dir: Path):
    """Write a {member name: content} mapping into a zip under temp_dir."""
    def _make(files: Dict[str, str], name: str = "bundle.zip") -> Path:
        zip_path = temp_dir / name
        with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zf:
            for member, content in files.items():
                zf.writestr(member, content)
        return zip_path
    return _make


# ============================================================================
# Fixtures: Batch core
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broadcaster() -> ProgressBroadcaster:
    return ProgressBroadcaster()


@pytest.fixture
def registry(broadcaster: ProgressBroadcaster, clock: FakeClock) -> JobRegistry:
    return JobRegistry(broadcaster=broadcaster, clock=clock)


@pytest.fixture
def converter_cls():
    return ScriptedConverter


@pytest.fixture
def archiver_cls():
    return RecordingArchiver


@pytest.fixture
def make_items():
    """Build WorkItems named file1.sql .. fileN.sql."""
    def _make(count: int, ext: str = "sql"):
        return [
            WorkItem(path=f"file{i}.{ext}", raw_content=f"select {i} from dual;")
            for i in range(1, count + 1)
        ]
    return _make


# ============================================================================
# Session-level Setup/Teardown
# ============================================================================

def pytest_configure(config):
    """Configure pytest session."""
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests spanning several components")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers."""
    for item in items:
        # Auto-add 'unit' marker to test files in tests/unit/
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        # Auto-add 'integration' marker to test files in tests/integration/
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
