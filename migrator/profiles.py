"""
Conversion profiles.

A profile describes one batch kind: which files belong to it, how a
file is classified, how outputs are named and how wide the worker pool
may be. Profiles are plain data plus pure functions so the same input
always yields the same output names.
"""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple
import os

from config.logging_config import get_logger
from config.constants import DEFAULT_STEP_NAMES, SKIP_DIRECTORIES

from migrator.batch.models import WorkItem
from migrator.batch.result_aggregator import natural_sort_key
from migrator.converters.prompts import (
    ORACLE_TO_SNOWFLAKE_PROMPT,
    BATCH_TO_IDMC_PROMPT,
    BATCH_TO_SUMMARY_PROMPT,
    SUMMARY_TO_JSON_PROMPT,
)

logger = get_logger(__name__)


# ============================================================================
# Classifiers
# ============================================================================

_PLSQL_MARKERS = (
    "CREATE OR REPLACE PROCEDURE",
    "CREATE OR REPLACE FUNCTION",
    "CREATE OR REPLACE PACKAGE",
    "CREATE OR REPLACE TRIGGER",
    "DECLARE",
    "BEGIN",
    "END;",
    "EXCEPTION",
)

_ORACLE_SCRIPT_MARKERS = ("SQLPLUS", "SPOOL", "VARCHAR2", "SYSDATE", "DBMS_")
_REDSHIFT_SCRIPT_MARKERS = ("PSQL", "DISTKEY", "SORTKEY", "REDSHIFT", "COPY ", "UNLOAD ")


def classify_oracle(content: str) -> str:
    """'plsql' for procedural code, 'sql' for everything else."""
    upper = content.upper()
    if any(marker in upper for marker in _PLSQL_MARKERS):
        return "plsql"
    return "sql"


def classify_script(content: str) -> str:
    """Which database a batch script drives: 'oracle', 'redshift' or 'general'."""
    upper = content.upper()
    if any(marker in upper for marker in _ORACLE_SCRIPT_MARKERS):
        return "oracle"
    if any(marker in upper for marker in _REDSHIFT_SCRIPT_MARKERS):
        return "redshift"
    return "general"


def classify_summary(content: str) -> str:
    """'json', 'markdown' or 'text' depending on how the summary is written."""
    stripped = content.lstrip()
    if stripped.startswith(("{", "[")):
        return "json"
    if any(line.lstrip().startswith(("#", "|")) for line in stripped.splitlines()):
        return "markdown"
    return "text"


# ============================================================================
# Output naming
# ============================================================================

def _with_name(item: WorkItem, name: str) -> str:
    parent = PurePosixPath(item.path).parent
    if str(parent) in ("", "."):
        return name
    return str(parent / name)


def _stem(item: WorkItem) -> str:
    return PurePosixPath(item.path).stem


def snowflake_output_name(item: WorkItem, source_type: Optional[str] = None) -> str:
    """PL/SQL becomes a JavaScript stored procedure, plain SQL stays SQL."""
    ext = ".js" if source_type in ("plsql", "pls") else ".sql"
    return _with_name(item, f"{_stem(item)}__sf{ext}")


def idmc_summary_output_name(item: WorkItem, source_type: Optional[str] = None) -> str:
    return _with_name(item, f"{_stem(item)}_IDMC_Summary.md")


def human_summary_output_name(item: WorkItem, source_type: Optional[str] = None) -> str:
    return _with_name(item, f"{_stem(item)}_HumanReadable_Summary.txt")


def idmc_mapping_output_name(item: WorkItem, source_type: Optional[str] = None) -> str:
    return _with_name(item, f"{_stem(item)}_IDMC_Mapping.bin")


# ============================================================================
# Profiles
# ============================================================================

@dataclass(frozen=True)
class ConversionProfile:
    """One batch kind."""
    name: str
    description: str
    extensions: FrozenSet[str]
    classify: Callable[[str], str]
    output_name: Callable[[WorkItem, Optional[str]], str]
    prompt: str
    max_concurrency: int
    bundle_prefix: str
    step_names: Tuple[str, ...] = DEFAULT_STEP_NAMES
    # lowercase substrings that select a file regardless of its extension
    name_keywords: FrozenSet[str] = frozenset()

    def matches(self, filename: str) -> bool:
        if Path(filename).suffix.lower() in self.extensions:
            return True
        lowered = Path(filename).name.lower()
        return any(keyword in lowered for keyword in self.name_keywords)

    def discover_files(self, root: Path) -> List[Path]:
        """
        Find every matching file under root.

        Hidden entries and build/dependency directories are skipped.
        Unreadable directories are logged and skipped.

        Returns:
            Absolute paths in natural order of their relative path
        """
        root = Path(root)
        found: List[Path] = []

        def on_error(error: OSError):
            logger.warning(f"Skipping unreadable directory {error.filename}: {error.strerror}")

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames[:] = [
                d for d in dirnames
                if not d.startswith(".") and d not in SKIP_DIRECTORIES
            ]
            for filename in filenames:
                if filename.startswith(".") or not self.matches(filename):
                    continue
                found.append(Path(dirpath) / filename)

        found.sort(key=lambda p: natural_sort_key(p.relative_to(root).as_posix()))
        logger.info(f"[{self.name}] Found {len(found)} files under {root}")
        return found

    def load_items(self, root: Path) -> List[WorkItem]:
        """
        Read discovered files into WorkItems.

        Undecodable bytes are replaced so every discovered file becomes
        an item.
        """
        root = Path(root)
        items = []
        for path in self.discover_files(root):
            content = path.read_text(encoding="utf-8", errors="replace")
            items.append(WorkItem(path=path.relative_to(root).as_posix(), raw_content=content))
        return items


SCRIPT_EXTENSIONS = frozenset({".bat", ".sh", ".ksh", ".py"})

PROFILES: Dict[str, ConversionProfile] = {
    profile.name: profile
    for profile in (
        ConversionProfile(
            name="oracle-to-snowflake",
            description="Oracle SQL and PL/SQL to Snowflake SQL / JavaScript procedures",
            extensions=frozenset({".sql", ".pls", ".pkg", ".pkb", ".pks"}),
            classify=classify_oracle,
            output_name=snowflake_output_name,
            prompt=ORACLE_TO_SNOWFLAKE_PROMPT,
            max_concurrency=4,
            bundle_prefix="converted_oracle_snowflake",
        ),
        ConversionProfile(
            name="batch-to-idmc",
            description="Batch and shell scripts to IDMC mapping summaries",
            extensions=SCRIPT_EXTENSIONS,
            classify=classify_script,
            output_name=idmc_summary_output_name,
            prompt=BATCH_TO_IDMC_PROMPT,
            max_concurrency=8,
            bundle_prefix="batch_scripts_idmc_summaries",
        ),
        ConversionProfile(
            name="batch-to-summary",
            description="Batch and shell scripts to human-readable summaries",
            extensions=SCRIPT_EXTENSIONS,
            classify=classify_script,
            output_name=human_summary_output_name,
            prompt=BATCH_TO_SUMMARY_PROMPT,
            max_concurrency=8,
            bundle_prefix="human_readable_summaries",
        ),
        ConversionProfile(
            name="summary-to-json",
            description="IDMC mapping summaries to IDMC mapping JSON",
            extensions=frozenset({".md", ".txt", ".json", ".bin"}),
            classify=classify_summary,
            output_name=idmc_mapping_output_name,
            prompt=SUMMARY_TO_JSON_PROMPT,
            max_concurrency=8,
            bundle_prefix="idmc_mapping_bin",
            name_keywords=frozenset({"idmc", "summary"}),
        ),
    )
}


def get_profile(name: str) -> ConversionProfile:
    """
    Look up a profile by name.

    Raises:
        ValueError: If no profile has that name
    """
    try:
        return PROFILES[name]
    except KeyError:
        available = ", ".join(sorted(PROFILES))
        raise ValueError(f"Unknown conversion kind '{name}'. Available: {available}") from None
