"""
Zip bundle handling (ArchivePort implementation) and path guards.
"""

from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Union
import shutil
import uuid
import zipfile

from config.logging_config import get_logger

from migrator.batch.errors import ExtractionError, PackagingError
from migrator.batch.models import NamedContent

logger = get_logger(__name__)


def _timestamp() -> str:
    """ISO timestamp safe for file names."""
    return datetime.now().isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-")


def is_path_inside(path: Union[str, Path], root: Union[str, Path]) -> bool:
    """True if path resolves to root or somewhere below it."""
    resolved = Path(path).resolve()
    root = Path(root).resolve()
    return resolved == root or root in resolved.parents


def ensure_path_under(path: Union[str, Path], roots: Iterable[Union[str, Path]]) -> Path:
    """
    Resolve a user-supplied path and require it to live under one of roots.

    Raises:
        ValueError: If the path escapes every root
    """
    resolved = Path(path).resolve()
    roots = list(roots)
    if not any(is_path_inside(resolved, root) for root in roots):
        raise ValueError(f"Path is outside the allowed directories: {path}")
    return resolved


class ZipArchiver:
    """
    Extracts input zips into per-batch working directories and packs
    converted outputs into a new zip.

    Usage:
        archiver = ZipArchiver(temp_dir=settings.temp_dir, output_dir=settings.zips_dir)
        work_dir = archiver.extract("uploads/oracle.zip")
        bundle = archiver.pack([NamedContent("a__sf.sql", "...")], "converted_oracle_snowflake")
    """

    def __init__(self, temp_dir: Union[str, Path], output_dir: Union[str, Path]):
        self.temp_dir = Path(temp_dir)
        self.output_dir = Path(output_dir)

    def extract(self, bundle_path: Union[str, Path]) -> Path:
        """
        Extract a zip into a fresh directory unique to this batch.

        Members that would land outside the target directory are refused
        and nothing is extracted. A failed extraction leaves no directory
        behind.

        Raises:
            ExtractionError: Missing, corrupt or unsafe bundle
        """
        bundle_path = Path(bundle_path)
        if not bundle_path.is_file():
            raise ExtractionError(f"Bundle not found: {bundle_path}")

        target = self.temp_dir / f"{_timestamp()}_{uuid.uuid4().hex[:8]}"

        try:
            with zipfile.ZipFile(bundle_path) as zf:
                for member in zf.namelist():
                    if not is_path_inside(target / member, target):
                        raise ExtractionError(f"Unsafe path in bundle: {member}")
                target.mkdir(parents=True)
                try:
                    zf.extractall(target)
                except BaseException:
                    shutil.rmtree(target, ignore_errors=True)
                    raise
        except zipfile.BadZipFile as e:
            raise ExtractionError(f"Invalid zip file {bundle_path.name}: {e}") from e
        except (RuntimeError, NotImplementedError) as e:
            # encrypted members, unsupported compression methods
            raise ExtractionError(f"Cannot extract {bundle_path.name}: {e}") from e
        except OSError as e:
            raise ExtractionError(f"Failed to extract {bundle_path.name}: {e}") from e

        logger.info(f"Extracted {bundle_path.name} to {target}")
        return target

    def pack(self, files: List[NamedContent], bundle_name: str) -> Path:
        """
        Write named contents into `<bundle_name>_<timestamp>.zip`.

        Raises:
            PackagingError: The zip could not be written
        """
        zip_path = self.output_dir / f"{bundle_name}_{_timestamp()}.zip"

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zf:
                for item in files:
                    arcname = PurePosixPath(item.name).as_posix().lstrip("/")
                    zf.writestr(arcname, item.content)
        except (OSError, ValueError) as e:
            if zip_path.exists():
                zip_path.unlink()
            raise PackagingError(f"Failed to create {zip_path.name}: {e}") from e

        logger.info(f"Created bundle: {zip_path} ({len(files)} files)")
        return zip_path
