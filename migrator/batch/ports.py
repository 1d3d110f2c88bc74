"""
Collaborator interfaces consumed by the batch core.

The core never looks inside a converter or an archiver; it only calls
the methods below.
"""

from pathlib import Path
from typing import List, Optional, Protocol, Union, Awaitable, runtime_checkable

from .models import NamedContent


@runtime_checkable
class ConversionPort(Protocol):
    """
    Turns one source file into its converted text.

    ``convert`` may be a coroutine function or a plain blocking
    function; blocking implementations are run in a thread executor.
    It is slow (seconds) and may raise. A converter may also expose
    ``classify(content) -> str`` to pick a conversion variant before
    ``convert`` is called.
    """

    def convert(
        self,
        content: str,
        name: str,
        source_type: Optional[str] = None,
    ) -> Union[str, Awaitable[str]]:
        ...


@runtime_checkable
class ArchivePort(Protocol):
    """Reads an input bundle into a working directory and writes outputs back."""

    def extract(self, bundle_path: Union[str, Path]) -> Path:
        """Extract into a fresh directory unique to this batch."""
        ...

    def pack(self, files: List[NamedContent], bundle_name: str) -> Path:
        """Write named contents into a new bundle and return its path."""
        ...
