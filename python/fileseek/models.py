"""
Data Models - Type definitions for the indexing and search pipeline.

These dataclasses represent the data flowing between the producers,
the orchestrator, the snapshot cache and the fuzzy matcher.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List


# A FileBatch is an ordered, bounded run of relative paths
FileBatch = List[str]
ProgressCallback = Callable[[int], None]
BatchCallback = Callable[[FileBatch], None]


class Backend(Enum):
    """Which producer feeds the index."""
    AUTO = "auto"           # fd, then rg, then the internal walker
    FD = "fd"
    RG = "rg"
    INTERNAL = "internal"   # DirWalker only

    @classmethod
    def parse(cls, value: str) -> "Backend":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(b.value for b in cls)
            raise ValueError(f"Unknown backend {value!r} (expected one of: {choices})") from None


@dataclass
class IndexSnapshot:
    """
    Persisted result of one indexing run.

    mtimes is a partial, capped sample - only the first N files are
    stat'ed to bound the cost on very large trees.
    """
    root_fingerprint: str = ""
    files: List[str] = field(default_factory=list)
    mtimes: Dict[str, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.files

    def to_dict(self) -> dict:
        return {
            "root_fingerprint": self.root_fingerprint,
            "files": list(self.files),
            "mtimes": dict(self.mtimes),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IndexSnapshot":
        """Build a snapshot from decoded JSON, rejecting malformed shapes."""
        if not isinstance(data, dict):
            raise ValueError("snapshot must be a JSON object")
        files = data.get("files", [])
        mtimes = data.get("mtimes", {})
        if not isinstance(files, list) or not isinstance(mtimes, dict):
            raise ValueError("snapshot has malformed files/mtimes")
        return cls(
            root_fingerprint=str(data.get("root_fingerprint", "")),
            files=[str(f) for f in files],
            mtimes={str(k): int(v) for k, v in mtimes.items()},
        )


@dataclass(frozen=True)
class SearchResult:
    """A single ranked match for a query."""
    path: str
    score: int


@dataclass
class IndexingStats:
    """Statistics from an indexing run."""
    root: str = ""
    backend: str = ""
    files_indexed: int = 0
    batches_delivered: int = 0
    cancelled: bool = False
    truncated: bool = False      # Stopped at max_files
    duration_seconds: float = 0.0

    def __str__(self) -> str:
        status = "cancelled" if self.cancelled else "truncated" if self.truncated else "complete"
        return (
            f"Indexed {self.files_indexed} files "
            f"({self.batches_delivered} batches, backend={self.backend}, {status}) "
            f"in {self.duration_seconds:.2f}s"
        )
