"""
IndexCache - Disk-backed snapshot of the last index for a root.

Snapshots are JSON files named after an xxHash fingerprint of the
absolute root path, written to a temp file and renamed into place so a
reader never sees a partial write. Every failure degrades to "no cache".
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional

import xxhash

from .config import get_config
from .errors import handle_error
from .models import IndexSnapshot


logger = logging.getLogger(__name__)

CACHE_PREFIX = "fileseek_index_"


def fingerprint(root: Path | str) -> str:
    """16 hex chars identifying a normalized absolute root path."""
    normalized = os.path.normpath(os.path.abspath(os.fspath(root)))
    return xxhash.xxh64(normalized.encode("utf-8", "surrogateescape")).hexdigest()


def sample_mtimes(root: Path | str, files: Iterable[str], limit: int) -> Dict[str, int]:
    """
    Modification times (epoch seconds) for at most `limit` files.

    Only the first files are stat'ed to bound the cost on huge trees.
    Unreadable files are left out of the sample.
    """
    root = Path(root)
    mtimes: Dict[str, int] = {}
    if limit <= 0:
        return mtimes
    for rel in files:
        if len(mtimes) >= limit:
            break
        try:
            mtimes[rel] = int((root / rel).stat().st_mtime)
        except OSError as e:
            handle_error(e, root / rel, "sample_mtime")
    return mtimes


class IndexCache:
    """Persists and restores the IndexSnapshot for one root directory."""

    def __init__(self, root: Path | str, cache_dir: Optional[Path | str] = None):
        self.root = Path(root).expanduser().resolve()
        self.fingerprint = fingerprint(self.root)
        cache_dir = Path(cache_dir) if cache_dir is not None else get_config().cache_dir
        self.path = cache_dir / f"{CACHE_PREFIX}{self.fingerprint}.json"

    def load(self) -> IndexSnapshot:
        """Last saved snapshot, or an empty one. Never raises."""
        if not self.path.exists():
            return self._empty()
        try:
            with self.path.open(encoding="utf-8") as handle:
                return IndexSnapshot.from_dict(json.load(handle))
        except (OSError, ValueError, TypeError, RecursionError) as e:
            logger.debug(f"IndexCache load failed for {self.path}: {e}")
            return self._empty()

    def save(self, files: Iterable[str], mtimes: Dict[str, int]) -> bool:
        """Atomically write a snapshot. Returns False (and logs) on failure."""
        snapshot = IndexSnapshot(
            root_fingerprint=self.fingerprint,
            files=list(files),
            mtimes=dict(mtimes),
        )
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot.to_dict(), handle)
            os.replace(tmp_name, self.path)
            logger.debug(f"Saved index snapshot ({len(snapshot.files)} files) to {self.path}")
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"IndexCache save failed for {self.path}: {e}")
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug(f"Could not remove temp file {tmp_name}")
            return False

    def clear(self) -> None:
        """Remove the persisted snapshot; no-op if absent."""
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"IndexCache clear failed for {self.path}: {e}")

    def _empty(self) -> IndexSnapshot:
        return IndexSnapshot(root_fingerprint=self.fingerprint)
