"""
Indexer - Main entry point for indexing a directory tree.

Picks a producer (fd, ripgrep, or the internal DirWalker), drains its
stream of relative paths into batches, applies the global file limit,
persists a snapshot and returns the full list:

    Producer → batching (on_progress / on_batch) → IndexCache → caller

Only the consuming loop touches the accumulated list and the current
batch; the CancellationToken is the only state shared with producers.
"""

import asyncio
import functools
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .backends import DEFAULT_EXCLUDES, BackendLocator, ExternalBackend
from .cache import IndexCache, sample_mtimes
from .cancellation import CancellationToken
from .config import IndexerConfig, get_config
from .errors import BackendUnavailableError, IndexingError, RootNotFoundError, handle_error
from .fuzzy import FuzzyMatcher
from .gitignore import IgnoreRuleSet
from .models import (
    Backend, BatchCallback, FileBatch, IndexingStats, ProgressCallback, SearchResult
)
from .walker import DirWalker, has_ignored_segment


logger = logging.getLogger(__name__)

# Preference order per configured strategy; the walker is always last
_STRATEGIES = {
    Backend.AUTO: (Backend.FD, Backend.RG, Backend.INTERNAL),
    Backend.FD: (Backend.FD, Backend.INTERNAL),
    Backend.RG: (Backend.RG, Backend.INTERNAL),
    Backend.INTERNAL: (Backend.INTERNAL,),
}


@dataclass(frozen=True)
class IndexRequest:
    """Identifies one logical indexing request."""
    generation: int
    root: str


class RequestTracker:
    """
    Hands out increasing generations and drops results from superseded ones.

    The check happens at delivery time, so a slow run that was replaced
    never has to be joined before the new one starts.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def begin(self, root: Path | str) -> IndexRequest:
        with self._lock:
            self._generation += 1
            return IndexRequest(generation=self._generation, root=str(root))

    def is_current(self, request: IndexRequest) -> bool:
        with self._lock:
            return request.generation == self._generation

    def deliver(self, request: IndexRequest, callback: Optional[Callable]) -> Optional[Callable]:
        """Wrap callback so it only runs while request is still current."""
        if callback is None:
            return None

        @functools.wraps(callback)
        def guarded(*args, **kwargs):
            if not self.is_current(request):
                logger.debug(f"Dropping stale result for generation {request.generation}")
                return None
            return callback(*args, **kwargs)

        return guarded


class _BatchCollector:
    """Accumulates paths, emits batches and enforces max_files."""

    def __init__(
        self,
        batch_size: int,
        max_files: int,
        token: CancellationToken,
        on_progress: Optional[ProgressCallback],
        on_batch: Optional[BatchCallback],
    ):
        self.batch_size = batch_size
        self.max_files = max_files
        self.token = token
        self.on_progress = on_progress
        self.on_batch = on_batch
        self.files: List[str] = []
        self.batch: FileBatch = []
        self.batches_delivered = 0
        self.truncated = False

    def add(self, path: str) -> bool:
        """Record one path. Returns False once the file limit is reached."""
        self.files.append(path)
        self.batch.append(path)
        if len(self.batch) >= self.batch_size:
            self.flush()
        if self.max_files > 0 and len(self.files) >= self.max_files:
            self.truncated = True
            self.token.cancel()
            return False
        return True

    def flush(self) -> None:
        """Report progress, then deliver the pending batch (if any)."""
        if not self.batch:
            return
        batch, self.batch = self.batch, []
        self._notify(self.on_progress, len(self.files))
        self._notify(self.on_batch, batch)
        self.batches_delivered += 1

    def finish(self) -> None:
        self.flush()
        self._notify(self.on_progress, len(self.files))

    def _notify(self, callback: Optional[Callable], payload) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as e:
            logger.error(f"Index callback error: {e}")


class Indexer:
    """
    Orchestrates one indexing run at a time for a caller (UI, CLI).

    Usage:
        indexer = Indexer()
        paths = indexer.index("~/src/project", on_progress=print)
        top = indexer.search(paths, "usrb")
    """

    def __init__(
        self,
        config: Optional[IndexerConfig] = None,
        locator: Optional[BackendLocator] = None,
        cache_factory: Optional[Callable[[Path], IndexCache]] = None,
    ):
        self.config = config or get_config()
        self.locator = locator or BackendLocator()
        self._cache_factory = cache_factory or (
            lambda root: IndexCache(root, cache_dir=self.config.cache_dir)
        )
        self.matcher = FuzzyMatcher(self.config.max_visible_results)
        self.requests = RequestTracker()
        self.last_stats: Optional[IndexingStats] = None

        self._lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._token = CancellationToken()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def index(
        self,
        root: Path | str,
        on_progress: Optional[ProgressCallback] = None,
        on_batch: Optional[BatchCallback] = None,
        batch_size: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
        request: Optional[IndexRequest] = None,
    ) -> List[str]:
        """
        Index every file under root and return relative paths.

        Args:
            root: Directory to index
            on_progress: Called with the cumulative file count, before
                the matching batch is delivered
            on_batch: Called with each batch of relative paths
            batch_size: Files per batch (default: config.batch_size)
            cancel_token: Token for this run (default: a fresh one that
                cancel() reaches)
            request: Tracked request this run belongs to; once it is
                superseded the snapshot is left to the newer run

        Returns:
            All relative paths in producer order, truncated at
            config.max_files when that limit is set.

        Raises:
            RootNotFoundError: root does not exist or is not a directory
        """
        root_path = Path(root).expanduser().resolve()
        if not root_path.is_dir():
            raise RootNotFoundError(root_path)

        token = cancel_token
        if token is None:
            token = CancellationToken()
            with self._lock:
                self._token = token

        started = time.monotonic()
        batch_size = batch_size or self.config.batch_size
        ignore_rules = IgnoreRuleSet.from_root(root_path) if self.config.respect_gitignore else None
        collector = _BatchCollector(
            batch_size=batch_size,
            max_files=self.config.max_files,
            token=token,
            on_progress=on_progress,
            on_batch=on_batch,
        )

        logger.info(f"Indexing {root_path} (backend={self.config.backend.value})")
        backend_used = self._run_producers(root_path, ignore_rules, token, collector)
        collector.finish()

        files = collector.files
        self._save_snapshot(root_path, files, request)

        stats = IndexingStats(
            root=str(root_path),
            backend=backend_used,
            files_indexed=len(files),
            batches_delivered=collector.batches_delivered,
            cancelled=token.is_cancelled() and not collector.truncated,
            truncated=collector.truncated,
            duration_seconds=time.monotonic() - started,
        )
        self.last_stats = stats
        logger.info(str(stats))
        return files

    async def index_async(
        self,
        root: Path | str,
        on_progress: Optional[ProgressCallback] = None,
        on_batch: Optional[BatchCallback] = None,
        batch_size: Optional[int] = None,
    ) -> List[str]:
        """Run index() on a worker thread; cancelling the task cancels the run."""
        token = CancellationToken()
        with self._lock:
            self._token = token
        loop = asyncio.get_running_loop()
        call = functools.partial(
            self.index, root, on_progress, on_batch, batch_size, cancel_token=token
        )
        try:
            return await loop.run_in_executor(None, call)
        except asyncio.CancelledError:
            token.cancel()
            raise

    def start(
        self,
        root: Path | str,
        on_progress: Optional[ProgressCallback] = None,
        on_batch: Optional[BatchCallback] = None,
        on_complete: Optional[Callable[[List[str]], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> IndexRequest:
        """
        Index in the background, superseding any run already in flight.

        Callbacks of a superseded request are silently dropped, so the
        caller only ever sees results for the latest request.
        """
        self.cancel()
        request = self.requests.begin(root)
        token = CancellationToken()
        with self._lock:
            self._token = token

        progress = self.requests.deliver(request, on_progress)
        batch = self.requests.deliver(request, on_batch)
        complete = self.requests.deliver(request, on_complete)
        error = self.requests.deliver(request, on_error)

        def run():
            try:
                files = self.index(root, progress, batch, cancel_token=token, request=request)
            except IndexingError as e:
                handle_error(e, root, "index")
                if error:
                    error(e)
                return
            if complete:
                complete(files)

        thread = threading.Thread(
            target=run, name=f"fileseek-index-{request.generation}", daemon=True
        )
        self._thread = thread
        thread.start()
        return request

    def wait(self, timeout: float | None = None) -> None:
        """Wait for the most recent background run started with start()."""
        if self._thread is not None:
            self._thread.join(timeout)

    def cancel(self) -> None:
        """Cancel the current run; a no-op when nothing is running."""
        with self._lock:
            self._token.cancel()

    def search(
        self,
        paths: List[str],
        query: Optional[str],
        limit: Optional[int] = None,
    ) -> List[str]:
        return self.matcher.filter(paths, query, limit)

    def search_scored(
        self,
        paths: List[str],
        query: Optional[str],
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        return self.matcher.search(paths, query, limit)

    def cached_paths(self, root: Path | str) -> List[str]:
        """Files from the last snapshot of root, for display before a fresh index."""
        return self._cache_factory(Path(root).expanduser().resolve()).load().files

    def clear_cache(self, root: Path | str) -> None:
        self._cache_factory(Path(root).expanduser().resolve()).clear()

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def _run_producers(
        self,
        root: Path,
        ignore_rules: Optional[IgnoreRuleSet],
        token: CancellationToken,
        collector: _BatchCollector,
    ) -> str:
        """Drain the first working producer into collector; returns its name."""
        for kind in _STRATEGIES[self.config.backend]:
            if kind is Backend.INTERNAL:
                break

            backend = ExternalBackend.create(
                kind,
                self.locator,
                root,
                respect_gitignore=self.config.respect_gitignore,
                exclude_names=self._exclude_names(),
                cancel_token=token,
            )
            if backend is None:
                logger.debug(f"{kind.value} not installed, trying next backend")
                continue

            try:
                self._drain(backend.open(), token, collector)
                return kind.value
            except BackendUnavailableError as e:
                handle_error(e, root, "index")

        self._drain_walker(root, ignore_rules, token, collector)
        return Backend.INTERNAL.value

    def _drain_walker(
        self,
        root: Path,
        ignore_rules: Optional[IgnoreRuleSet],
        token: CancellationToken,
        collector: _BatchCollector,
    ) -> None:
        walker = DirWalker(
            root,
            ignore_names=self.config.ignore_names,
            ignore_rules=ignore_rules,
            max_dir_entries=self.config.max_dir_entries,
            max_dir_sample_mb=self.config.max_dir_sample_mb,
            cancel_token=token,
            queue_size=self.config.queue_size,
        ).start()
        try:
            self._drain(iter(walker), token, collector)
        except BaseException:
            token.cancel()
            raise
        finally:
            # The walker always finishes once cancelled or exhausted
            walker.join()

    def _drain(
        self,
        stream: Iterator[str],
        token: CancellationToken,
        collector: _BatchCollector,
    ) -> None:
        try:
            for rel in stream:
                if token.is_cancelled():
                    break
                if has_ignored_segment(rel, self.config.ignore_names):
                    continue
                if not collector.add(rel):
                    break
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

    def _exclude_names(self) -> List[str]:
        names = list(DEFAULT_EXCLUDES)
        for name in self.config.ignore_names:
            if name not in names:
                names.append(name)
        return names

    def _save_snapshot(
        self,
        root: Path,
        files: List[str],
        request: Optional[IndexRequest] = None,
    ) -> None:
        mtimes = sample_mtimes(root, files, self.config.mtime_sample_size)
        cache = self._cache_factory(root)
        # A superseded request never writes after the current one
        with self._save_lock:
            if request is not None and not self.requests.is_current(request):
                logger.debug(f"Skipping snapshot for superseded generation {request.generation}")
                return
            if not cache.save(files, mtimes):
                logger.debug(f"Continuing without a snapshot for {root}")


def index_directory(
    root: Path | str,
    config: Optional[IndexerConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> List[str]:
    """
    Convenience function to index one directory.

    Usage:
        paths = index_directory("~/src/project")
        print(f"{len(paths)} files")
    """
    return Indexer(config).index(root, on_progress=on_progress)
