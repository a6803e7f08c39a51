"""
DirWalker - Internal fallback traversal producer.

Walks the tree on a background thread using an explicit stack (no
recursion, so deep trees cannot exhaust the interpreter stack) and
pushes relative paths onto a bounded queue. A full queue blocks the
walker, which bounds memory to the queue capacity regardless of tree
size.
"""

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from .cancellation import CancellationToken
from .errors import handle_error
from .gitignore import IgnoreRuleSet


logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 10_000
SAMPLE_ENTRIES = 100        # Entries stat'ed when sampling a directory's size
_PUT_POLL_SECONDS = 0.05

# End-of-stream sentinel
END = None


def is_ignored_name(name: str, ignore_names: Sequence[str]) -> bool:
    """Exact match, or the ignore name with a leading "." (".node_modules")."""
    return any(name == pattern or name.startswith(f".{pattern}") for pattern in ignore_names)


def has_nested_name(relative_path: str, ignore_names: Sequence[str]) -> bool:
    """True when a multi-segment ignore name ("vendor/bundle") spans whole segments of the path."""
    padded = f"/{relative_path}/"
    return any("/" in name and f"/{name.strip('/')}/" in padded for name in ignore_names)


def has_ignored_segment(relative_path: str, ignore_names: Sequence[str]) -> bool:
    """True when any segment (or run of segments) of a relative path is hard-ignored."""
    if any(is_ignored_name(part, ignore_names) for part in relative_path.split("/")):
        return True
    return has_nested_name(relative_path, ignore_names)


class DirWalker:
    """
    Stack-based directory walker feeding a bounded queue.

    Usage:
        walker = DirWalker(root, ignore_names, cancel_token=token).start()
        for relative_path in walker:
            ...
        walker.join()
    """

    def __init__(
        self,
        root: Path | str,
        ignore_names: Sequence[str] = (),
        ignore_rules: Optional[IgnoreRuleSet] = None,
        max_dir_entries: int = 0,
        max_dir_sample_mb: int = 0,
        cancel_token: Optional[CancellationToken] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self.root = Path(root)
        self.ignore_names = list(ignore_names)
        self._nested_names = [name for name in self.ignore_names if "/" in name]
        self.ignore_rules = ignore_rules
        self.max_dir_entries = max_dir_entries
        self.max_sample_bytes = max_dir_sample_mb * 1_048_576
        self.cancel_token = cancel_token or CancellationToken()
        self.queue: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=queue_size)
        self.pruned_dirs: List[str] = []
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "DirWalker":
        self._thread = threading.Thread(
            target=self._run, name="fileseek-walker", daemon=True
        )
        self._thread.start()
        return self

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def __iter__(self) -> Iterator[str]:
        """Drain the queue until the end-of-stream sentinel."""
        while True:
            item = self.queue.get()
            if item is END:
                return
            yield item

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def _run(self) -> None:
        try:
            self._walk()
        except Exception:
            logger.exception(f"DirWalker failed under {self.root}")
        finally:
            self._put_sentinel()

    def _walk(self) -> None:
        stack: List[Path] = [self.root]
        while stack:
            if self.cancel_token.is_cancelled():
                logger.debug("DirWalker cancelled")
                return

            directory = stack.pop()
            entries = self._list_dir(directory)

            if self._too_big(directory, entries):
                rel = self._relative(directory)
                self.pruned_dirs.append(rel)
                logger.debug(f"Pruned large directory: {rel}")
                continue

            subdirs: List[Path] = []
            for entry in entries:
                if self.cancel_token.is_cancelled():
                    logger.debug("DirWalker cancelled")
                    return

                try:
                    is_dir = entry.is_dir(follow_symlinks=False)
                except OSError as e:
                    handle_error(e, entry.path, "walk_entry")
                    continue

                if self._hard_ignored(entry.name):
                    continue

                rel = self._relative(Path(entry.path))
                if self._nested_names and has_nested_name(rel, self._nested_names):
                    continue
                if self.ignore_rules is not None and self.ignore_rules.is_ignored(rel, is_directory=is_dir):
                    continue

                if is_dir:
                    subdirs.append(Path(entry.path))
                    continue

                try:
                    is_file = entry.is_file()
                except OSError as e:
                    handle_error(e, entry.path, "walk_entry")
                    continue
                if is_file and not self._put(rel):
                    return

            # Reverse so the stack pops subdirectories in name order
            stack.extend(reversed(subdirs))

    def _list_dir(self, directory: Path) -> List[os.DirEntry]:
        """Sorted entries of a directory; unreadable directories are empty."""
        try:
            with os.scandir(directory) as it:
                return sorted(it, key=lambda e: e.name)
        except OSError as e:
            handle_error(e, directory, "scan_directory")
            return []

    def _hard_ignored(self, name: str) -> bool:
        return is_ignored_name(name, self.ignore_names)

    def _too_big(self, directory: Path, entries: List[os.DirEntry]) -> bool:
        """Check the entry-count and sampled-size ceilings for a directory."""
        if self.max_dir_entries <= 0 and self.max_sample_bytes <= 0:
            return False
        if self.max_dir_entries > 0 and len(entries) > self.max_dir_entries:
            return True
        if self.max_sample_bytes <= 0:
            return False

        size = 0
        for entry in entries[:SAMPLE_ENTRIES]:
            try:
                if not entry.is_file(follow_symlinks=False):
                    continue
                size += entry.stat(follow_symlinks=False).st_size
            except OSError as e:
                handle_error(e, entry.path, "sample_size")
                continue
            if size > self.max_sample_bytes:
                return True
        return False

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def _put(self, item: str) -> bool:
        """Blocking put that gives up once cancelled. Returns False on cancel."""
        while True:
            if self.cancel_token.is_cancelled():
                return False
            try:
                self.queue.put(item, timeout=_PUT_POLL_SECONDS)
                return True
            except queue.Full:
                continue

    def _put_sentinel(self) -> None:
        """
        Always deliver END so a consumer blocked on get() unblocks.

        When cancelled the remaining items are worthless, so room is made
        by discarding the oldest ones instead of waiting on a consumer
        that may have stopped reading.
        """
        while True:
            try:
                self.queue.put(END, timeout=_PUT_POLL_SECONDS)
                return
            except queue.Full:
                if not self.cancel_token.is_cancelled():
                    continue
                try:
                    self.queue.get_nowait()
                except queue.Empty:
                    pass
