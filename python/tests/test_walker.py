"""
DirWalker Tests - Verify the internal traversal producer.

Tests:
- Recursive discovery with "/" separators
- Hard-coded ignore names and gitignore rules
- Cancellation and the end-of-stream sentinel
- Bounded queue backpressure
- Directory pruning and unreadable directories
"""

import os
import sys
import threading
import time
from pathlib import Path

import pytest

from fileseek.cancellation import CancellationToken
from fileseek.gitignore import IgnoreRuleSet
from fileseek.walker import (
    END, DirWalker, has_ignored_segment, has_nested_name, is_ignored_name
)


def _walk(root: Path, **kwargs) -> list:
    walker = DirWalker(root, **kwargs).start()
    files = list(walker)
    walker.join(timeout=5)
    assert not walker.is_alive()
    return files


class TestDirWalker:
    """Tests for DirWalker traversal."""

    def test_walks_directory_recursively(self, temp_dir, create_files):
        """Walker finds files at every depth."""
        create_files(temp_dir, {
            "file1.txt": "content",
            "dir1": {
                "file2.rb": "code",
                "subdir": {"file3.md": "markdown"},
            },
            "file4.js": "javascript",
        })

        files = _walk(temp_dir)

        assert sorted(files) == ["dir1/file2.rb", "dir1/subdir/file3.md", "file1.txt", "file4.js"]

    def test_order_is_deterministic(self, temp_dir, create_files):
        """Two walks of the same tree produce the same order."""
        create_files(temp_dir, {"b": {"x.txt": ""}, "a": {"y.txt": ""}, "c.txt": ""})

        assert _walk(temp_dir) == _walk(temp_dir)

    def test_respects_ignore_names(self, temp_dir, create_files):
        """Hard-coded ignore names prune whole subtrees."""
        create_files(temp_dir, {
            "file.txt": "content",
            "node_modules": {"package": {"index.js": "code"}},
            ".git": {"config": "git config"},
            "src": {"main.rb": "ruby code"},
        })

        files = _walk(temp_dir, ignore_names=["node_modules", ".git"])

        assert "file.txt" in files
        assert "src/main.rb" in files
        assert not any("node_modules" in f for f in files)
        assert not any(".git" in f for f in files)

    def test_dot_prefixed_ignore_name(self, temp_dir, create_files):
        """A dot-prefixed variant of an ignore name is skipped too."""
        create_files(temp_dir, {".cache_dir": {"x.txt": ""}, "keep.txt": ""})

        files = _walk(temp_dir, ignore_names=["cache_dir"])

        assert files == ["keep.txt"]

    def test_respects_gitignore_rules(self, temp_dir, create_files):
        """Rules from an IgnoreRuleSet filter files and directories."""
        create_files(temp_dir, {
            "file.txt": "content",
            "ignored.log": "log file",
            "out": {"bin.o": ""},
            "src": {"main.rb": "code", "debug.log": "another log"},
        })

        files = _walk(temp_dir, ignore_rules=IgnoreRuleSet(["*.log", "out/"]))

        assert sorted(files) == ["file.txt", "src/main.rb"]

    def test_empty_directory(self, temp_dir):
        """An empty tree yields nothing and still terminates."""
        assert _walk(temp_dir) == []


class TestDirWalkerCancellation:
    """Tests for cancellation and the sentinel."""

    def test_cancellation_stops_walking(self, temp_dir):
        """Cancelling mid-walk yields strictly fewer files."""
        for i in range(100):
            (temp_dir / f"file{i}.txt").write_text("content")

        token = CancellationToken()
        walker = DirWalker(temp_dir, cancel_token=token, queue_size=5).start()

        files = []
        for path in walker:
            files.append(path)
            if len(files) == 5:
                token.cancel()

        walker.join(timeout=5)

        assert not walker.is_alive()
        assert 0 < len(files) < 100

    def test_cancel_without_consumer_terminates(self, temp_dir):
        """A cancelled walker finishes even when nobody drains a full queue."""
        for i in range(50):
            (temp_dir / f"file{i}.txt").write_text("content")

        token = CancellationToken()
        walker = DirWalker(temp_dir, cancel_token=token, queue_size=2).start()
        time.sleep(0.1)
        token.cancel()
        walker.join(timeout=5)

        assert not walker.is_alive()
        # The sentinel is always the last item left behind
        items = []
        while not walker.queue.empty():
            items.append(walker.queue.get_nowait())
        assert items[-1] is END

    def test_precancelled_token_yields_nothing(self, temp_dir):
        """A token cancelled before start produces only the sentinel."""
        (temp_dir / "a.txt").write_text("")
        token = CancellationToken()
        token.cancel()

        assert _walk(temp_dir, cancel_token=token) == []


class TestDirWalkerBackpressure:
    """Tests for the bounded queue."""

    def test_queue_size_limit(self, temp_dir):
        """The queue is created with the requested capacity."""
        for i in range(20):
            (temp_dir / f"file{i}.txt").write_text("content")

        walker = DirWalker(temp_dir, queue_size=5)
        assert walker.queue.maxsize == 5

        walker.start()
        files = list(walker)
        walker.join(timeout=5)

        assert len(files) == 20

    def test_in_flight_items_never_exceed_capacity(self, temp_dir):
        """With a slow consumer the queue never holds more than k items."""
        for i in range(40):
            (temp_dir / f"file{i}.txt").write_text("content")

        walker = DirWalker(temp_dir, queue_size=3)
        peak = 0
        stop = threading.Event()

        def monitor():
            nonlocal peak
            while not stop.is_set():
                peak = max(peak, walker.queue.qsize())
                time.sleep(0.001)

        watcher = threading.Thread(target=monitor)
        watcher.start()
        walker.start()

        files = []
        for path in walker:
            files.append(path)
            time.sleep(0.002)

        stop.set()
        watcher.join()
        walker.join(timeout=5)

        assert len(files) == 40
        assert peak <= 3


class TestDirWalkerLimits:
    """Tests for pruning and error handling."""

    def test_max_dir_entries_prunes_subtree(self, temp_dir):
        """Directories with too many entries are skipped entirely."""
        large = temp_dir / "large"
        large.mkdir()
        for i in range(20):
            (large / f"file{i}.txt").write_text("x")
        (temp_dir / "normal.txt").write_text("content")

        walker = DirWalker(temp_dir, max_dir_entries=10).start()
        files = list(walker)
        walker.join(timeout=5)

        assert files == ["normal.txt"]
        assert walker.pruned_dirs == ["large"]

    def test_max_dir_sample_size_prunes_subtree(self, temp_dir):
        """Directories whose sampled size exceeds the limit are skipped."""
        big = temp_dir / "big"
        big.mkdir()
        (big / "blob.bin").write_bytes(b"\0" * (2 * 1_048_576))
        (temp_dir / "small.txt").write_text("x")

        files = _walk(temp_dir, max_dir_sample_mb=1)

        assert files == ["small.txt"]

    def test_limits_disabled_by_zero(self, temp_dir):
        """Zero limits never prune."""
        for i in range(20):
            (temp_dir / f"file{i}.txt").write_text("x")

        assert len(_walk(temp_dir, max_dir_entries=0, max_dir_sample_mb=0)) == 20

    @pytest.mark.skipif(
        sys.platform == "win32" or (hasattr(os, "geteuid") and os.geteuid() == 0),
        reason="permissions are not enforced for root / on Windows",
    )
    def test_handles_directory_errors(self, temp_dir, create_files):
        """Unreadable directories are treated as empty."""
        create_files(temp_dir, {"readable": {"file.txt": "content"}})
        unreadable = temp_dir / "unreadable"
        unreadable.mkdir()
        (unreadable / "secret.txt").write_text("secret")
        unreadable.chmod(0o000)

        try:
            files = _walk(temp_dir)
        finally:
            unreadable.chmod(0o755)

        assert "readable/file.txt" in files
        assert "unreadable/secret.txt" not in files

    def test_nonexistent_root_terminates(self, temp_dir):
        """A missing root yields nothing instead of hanging."""
        assert _walk(temp_dir / "missing") == []


class TestIgnoreNames:
    """Tests for the name-based exclusion helpers."""

    def test_is_ignored_name(self):
        assert is_ignored_name("node_modules", ["node_modules"])
        assert is_ignored_name(".node_modules", ["node_modules"])
        assert not is_ignored_name("modules", ["node_modules"])
        assert not is_ignored_name(".gitignore", [".git"])

    def test_has_ignored_segment(self):
        assert has_ignored_segment("a/node_modules/b.js", ["node_modules"])
        assert not has_ignored_segment("a/b.js", ["node_modules"])

    def test_nested_ignore_name(self):
        """Multi-segment names match whole runs of segments only."""
        assert has_ignored_segment("vendor/bundle/gem.rb", ["vendor/bundle"])
        assert has_ignored_segment("app/vendor/bundle/gem.rb", ["vendor/bundle"])
        assert not has_ignored_segment("vendor/bundler/gem.rb", ["vendor/bundle"])
        assert not has_ignored_segment("vendor/gem.rb", ["vendor/bundle"])
        assert has_nested_name("vendor/bundle", ["vendor/bundle"])

    def test_walker_prunes_nested_ignore_name(self, temp_dir, create_files):
        """The walker skips a directory matched by a multi-segment name."""
        create_files(temp_dir, {
            "vendor": {"keep.rb": "", "bundle": {"gem.rb": ""}},
        })

        files = _walk(temp_dir, ignore_names=["vendor/bundle"])

        assert files == ["vendor/keep.rb"]
