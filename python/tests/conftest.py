"""
Test Configuration - Shared fixtures for fileseek tests.

Uses pytest fixtures to create isolated directory trees and cache
locations.
"""

import shutil
import stat
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from fileseek.config import IndexerConfig, set_config
from fileseek.models import Backend


def _create_files(root: Path, tree: dict) -> None:
    """Create a tree from a nested dict: str values are file contents."""
    for name, content in tree.items():
        path = root / name
        if isinstance(content, dict):
            path.mkdir(parents=True, exist_ok=True)
            _create_files(path, content)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="fileseek_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def cache_dir() -> Generator[Path, None, None]:
    """Isolated snapshot cache location."""
    tmp = tempfile.mkdtemp(prefix="fileseek_cache_")
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def test_config(cache_dir: Path) -> Generator[IndexerConfig, None, None]:
    """An isolated configuration using only the internal walker."""
    config = IndexerConfig(
        backend=Backend.INTERNAL,
        cache_dir=cache_dir,
        batch_size=10,
        queue_size=100,
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def create_files() -> Callable[[Path, dict], None]:
    return _create_files


@pytest.fixture
def sample_tree(temp_dir: Path) -> Path:
    """A small project tree with ignorable directories."""
    _create_files(temp_dir, {
        "README.md": "# Test",
        "test.txt": "test",
        "src": {
            "main.rb": "puts 'hello'",
            "lib": {
                "helper.rb": "# helper",
            },
        },
        ".git": {
            "config": "git config",
            "HEAD": "ref: refs/heads/main",
        },
        "node_modules": {
            "package": {
                "index.js": "module.exports = {}",
            },
        },
    })
    return temp_dir


@pytest.fixture
def many_files(temp_dir: Path) -> Path:
    """150 files spread over a few directories."""
    for d in range(3):
        folder = temp_dir / f"dir{d}"
        folder.mkdir()
        for i in range(50):
            (folder / f"file{i:03d}.txt").write_text("content")
    return temp_dir


@pytest.fixture
def bin_dir(temp_dir: Path) -> Path:
    """Directory used as the search path for stand-in tools."""
    path = temp_dir / "bin"
    path.mkdir()
    return path


@pytest.fixture
def fake_tool(bin_dir: Path) -> Callable[[str, str], Path]:
    """Write an executable shell script standing in for fd / rg."""
    def make(name: str, body: str) -> Path:
        script = bin_dir / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script
    return make
