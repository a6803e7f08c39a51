"""
Indexing Configuration - Centralized settings for fileseek.

Uses environment variables with sensible defaults. Every limit that
accepts 0 treats it as "disabled / unlimited".
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .models import Backend


DEFAULT_IGNORE_NAMES = (
    # Version control
    ".git",
    # Dependencies
    "node_modules", ".bundle", "vendor/bundle", "__pycache__",
    # Build outputs
    "build", "dist", "coverage",
    # Scratch / logs
    "tmp", "log", ".cache",
    # macOS
    ".DS_Store",
)


@dataclass
class IndexerConfig:
    """
    Configuration for the indexing and search pipeline.

    File limits default to unlimited; directory pruning is off unless
    explicitly enabled.
    """

    # --- Limits (0 = unlimited / disabled) ---
    max_files: int = 0
    max_dir_entries: int = 0
    max_dir_sample_mb: int = 0

    # --- Streaming ---
    batch_size: int = 1000          # Files per progress update / batch
    queue_size: int = 10_000        # Walker queue capacity (backpressure)

    # --- Backend ---
    backend: Backend = Backend.AUTO
    respect_gitignore: bool = True

    # --- Skip Patterns ---
    ignore_names: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_NAMES))

    # --- Cache ---
    cache_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    mtime_sample_size: int = 1000   # Only the first N files are stat'ed

    # --- Search ---
    max_visible_results: int = 5000

    def __post_init__(self):
        """Normalize paths and enum values."""
        self.cache_dir = Path(self.cache_dir).expanduser().resolve()
        if not isinstance(self.backend, Backend):
            self.backend = Backend.parse(self.backend)
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.queue_size < 1:
            raise ValueError(f"queue_size must be positive, got {self.queue_size}")

    @classmethod
    def from_env(cls) -> "IndexerConfig":
        """
        Create config from environment variables.

        Supported env vars:
            FILESEEK_MAX_FILES: Stop indexing after N files
            FILESEEK_MAX_DIR_FILES: Prune directories with more entries
            FILESEEK_MAX_DIR_SIZE_MB: Prune directories whose sampled size exceeds this
            FILESEEK_BATCH_SIZE: Files per progress update
            FILESEEK_QUEUE_SIZE: Walker queue capacity
            FILESEEK_BACKEND: auto, fd, rg or internal
            FILESEEK_CACHE_DIR: Where index snapshots are stored
            FILESEEK_MAX_VISIBLE: Search result limit
        """
        config = cls()

        if max_files := os.environ.get("FILESEEK_MAX_FILES"):
            config.max_files = int(max_files)

        if max_entries := os.environ.get("FILESEEK_MAX_DIR_FILES"):
            config.max_dir_entries = int(max_entries)

        if max_mb := os.environ.get("FILESEEK_MAX_DIR_SIZE_MB"):
            config.max_dir_sample_mb = int(max_mb)

        if batch_size := os.environ.get("FILESEEK_BATCH_SIZE"):
            config.batch_size = int(batch_size)

        if queue_size := os.environ.get("FILESEEK_QUEUE_SIZE"):
            config.queue_size = int(queue_size)

        if backend := os.environ.get("FILESEEK_BACKEND"):
            config.backend = Backend.parse(backend)

        if cache_dir := os.environ.get("FILESEEK_CACHE_DIR"):
            config.cache_dir = Path(cache_dir)

        if visible := os.environ.get("FILESEEK_MAX_VISIBLE"):
            config.max_visible_results = int(visible)

        config.__post_init__()
        return config


# Singleton default config
_default_config: IndexerConfig | None = None


def get_config() -> IndexerConfig:
    """Get the default configuration (singleton)."""
    global _default_config
    if _default_config is None:
        _default_config = IndexerConfig.from_env()
    return _default_config


def set_config(config: IndexerConfig | None) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
