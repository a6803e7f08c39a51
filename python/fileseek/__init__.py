"""
fileseek - Index a directory tree and fuzzy-search its files.

Modules:
    - config: Centralized configuration
    - cancellation: Shared stop signal for a traversal
    - gitignore: .gitignore pattern parsing and matching
    - walker: Internal stack-based traversal thread (bounded queue)
    - backends: fd / ripgrep streaming subprocess producers
    - cache: Atomic JSON snapshot of the last index per root
    - indexer: Orchestrator (backend selection, batching, limits)
    - fuzzy: Single-pass subsequence scorer

Flow:
    Producer (fd → rg → DirWalker) → batches → IndexCache → FuzzyMatcher

Usage:
    from fileseek import Indexer

    indexer = Indexer()
    paths = indexer.index("~/src/project")
    print(indexer.search(paths, "usrb", limit=10))
"""

from .cancellation import CancellationToken
from .fuzzy import FuzzyMatcher, filter_paths
from .indexer import Indexer, IndexRequest, RequestTracker, index_directory

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "FuzzyMatcher",
    "Indexer",
    "IndexRequest",
    "RequestTracker",
    "filter_paths",
    "index_directory",
]
