"""
CLI - Index a directory and print its files, or the best matches for a query.

    fileseek ~/src/project            # every indexed path
    fileseek ~/src/project usrb -n 20 # top 20 fuzzy matches
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import IndexerConfig
from .errors import RootNotFoundError
from .indexer import Indexer
from .models import Backend


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fileseek",
        description="Index a directory tree and fuzzy-search its files",
    )
    parser.add_argument("root", help="Directory to index")
    parser.add_argument("query", nargs="?", default="", help="Fuzzy query (optional)")
    parser.add_argument("-n", "--limit", type=int, default=None, help="Maximum results to print")
    parser.add_argument(
        "--backend",
        choices=[b.value for b in Backend],
        default=None,
        help="Producer to use (default: auto)",
    )
    parser.add_argument("--max-files", type=int, default=None, help="Stop after N files (0 = unlimited)")
    parser.add_argument("--no-gitignore", action="store_true", help="Do not apply .gitignore rules")
    parser.add_argument("--clear-cache", action="store_true", help="Remove the stored snapshot first")
    parser.add_argument("--scores", action="store_true", help="Print match scores")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s"
    )

    config = IndexerConfig.from_env()
    if args.backend:
        config.backend = Backend.parse(args.backend)
    if args.max_files is not None:
        config.max_files = args.max_files
    if args.no_gitignore:
        config.respect_gitignore = False

    indexer = Indexer(config)
    root = Path(args.root).expanduser()

    if args.clear_cache:
        indexer.clear_cache(root)

    try:
        paths = indexer.index(root)
    except RootNotFoundError as e:
        print(f"fileseek: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        indexer.cancel()
        print("\nStopped.", file=sys.stderr)
        return 130

    stats = indexer.last_stats
    if stats is not None:
        print(str(stats), file=sys.stderr)

    if args.scores:
        for result in indexer.search_scored(paths, args.query, args.limit):
            print(f"{result.score:5d}  {result.path}")
    else:
        for path in indexer.search(paths, args.query, args.limit):
            print(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
