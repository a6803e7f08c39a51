"""
Fuzzy - Subsequence matching with a single-pass scorer.

No index structure is built: every keystroke rescans the full path list,
O(paths x path length), and the result limit bounds the work handed to
the display.
"""

import logging
import time
from typing import List, Optional, Sequence, Tuple

from .models import SearchResult


logger = logging.getLogger(__name__)

# Score bonuses
MATCH_BONUS = 5
CONSECUTIVE_BONUS = 3
START_BONUS = 2
SEPARATOR_BONUS = 2
PATH_SEPARATOR_BONUS = 5
BASENAME_BONUS = 10

SEPARATORS = frozenset("/_-.")
PATH_SEPARATOR = "/"

DEFAULT_LIMIT = 5000
PREFIX_SEARCH_THRESHOLD = 2   # Queries shorter than this skip scoring


def score_path(path: str, query: str) -> int:
    """
    Score one path against an already lowercased query.

    Returns 0 unless every query character matches, in order.
    """
    if len(path) < len(query):
        return 0

    path_lower = path.lower()
    basename_start = path_lower.rfind(PATH_SEPARATOR) + 1

    score = 0
    query_idx = 0
    last_match = -2
    query_len = len(query)

    for idx, char in enumerate(path_lower):
        if query_idx >= query_len:
            break
        if char != query[query_idx]:
            continue

        score += MATCH_BONUS
        if last_match == idx - 1:
            score += CONSECUTIVE_BONUS

        if idx == 0:
            score += START_BONUS
        else:
            previous = path_lower[idx - 1]
            if previous in SEPARATORS:
                score += START_BONUS + SEPARATOR_BONUS
                if previous == PATH_SEPARATOR:
                    score += PATH_SEPARATOR_BONUS

        if idx >= basename_start:
            score += BASENAME_BONUS

        last_match = idx
        query_idx += 1

    return score if query_idx == query_len else 0


class FuzzyMatcher:
    """Ranks candidate paths against a query string."""

    def __init__(self, default_limit: int = DEFAULT_LIMIT):
        self.default_limit = default_limit

    def search(
        self,
        paths: Sequence[str],
        query: Optional[str],
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        """
        Ranked matches with their scores.

        Empty queries return the first `limit` paths in input order, and
        one-character queries use a prefix/substring fast path; both
        report a score of 0.
        """
        limit = self.default_limit if limit is None else limit
        if limit <= 0:
            return []

        if not query:
            return [SearchResult(p, 0) for p in paths[:limit]]

        query_lower = query.lower()
        if len(query) < PREFIX_SEARCH_THRESHOLD:
            return [SearchResult(p, 0) for p in self._prefix_filter(paths, query_lower, limit)]

        started = time.perf_counter()
        scored: List[Tuple[str, int]] = []
        for path in paths:
            score = score_path(path, query_lower)
            if score > 0:
                scored.append((path, score))

        # Stable sort keeps encounter order for equal score and length
        scored.sort(key=lambda item: (-item[1], len(item[0])))
        results = [SearchResult(path, score) for path, score in scored[:limit]]

        if logger.isEnabledFor(logging.DEBUG):
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.debug(
                f"Fuzzy filter: {len(paths)} paths -> {len(scored)} matches "
                f"-> {len(results)} results in {elapsed_ms:.2f}ms"
            )
        return results

    def filter(
        self,
        paths: Sequence[str],
        query: Optional[str],
        limit: Optional[int] = None,
    ) -> List[str]:
        """Ranked subset of paths for the query."""
        return [result.path for result in self.search(paths, query, limit)]

    def _prefix_filter(self, paths: Sequence[str], query: str, limit: int) -> List[str]:
        matches: List[str] = []
        for path in paths:
            if len(matches) >= limit:
                break
            lowered = path.lower()
            if lowered.rsplit(PATH_SEPARATOR, 1)[-1].startswith(query) or query in lowered:
                matches.append(path)
        return matches


_default_matcher = FuzzyMatcher()


def filter_paths(
    paths: Sequence[str],
    query: Optional[str],
    limit: int = DEFAULT_LIMIT,
) -> List[str]:
    """
    Convenience function using a shared matcher.

    Usage:
        top = filter_paths(all_paths, "usrb", limit=50)
    """
    return _default_matcher.filter(paths, query, limit)
