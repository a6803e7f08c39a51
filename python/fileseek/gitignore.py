"""
Gitignore - Parse .gitignore style patterns and answer "is this ignored?".

Patterns compile to regular expressions:
    *        any run of characters except "/"
    ?        exactly one character except "/"
    **       crosses directory separators ("**/x", "a/**/b", "a/**")
    [...]    character classes pass through to the regex engine

Every rule also matches everything below a matched directory, so
"build" ignores "build/out.o" as well.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional


logger = logging.getLogger(__name__)

_DOUBLESTAR = "\x00DOUBLESTAR\x00"
_DOUBLESTAR_DIRS = "\x00DOUBLESTAR_DIRS\x00"
# Regex metacharacters escaped literally; "[", "]", "*", "?" are glob syntax
_ESCAPED = ".+^${}()|\\"


@dataclass(frozen=True)
class IgnoreRule:
    """One parsed gitignore line."""
    original: str
    pattern: str
    regex: re.Pattern
    negated: bool = False
    directory_only: bool = False
    anchored: bool = False

    def matches(self, path: str, is_directory: bool = False) -> bool:
        """
        Evaluate this rule against a relative path.

        Negated rules return "not matched"; see IgnoreRuleSet.is_ignored.
        """
        if self.directory_only and not is_directory:
            return False
        matched = self.regex.match(path) is not None
        return not matched if self.negated else matched


def glob_to_regex(pattern: str, anchored: bool) -> re.Pattern:
    """Compile a stripped gitignore glob into a full-match regex."""
    if pattern.startswith("**/"):
        pattern = pattern[3:]
        anchored = False

    pattern = pattern.replace("/**/", _DOUBLESTAR_DIRS)
    if pattern.endswith("/**"):
        pattern = pattern[:-3] + f"/{_DOUBLESTAR}"

    parts = []
    for char in pattern:
        if char in _ESCAPED:
            parts.append("\\" + char)
        elif char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(char)
    # "a/**/b" also matches "a/b"
    body = "".join(parts).replace(_DOUBLESTAR_DIRS, "/(?:.*/)?").replace(_DOUBLESTAR, ".*")

    # DOTALL and \Z: names may contain newlines
    if anchored:
        return re.compile(rf"^{body}(/.*)?\Z", re.DOTALL)
    return re.compile(rf"(^|.*/){body}(/.*)?\Z", re.DOTALL)


def parse_pattern(line: str) -> Optional[IgnoreRule]:
    """
    Parse one gitignore line into an IgnoreRule.

    Returns None for blank lines, comments and patterns that fail to
    compile. Never raises.
    """
    original = line
    pattern = line.strip()
    if not pattern or pattern.startswith("#"):
        return None

    negated = False
    directory_only = False

    if pattern.startswith("!"):
        negated = True
        pattern = pattern[1:]

    if pattern.endswith("/"):
        directory_only = True
        pattern = pattern[:-1]

    if pattern.startswith("/"):
        anchored = True
        pattern = pattern[1:]
    else:
        anchored = "/" in pattern

    if not pattern:
        logger.debug(f"Ignoring empty gitignore pattern {original!r}")
        return None

    try:
        regex = glob_to_regex(pattern, anchored)
    except re.error as e:
        logger.debug(f"Invalid gitignore pattern {original!r}: {e}")
        return None

    return IgnoreRule(
        original=original,
        pattern=pattern,
        regex=regex,
        negated=negated,
        directory_only=directory_only,
        anchored=anchored and not pattern.startswith("**/"),
    )


class IgnoreRuleSet:
    """
    Ordered collection of gitignore rules.

    Rules are evaluated in the order they were added and OR-combined.
    Negation does not re-include paths excluded by an earlier rule: a
    negated rule contributes "not matched" to the OR, same as the
    simplified behaviour this index has always had.
    """

    def __init__(self, patterns: Iterable[str] = ()):
        self._rules: List[IgnoreRule] = []
        self.add_patterns(patterns)

    @classmethod
    def from_root(cls, root: Path | str) -> "IgnoreRuleSet":
        """Rule set loaded from <root>/.gitignore (empty when absent)."""
        rules = cls()
        rules.load_file(Path(root) / ".gitignore")
        return rules

    @property
    def rules(self) -> List[IgnoreRule]:
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def add_pattern(self, pattern: str) -> None:
        rule = parse_pattern(pattern)
        if rule is not None:
            self._rules.append(rule)

    def add_patterns(self, patterns: Iterable[str]) -> None:
        for pattern in patterns:
            self.add_pattern(pattern)

    def load_file(self, path: Path | str) -> None:
        """Load patterns from a .gitignore file; a missing file is a no-op."""
        path = Path(path)
        if not path.is_file():
            return
        try:
            with path.open(encoding="utf-8", errors="replace") as handle:
                for line in handle:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    self.add_pattern(line)
        except OSError as e:
            logger.debug(f"Failed to read {path}: {e}")

    def is_ignored(self, path: str, is_directory: bool = False) -> bool:
        """Check if a relative, "/"-separated path is ignored."""
        if not self._rules:
            return False
        return any(rule.matches(path, is_directory) for rule in self._rules)
