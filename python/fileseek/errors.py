"""
Error Handling - Centralized error policies and custom exceptions.

Per-entry failures during traversal are never fatal: they are mapped to
a policy, logged at the policy's level, and skipped. Only a missing root
surfaces to the caller as an exception.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


class ErrorAction(Enum):
    """What to do when an error occurs."""
    SKIP = auto()           # Skip this entry, continue traversal
    FALLBACK = auto()       # Try the next backend
    ABORT = auto()          # Stop the whole operation


@dataclass
class ErrorPolicy:
    """Policy for handling a specific error type."""
    action: ErrorAction
    log_level: int
    message_template: str = "{file}: {error}"


class IndexingError(Exception):
    """Base exception for indexing errors."""
    pass


class RootNotFoundError(IndexingError):
    """The root directory to index does not exist or is not a directory."""
    def __init__(self, root: Path):
        self.root = root
        super().__init__(f"Root directory not found: {root}")


class BackendUnavailableError(IndexingError):
    """An external file-listing tool is missing or could not be run."""
    def __init__(self, backend: str, reason: str):
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend} unavailable: {reason}")


# Keyed by exception class; the most specific class in the MRO wins
ERROR_POLICIES: dict[type, ErrorPolicy] = {
    BackendUnavailableError: ErrorPolicy(ErrorAction.FALLBACK, logging.WARNING,
                                         "Backend failed, falling back: {error}"),
    RootNotFoundError: ErrorPolicy(ErrorAction.ABORT, logging.ERROR, "{error}"),
    PermissionError: ErrorPolicy(ErrorAction.SKIP, logging.DEBUG, "Permission denied: {file}"),
    FileNotFoundError: ErrorPolicy(ErrorAction.SKIP, logging.DEBUG,
                                   "Vanished during traversal: {file}"),
    NotADirectoryError: ErrorPolicy(ErrorAction.SKIP, logging.DEBUG, "Not a directory: {file}"),
    OSError: ErrorPolicy(ErrorAction.SKIP, logging.DEBUG, "Unreadable entry {file}: {error}"),
}

UNEXPECTED = ErrorPolicy(ErrorAction.SKIP, logging.WARNING, "Unexpected error: {file} - {error}")


def policy_for(error: BaseException) -> ErrorPolicy:
    """Policy registered for the closest class of error, or UNEXPECTED."""
    for cls in type(error).__mro__:
        if cls in ERROR_POLICIES:
            return ERROR_POLICIES[cls]
    return UNEXPECTED


def handle_error(
    error: Exception,
    file_path: Optional[Path | str] = None,
    context: str = ""
) -> ErrorAction:
    """
    Log an error at its policy's level and return the action to take.

    Args:
        error: The exception that occurred
        file_path: Path being processed (if applicable)
        context: Short label of the operation, prefixed to the message

    Returns:
        SKIP, FALLBACK or ABORT
    """
    policy = policy_for(error)
    where = "<unknown>" if file_path is None else str(file_path)
    message = policy.message_template.format(file=where, error=error)
    logger.log(policy.log_level, f"[{context}] {message}" if context else message)
    return policy.action
