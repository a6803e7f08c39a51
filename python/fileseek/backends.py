"""
Backends - Drive external file-listing tools (fd, ripgrep) as streaming producers.

Both tools are asked for NUL-separated output so filenames containing
newlines survive intact. Output is read in fixed-size chunks and yielded
lazily, so memory stays bounded no matter how many files the tool lists.
When a tool is missing or fails before producing anything, the caller
gets a BackendUnavailableError and falls back to the internal walker.
"""

import logging
import os
import shutil
import subprocess
import threading
from pathlib import Path
from typing import IO, Dict, Iterator, List, Optional, Sequence

from .cancellation import CancellationToken
from .errors import BackendUnavailableError
from .models import Backend


logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096
_REAP_TIMEOUT = 2.0

# Always excluded from external listings
DEFAULT_EXCLUDES = (
    ".git", ".DS_Store", "*.pyc", "__pycache__", "node_modules", "vendor",
    "tmp", "log", ".bundle", "coverage", "build", "dist",
)

# Debian/Ubuntu ship fd as "fdfind"
_BINARY_NAMES: Dict[Backend, tuple] = {
    Backend.FD: ("fd", "fdfind"),
    Backend.RG: ("rg", "ripgrep"),
}

# Checked for ripgrep when it is not on PATH
COMMON_RG_PATHS = (
    "/usr/local/bin/rg",
    "/opt/homebrew/bin/rg",
    str(Path.home() / ".cargo" / "bin" / "rg"),
)


class BackendLocator:
    """
    Resolves external tool binaries once and remembers the answer.

    Constructed explicitly and handed to the Indexer, so tests can point
    it at a custom search path.
    """

    def __init__(
        self,
        search_path: Optional[str] = None,
        extra_rg_paths: Sequence[str] = COMMON_RG_PATHS,
    ):
        self.search_path = search_path
        self.extra_rg_paths = tuple(extra_rg_paths)
        self._resolved: Dict[Backend, Optional[str]] = {}

    def which(self, name: str) -> Optional[str]:
        """Full path of an executable on the search path (PATHEXT aware)."""
        return shutil.which(name, path=self.search_path)

    def find(self, kind: Backend) -> Optional[str]:
        if kind not in _BINARY_NAMES:
            return None
        if kind in self._resolved:
            return self._resolved[kind]

        found = None
        for name in _BINARY_NAMES[kind]:
            found = self.which(name)
            if found:
                break

        if found is None and kind is Backend.RG:
            for candidate in self.extra_rg_paths:
                if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                    found = candidate
                    break

        logger.debug(f"Resolved {kind.value} binary: {found}")
        self._resolved[kind] = found
        return found

    def find_fd(self) -> Optional[str]:
        return self.find(Backend.FD)

    def find_rg(self) -> Optional[str]:
        return self.find(Backend.RG)

    def available(self) -> bool:
        return bool(self.find_fd() or self.find_rg())


def normalize_rel(root: Path | str, path: str) -> str:
    """Turn a tool's output entry into a "/"-separated path relative to root."""
    if path.startswith("./"):
        path = path[2:]
    if os.path.isabs(path):
        path = os.path.relpath(path, os.fspath(root))
    if os.sep != "/":
        path = path.replace(os.sep, "/")
    return path


class ExternalBackend:
    """
    One invocation of fd or ripgrep over a root directory.

    Usage:
        backend = ExternalBackend.create(Backend.FD, locator, root)
        if backend:
            for relative_path in backend.open():
                ...
    """

    def __init__(
        self,
        kind: Backend,
        binary: str,
        root: Path | str,
        respect_gitignore: bool = True,
        exclude_names: Sequence[str] = DEFAULT_EXCLUDES,
        cancel_token: Optional[CancellationToken] = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        if kind not in _BINARY_NAMES:
            raise ValueError(f"Not an external backend: {kind}")
        self.kind = kind
        self.binary = binary
        self.root = Path(root)
        self.respect_gitignore = respect_gitignore
        self.exclude_names = list(exclude_names)
        self.cancel_token = cancel_token or CancellationToken()
        self.chunk_size = chunk_size
        self.returncode: Optional[int] = None

    @classmethod
    def create(
        cls,
        kind: Backend,
        locator: BackendLocator,
        root: Path | str,
        **kwargs,
    ) -> Optional["ExternalBackend"]:
        """Backend for kind, or None when its binary is not installed."""
        binary = locator.find(kind)
        if binary is None:
            return None
        return cls(kind, binary, root, **kwargs)

    @property
    def name(self) -> str:
        return self.kind.value

    def command(self) -> List[str]:
        if self.kind is Backend.FD:
            return self._fd_command()
        return self._rg_command()

    def _fd_command(self) -> List[str]:
        # -t f (files), -H (hidden), --follow symlinks
        cmd = [self.binary, "-t", "f", "-H", "--follow", "--color", "never", "--print0"]
        # --no-require-git: respect .gitignore even outside git repos
        cmd.append("--no-require-git" if self.respect_gitignore else "-I")
        for name in self.exclude_names:
            cmd.extend(["-E", name])
        cmd.append(".")
        return cmd

    def _rg_command(self) -> List[str]:
        cmd = [self.binary, "--files", "--hidden", "--follow", "--color", "never"]
        # -u: don't respect .gitignore files
        cmd.append("--no-require-git" if self.respect_gitignore else "-u")
        for name in self.exclude_names:
            cmd.extend(["--iglob", f"!{name}"])
        cmd.append("-0")
        return cmd

    def open(self) -> Iterator[str]:
        """
        Spawn the tool and return a lazy iterator of relative paths.

        Raises BackendUnavailableError if the process cannot be started.
        The iterator itself raises BackendUnavailableError when the tool
        exits with an error without listing anything.
        """
        cmd = self.command()
        logger.debug(f"Running {' '.join(cmd)} in {self.root}")
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self.root,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
            )
        except OSError as e:
            raise BackendUnavailableError(self.name, str(e)) from e
        return self._stream(proc)

    def _stream(self, proc: subprocess.Popen) -> Iterator[str]:
        stderr_thread = threading.Thread(
            target=self._drain_stderr,
            args=(proc.stderr,),
            name=f"fileseek-{self.name}-stderr",
            daemon=True,
        )
        stderr_thread.start()

        yielded = 0
        finished = False
        try:
            buffer = b""
            while not self.cancel_token.is_cancelled():
                chunk = proc.stdout.read(self.chunk_size)
                if not chunk:
                    finished = True
                    break
                buffer += chunk
                *entries, buffer = buffer.split(b"\0")
                for raw in entries:
                    if raw:
                        yielded += 1
                        yield normalize_rel(self.root, os.fsdecode(raw))

            if finished and buffer:
                yielded += 1
                yield normalize_rel(self.root, os.fsdecode(buffer))
        finally:
            self._reap(proc, stderr_thread, finished)

        if finished and self.returncode not in (0, None) and yielded == 0:
            raise BackendUnavailableError(self.name, f"exited with status {self.returncode}")
        if self.returncode not in (0, None):
            logger.debug(f"{self.name} exited with status {self.returncode} after {yielded} paths")

    def _reap(
        self,
        proc: subprocess.Popen,
        stderr_thread: threading.Thread,
        finished: bool,
    ) -> None:
        """Collect the exit status, terminating the tool if we stopped reading early."""
        if finished:
            try:
                proc.wait(timeout=_REAP_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.debug(f"{self.name} still running after end of output")
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=_REAP_TIMEOUT)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
        proc.stdout.close()
        stderr_thread.join(timeout=_REAP_TIMEOUT)
        self.returncode = proc.returncode

    def _drain_stderr(self, stream: IO[bytes]) -> None:
        try:
            for line in iter(stream.readline, b""):
                message = os.fsdecode(line).rstrip()
                if message:
                    logger.debug(f"{self.name} stderr: {message}")
        except (OSError, ValueError) as e:
            # Stream closed underneath us while reaping
            logger.debug(f"{self.name} stderr closed: {e}")
        finally:
            stream.close()
