"""External command execution: captured and streaming runners."""

from __future__ import annotations

import logging
import subprocess
import threading
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

# Lines of streamed output kept for error reports.
TAIL_LINES = 200


class CommandNotFound(Exception):
    """The executable could not be located."""

    def __init__(self, executable: str):
        self.executable = executable
        super().__init__(f"Command not found: {executable}")


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    tail: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(ABC):
    """Abstract base for running external tools (tuist, bazel, xcrun)."""

    @abstractmethod
    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        """Run to completion, capturing stdout and stderr separately."""
        ...

    @abstractmethod
    def stream(
        self,
        args: list[str],
        cwd: Path | None = None,
        on_line: LineCallback | None = None,
    ) -> CommandResult:
        """Run to completion, delivering merged output line by line as it arrives.

        The returned result's ``tail`` holds the last lines of output.
        """
        ...

    def read_output(self, path: Path) -> bytes | None:
        """Contents of a file written by the last command, or None if it wrote none."""
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None


class SubprocessRunner(CommandRunner):
    """Run commands as real subprocesses."""

    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        logger.debug("run: %s (cwd=%s)", " ".join(args), cwd)
        try:
            completed = subprocess.run(
                args,
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise CommandNotFound(args[0]) from e
        return CommandResult(
            args=list(args),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            tail=completed.stderr.splitlines()[-TAIL_LINES:],
        )

    def stream(
        self,
        args: list[str],
        cwd: Path | None = None,
        on_line: LineCallback | None = None,
    ) -> CommandResult:
        logger.debug("stream: %s (cwd=%s)", " ".join(args), cwd)
        try:
            proc = subprocess.Popen(
                args,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise CommandNotFound(args[0]) from e

        tail: deque[str] = deque(maxlen=TAIL_LINES)

        def _reader() -> None:
            assert proc.stdout is not None
            for raw in proc.stdout:
                line = raw.rstrip("\n")
                tail.append(line)
                if on_line is not None:
                    on_line(line)

        reader = threading.Thread(target=_reader, name="catalyst-output", daemon=True)
        reader.start()
        try:
            returncode = proc.wait()
        except KeyboardInterrupt:
            # Only the child we spawned is stopped; anything it launched keeps running.
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            reader.join(timeout=1)
            raise
        reader.join()
        return CommandResult(args=list(args), returncode=returncode, tail=list(tail))
