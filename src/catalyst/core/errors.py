"""Catalyst error types and utilities."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write(path: Path, content: str | bytes) -> None:
    """Write content to a file atomically using temp file + rename.

    Writes to a temporary file in the same directory, fsyncs it,
    then atomically replaces the target path.
    """
    data = content.encode() if isinstance(content, str) else content
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        os.write(fd, data)
        os.fsync(fd)
        os.close(fd)
        os.replace(tmp, str(path))
    except BaseException:
        try:
            os.close(fd)
        except OSError:
            pass
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def output_tail(lines: list[str], limit: int = 40) -> str:
    """Join the last ``limit`` lines of captured subprocess output."""
    return "\n".join(lines[-limit:])


class CatalystError(Exception):
    """Base exception for Catalyst."""

    exit_code = 1


# -- Ingestion --


class IngestionError(CatalystError):
    """The project graph could not be obtained."""

    exit_code = 2


class UpstreamToolError(IngestionError):
    """The graph-producing tool failed or could not be located."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        if stderr:
            message = f"{message}\n{stderr}"
        super().__init__(message)


class MalformedGraphError(IngestionError):
    """The graph document does not have the expected shape."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        if field:
            message = f"{message} (at '{field}')"
        super().__init__(message)


class CyclicDependencyError(IngestionError):
    """The target dependency graph contains a cycle."""

    def __init__(self, targets: list[str]):
        self.targets = sorted(targets)
        super().__init__(f"Project has circular dependencies involving: {self.targets}")


# -- Generation --


class GenerationError(CatalystError):
    """Build files could not be generated from the graph."""

    exit_code = 3


class UnsupportedProductError(GenerationError):
    """A target's product kind has no Bazel rule mapping."""

    def __init__(self, target: str, product: str):
        self.target = target
        self.product = product
        super().__init__(f"Target '{target}' has unsupported product kind '{product}'")


class UnsupportedDestinationError(GenerationError):
    """A target's destinations cannot be realized by the Apple toolchain."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Target '{target}': {reason}")


class SourceOutsideWorkspaceError(GenerationError):
    """A source or resource path lies outside the Bazel workspace."""

    def __init__(self, target: str, path: str, workspace: str):
        self.target = target
        self.path = path
        super().__init__(
            f"Target '{target}' references '{path}', which is outside the workspace {workspace}"
        )


class ArtifactWriteError(GenerationError):
    """A generated file could not be written."""


# -- Build --


class BuildError(CatalystError):
    """The downstream build did not succeed."""

    exit_code = 4


class BuildFailed(BuildError):
    """Bazel exited non-zero, could not be started, or was asked for an unknown target."""

    def __init__(self, message: str, returncode: int | None = None, output: str = ""):
        self.returncode = returncode
        self.output = output
        if output:
            message = f"{message}\n{output}"
        super().__init__(message)


# -- Run --


class RunError(CatalystError):
    """The app could not be run in a simulator."""

    exit_code = 5


class AppTargetNotFound(RunError):
    """No application target matches the request."""


class SimulatorNotFound(RunError):
    """No available simulator matches the requested name."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        message = f"No available simulator named '{name}'"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)


class NoDefaultSimulator(RunError):
    """No simulator name was given and the host has no suitable device."""


class SimulatorBootTimeout(RunError):
    """The simulator did not reach the Booted state in time."""

    def __init__(self, name: str, timeout: float):
        self.name = name
        self.timeout = timeout
        super().__init__(f"Simulator '{name}' did not boot within {timeout:g}s")


class ArtifactNotFound(RunError):
    """The built application bundle could not be located."""


class InstallFailed(RunError):
    """The simulator refused to install the application bundle."""


class LaunchFailed(RunError):
    """The simulator refused to launch the application."""
