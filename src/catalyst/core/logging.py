"""Structured logging and verbosity levels for Catalyst runs."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any

from rich.console import Console


class Verbosity(IntEnum):
    """Verbosity levels for console output."""

    DEFAULT = 0   # Stage summary only
    VERBOSE = 1   # + cache decisions, generated files
    DEBUG = 2     # + every external command


def setup_logging(verbosity: int) -> None:
    """Configure stdlib logging based on verbosity."""
    if verbosity >= Verbosity.DEBUG:
        level = logging.DEBUG
    elif verbosity >= Verbosity.VERBOSE:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@dataclass
class StageLog:
    """Per-stage statistics."""

    name: str
    commands: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    time_seconds: float = 0.0
    status: str = "pending"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "commands": self.commands,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "time_seconds": self.time_seconds,
            "status": self.status,
        }


@dataclass
class RunLog:
    """Structured log of a complete catalyst invocation.

    The dict format is::

        {
            "run_id": "20260101T120000Z",
            "stages": {
                "load": {"commands": 2, "cache_hits": 0, "cache_misses": 1, ...},
                "generate": {...},
                "build": {...},
            },
            "total_commands": 3,
            "total_time": 12.5,
        }
    """

    run_id: str = ""
    stages: dict[str, StageLog] = field(default_factory=dict)
    total_time: float = 0.0
    total_commands: int = 0

    def get_or_create_stage(self, name: str) -> StageLog:
        """Get existing stage log or create a new one."""
        if name not in self.stages:
            self.stages[name] = StageLog(name=name)
        return self.stages[name]

    def finalize(self) -> None:
        """Compute totals from stage data."""
        self.total_commands = sum(s.commands for s in self.stages.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "stages": {name: stage.to_dict() for name, stage in self.stages.items()},
            "total_commands": self.total_commands,
            "total_time": self.total_time,
        }


class CatalystLogger:
    """Structured logger for catalyst runs.

    Writes JSONL log files to ``logs_dir`` and optionally emits
    console output via Rich based on verbosity level.
    """

    def __init__(
        self,
        verbosity: Verbosity = Verbosity.DEFAULT,
        logs_dir: Path | None = None,
        console: Console | None = None,
    ):
        self.verbosity = verbosity
        self.console = console or Console()
        self.run_log = RunLog(
            run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"),
        )
        self._log_file = None
        self._log_path: Path | None = None
        self._stage_start: dict[str, float] = {}
        self._run_start = time.time()

        if logs_dir is not None:
            logs_dir.mkdir(parents=True, exist_ok=True)
            self._log_path = logs_dir / f"{self.run_log.run_id}.jsonl"
            self._log_file = open(self._log_path, "a")

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    def _write_event(self, event: dict[str, Any]) -> None:
        if self._log_file is not None:
            event["timestamp"] = datetime.now(timezone.utc).isoformat()
            self._log_file.write(json.dumps(event) + "\n")
            self._log_file.flush()

    def _console_print(self, message: str, min_verbosity: Verbosity) -> None:
        if self.verbosity >= min_verbosity:
            self.console.print(message)

    # -- Stage events --

    def stage_start(self, name: str) -> None:
        self._stage_start[name] = time.time()
        stage = self.run_log.get_or_create_stage(name)
        stage.status = "running"
        self._write_event({"event": "stage_start", "stage": name})
        self._console_print(f"[bold]{name}[/bold]...", Verbosity.VERBOSE)

    def stage_finish(self, name: str, status: str = "ok") -> None:
        elapsed = time.time() - self._stage_start.pop(name, time.time())
        stage = self.run_log.get_or_create_stage(name)
        stage.time_seconds = elapsed
        stage.status = status
        self._write_event({
            "event": "stage_finish",
            "stage": name,
            "status": status,
            "time_seconds": round(elapsed, 3),
        })
        self._console_print(
            f"  {name}: {status} ({elapsed:.1f}s)",
            Verbosity.VERBOSE,
        )

    # -- Cache events --

    def cache_hit(self, project_key: str) -> None:
        self.run_log.get_or_create_stage("load").cache_hits += 1
        self._write_event({"event": "cache_hit", "project_key": project_key})
        self._console_print(
            f"  [cyan]=[/cyan] graph cache hit ({project_key})",
            Verbosity.VERBOSE,
        )

    def cache_miss(self, project_key: str, reasons: list[str]) -> None:
        self.run_log.get_or_create_stage("load").cache_misses += 1
        self._write_event({
            "event": "cache_miss",
            "project_key": project_key,
            "reasons": list(reasons),
        })
        self._console_print(
            f"  [yellow]~[/yellow] graph cache miss: {', '.join(reasons)}",
            Verbosity.VERBOSE,
        )

    # -- Command events --

    def command(self, stage: str, args: list[str], returncode: int | None = None) -> None:
        self.run_log.get_or_create_stage(stage).commands += 1
        self._write_event({
            "event": "command",
            "stage": stage,
            "args": list(args),
            "returncode": returncode,
        })
        self._console_print(f"    [dim]$ {' '.join(args)}[/dim]", Verbosity.DEBUG)

    def artifact_written(self, path: Path) -> None:
        self._write_event({"event": "artifact_written", "path": str(path)})
        self._console_print(f"  [green]+[/green] {path}", Verbosity.VERBOSE)

    # -- Run lifecycle --

    def run_finish(self) -> RunLog:
        """Finalize totals and close the log file."""
        self.run_log.total_time = time.time() - self._run_start
        self.run_log.finalize()
        self._write_event({
            "event": "run_finish",
            "total_time": round(self.run_log.total_time, 3),
            "total_commands": self.run_log.total_commands,
        })
        self.close()
        return self.run_log

    def close(self) -> None:
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None
