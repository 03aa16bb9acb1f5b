"""Cassette layer: record and replay external commands for deterministic runs.

Provides command runners that stand in for real subprocesses. In ``record``
mode, calls pass through to the real tools and their results are saved to
disk. In ``replay`` mode, results are served from disk and no tool is ever
spawned. Tests build a ``RecordedRunner`` directly from fixture calls.

Configuration via settings / environment variables:
  CATALYST_CASSETTE_MODE: "record", "replay", or "off" (default: "off")
  CATALYST_CASSETTE_DIR:  path to cassette directory (required when mode != "off")
"""

from __future__ import annotations

import hashlib
import json
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from catalyst.build.commands import (
    CommandNotFound,
    CommandResult,
    CommandRunner,
    LineCallback,
    SubprocessRunner,
)

TMP_PLACEHOLDER = "<tmp>"


class CassetteMiss(Exception):
    """Raised in replay mode when no recorded call matches a command."""

    def __init__(self, args: list[str]):
        self.args_list = list(args)
        msg = f"No recorded result for command: {' '.join(args)}"
        msg += "\nRun with CATALYST_CASSETTE_MODE=record to capture this call."
        super().__init__(msg)


def normalize_args(args: list[str]) -> list[str]:
    """Replace per-run temporary paths so recorded commands match across runs."""
    tmp_root = tempfile.gettempdir()
    normalized = []
    for arg in args:
        if arg.startswith(tmp_root):
            arg = TMP_PLACEHOLDER
        normalized.append(arg)
    return normalized


def compute_cassette_key(args: list[str]) -> str:
    """Deterministic key for a command line."""
    raw = json.dumps(normalize_args(args), ensure_ascii=False)
    return hashlib.sha256(raw.encode()).hexdigest()


@dataclass
class RecordedCall:
    """A canned command result, matched by argument prefix."""

    args: list[str]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    not_found: bool = False
    # Files the command wrote, by file name.
    outputs: dict[str, str] = field(default_factory=dict)

    def to_result(self, args: list[str]) -> CommandResult:
        return CommandResult(
            args=list(args),
            returncode=self.returncode,
            stdout=self.stdout,
            stderr=self.stderr,
            tail=self.stdout.splitlines() + self.stderr.splitlines(),
        )


class RecordedRunner(CommandRunner):
    """Serve recorded results instead of spawning processes.

    Calls are matched by argument prefix, in order. A matched call is consumed
    while a later call with the same prefix remains, so a sequence of
    identical commands can return different results (the last one repeats).
    Every invocation is kept in ``invocations``.
    """

    def __init__(self, calls: list[RecordedCall] | None = None):
        self._calls: list[RecordedCall] = list(calls or [])
        self.invocations: list[list[str]] = []
        self._last: RecordedCall | None = None

    def add(self, call: RecordedCall) -> None:
        self._calls.append(call)

    def _match(self, args: list[str]) -> RecordedCall:
        normalized = normalize_args(args)
        self.invocations.append(list(args))
        candidates = [
            i for i, call in enumerate(self._calls)
            if normalized[: len(call.args)] == normalize_args(call.args)
        ]
        if not candidates:
            raise CassetteMiss(args)
        call = self._calls[candidates[0]]
        if len(candidates) > 1:
            del self._calls[candidates[0]]
        if call.not_found:
            raise CommandNotFound(args[0])
        self._last = call
        return call

    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        return self._match(args).to_result(args)

    def stream(
        self,
        args: list[str],
        cwd: Path | None = None,
        on_line: LineCallback | None = None,
    ) -> CommandResult:
        result = self._match(args).to_result(args)
        if on_line is not None:
            for line in result.tail:
                on_line(line)
        return result

    def read_output(self, path: Path) -> bytes | None:
        if self._last is None or path.name not in self._last.outputs:
            return None
        return self._last.outputs[path.name].encode()

    def called(self, *prefix: str) -> bool:
        """True if any invocation starts with ``prefix``."""
        return any(inv[: len(prefix)] == list(prefix) for inv in self.invocations)


@dataclass
class CassetteEntry:
    """A single recorded command."""

    key: str
    args: list[str] = field(default_factory=list)
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    outputs: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "key": self.key,
            "args": self.args,
            "returncode": self.returncode,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }
        if self.outputs:
            data["outputs"] = dict(self.outputs)
        return data


class CassetteStore:
    """Thread-safe store for recorded commands, backed by a YAML file."""

    def __init__(self, cassette_dir: Path):
        self.cassette_dir = Path(cassette_dir)
        self._entries: dict[str, CassetteEntry] = {}
        self._lock = threading.Lock()
        self._load()

    def _yaml_path(self) -> Path:
        return self.cassette_dir / "commands.yaml"

    def _load(self) -> None:
        path = self._yaml_path()
        if not path.exists():
            return
        try:
            data = yaml.safe_load(path.read_text()) or []
        except (yaml.YAMLError, OSError):
            return
        if not isinstance(data, list):
            return
        for item in data:
            if not isinstance(item, dict) or not item.get("key"):
                continue
            self._entries[item["key"]] = CassetteEntry(
                key=item["key"],
                args=list(item.get("args", [])),
                returncode=int(item.get("returncode", 0)),
                stdout=item.get("stdout", ""),
                stderr=item.get("stderr", ""),
                outputs=dict(item.get("outputs") or {}),
            )

    def get(self, key: str) -> CassetteEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, entry: CassetteEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry

    def entries(self) -> list[CassetteEntry]:
        with self._lock:
            return list(self._entries.values())

    def save(self) -> None:
        self.cassette_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            data = [e.to_dict() for e in self._entries.values()]
        # Write outside lock
        self._yaml_path().write_text(
            yaml.dump(data, default_flow_style=False, allow_unicode=True, width=120)
        )

    def to_runner(self) -> RecordedRunner:
        """A replay runner serving every stored command."""
        return RecordedRunner([
            RecordedCall(
                args=e.args,
                returncode=e.returncode,
                stdout=e.stdout,
                stderr=e.stderr,
                outputs=dict(e.outputs),
            )
            for e in self.entries()
        ])


class RecordingRunner(CommandRunner):
    """Wraps a real runner and saves every result to a cassette.

    Files read back through ``read_output`` are saved on the entry of the
    command that wrote them.
    """

    def __init__(self, real_runner: CommandRunner, store: CassetteStore):
        self.real_runner = real_runner
        self.store = store
        self._last: CassetteEntry | None = None

    def _record(self, result: CommandResult, stdout: str) -> None:
        self._last = CassetteEntry(
            key=compute_cassette_key(result.args),
            args=normalize_args(result.args),
            returncode=result.returncode,
            stdout=stdout,
            stderr=result.stderr,
        )
        self.store.put(self._last)
        self.store.save()

    def read_output(self, path: Path) -> bytes | None:
        data = self.real_runner.read_output(path)
        if data is not None and self._last is not None:
            self._last.outputs[path.name] = data.decode("utf-8", errors="replace")
            self.store.save()
        return data

    def run(self, args: list[str], cwd: Path | None = None) -> CommandResult:
        result = self.real_runner.run(args, cwd)
        self._record(result, result.stdout)
        return result

    def stream(
        self,
        args: list[str],
        cwd: Path | None = None,
        on_line: LineCallback | None = None,
    ) -> CommandResult:
        result = self.real_runner.stream(args, cwd, on_line)
        self._record(result, "\n".join(result.tail))
        return result


def make_runner(mode: str = "off", cassette_dir: Path | None = None) -> CommandRunner:
    """Build the command runner for a cassette mode.

    Returns a plain SubprocessRunner when mode is "off" or unset.
    """
    mode = (mode or "off").lower()
    if mode == "off":
        return SubprocessRunner()
    if mode not in ("record", "replay"):
        raise ValueError(f"Unknown cassette mode '{mode}' (expected record, replay or off)")
    if cassette_dir is None:
        raise ValueError(f"CATALYST_CASSETTE_MODE={mode} requires CATALYST_CASSETTE_DIR to be set")

    store = CassetteStore(Path(cassette_dir))
    if mode == "replay":
        return store.to_runner()
    return RecordingRunner(SubprocessRunner(), store)
