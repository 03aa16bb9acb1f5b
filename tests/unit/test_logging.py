"""Tests for structured logging."""

from __future__ import annotations

import json
from io import StringIO

from rich.console import Console

from catalyst.core.logging import CatalystLogger, RunLog, Verbosity


def _quiet_console() -> tuple[Console, StringIO]:
    buffer = StringIO()
    return Console(file=buffer, force_terminal=False, width=200), buffer


class TestRunLog:
    def test_get_or_create_stage(self):
        log = RunLog()
        assert log.get_or_create_stage("load") is log.get_or_create_stage("load")

    def test_finalize_totals(self):
        log = RunLog()
        log.get_or_create_stage("load").commands = 2
        log.get_or_create_stage("build").commands = 1
        log.finalize()
        assert log.total_commands == 3
        assert set(log.to_dict()["stages"]) == {"load", "build"}


class TestCatalystLogger:
    def test_jsonl_events(self, tmp_path):
        console, _ = _quiet_console()
        logger = CatalystLogger(logs_dir=tmp_path, console=console)
        logger.stage_start("load")
        logger.cache_miss("proj-1", ["no cached graph"])
        logger.command("load", ["tuist", "graph"], 0)
        logger.stage_finish("load")
        run_log = logger.run_finish()

        events = [json.loads(line) for line in logger.log_path.read_text().splitlines()]
        assert [e["event"] for e in events] == [
            "stage_start", "cache_miss", "command", "stage_finish", "run_finish",
        ]
        assert events[1]["reasons"] == ["no cached graph"]
        assert all("timestamp" in e for e in events)
        assert run_log.stages["load"].status == "ok"
        assert run_log.stages["load"].cache_misses == 1
        assert run_log.total_commands == 1

    def test_failed_stage(self):
        console, _ = _quiet_console()
        logger = CatalystLogger(console=console)
        logger.stage_start("build")
        logger.stage_finish("build", status="failed")
        assert logger.run_finish().stages["build"].status == "failed"

    def test_no_file_without_logs_dir(self):
        console, _ = _quiet_console()
        logger = CatalystLogger(console=console)
        logger.cache_hit("k")
        assert logger.log_path is None

    def test_default_verbosity_is_quiet(self):
        console, buffer = _quiet_console()
        logger = CatalystLogger(console=console)
        logger.stage_start("load")
        logger.cache_hit("proj-1")
        assert buffer.getvalue() == ""

    def test_verbose_shows_cache_decisions(self):
        console, buffer = _quiet_console()
        logger = CatalystLogger(verbosity=Verbosity.VERBOSE, console=console)
        logger.cache_miss("proj-1", ["mtime changed"])
        logger.command("load", ["tuist", "version"])
        output = buffer.getvalue()
        assert "graph cache miss: mtime changed" in output
        assert "tuist version" not in output

    def test_debug_shows_commands(self):
        console, buffer = _quiet_console()
        logger = CatalystLogger(verbosity=Verbosity.DEBUG, console=console)
        logger.command("build", ["bazel", "build", "//..."])
        assert "$ bazel build //..." in buffer.getvalue()
