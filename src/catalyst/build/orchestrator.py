"""Build orchestrator: run bazel against the generated workspace."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path

from catalyst.bazel.generator import BUILD_FILE, rule_name
from catalyst.build.commands import CommandNotFound, CommandRunner, LineCallback
from catalyst.core.errors import BuildFailed, output_tail
from catalyst.core.logging import CatalystLogger

logger = logging.getLogger(__name__)

_RULE_NAME = re.compile(r'^\s*name\s*=\s*"([^"]+)"', re.MULTILINE)


@dataclass
class BuildReport:
    """Summary of a successful bazel invocation."""

    label: str
    args: list[str]
    returncode: int = 0
    time_seconds: float = 0.0
    tail: list[str] = field(default_factory=list)


def rule_names(build_file: Path) -> list[str]:
    """Rule names declared in a generated BUILD file."""
    if not build_file.exists():
        return []
    return _RULE_NAME.findall(build_file.read_text())


class BuildOrchestrator:
    def __init__(
        self,
        runner: CommandRunner,
        bazel_bin: str = "bazel",
        run_logger: CatalystLogger | None = None,
    ):
        self.runner = runner
        self.bazel_bin = bazel_bin
        self.run_logger = run_logger

    def resolve_label(self, output_dir: Path, target_filter: str | None) -> str:
        """Bazel label to build; ``//...`` when no filter is given.

        Filters match rule names case-insensitively, or through the same
        name mapping the generator applies, so a Tuist target such as
        ``My App`` selects ``//:my_app``.
        """
        if target_filter is None:
            return "//..."
        wanted = target_filter.removeprefix("//:")
        candidates = {wanted.lower(), rule_name(wanted)}
        names = rule_names(output_dir / BUILD_FILE)
        for name in names:
            if name.lower() in candidates:
                return f"//:{name}"
        available = ", ".join(sorted(names)) or "none"
        raise BuildFailed(
            f"Target '{target_filter}' is not defined in {output_dir / BUILD_FILE} "
            f"(available: {available})"
        )

    def build(
        self,
        output_dir: str | Path,
        target_filter: str | None = None,
        config: str | None = None,
        on_line: LineCallback | None = None,
    ) -> BuildReport:
        """Run ``bazel build`` and return a report, or raise BuildFailed.

        Args:
            output_dir: Workspace directory holding WORKSPACE and BUILD.
            target_filter: Rule or Tuist target name; all targets when None.
            config: Named ``.bazelrc`` config, e.g. ``simulator``.
            on_line: Receives each line of bazel output as it arrives.
        """
        out = Path(output_dir)
        label = self.resolve_label(out, target_filter)
        args = [self.bazel_bin, "build"]
        if config:
            args.append(f"--config={config}")
        args.append(label)

        logger.info("Running %s in %s", " ".join(args), out)
        start = time.time()
        try:
            result = self.runner.stream(args, cwd=out, on_line=on_line)
        except CommandNotFound as e:
            raise BuildFailed(
                f"'{self.bazel_bin}' could not be located; is Bazel installed and on PATH?"
            ) from e
        elapsed = time.time() - start

        if self.run_logger is not None:
            self.run_logger.command("build", args, result.returncode)
        if not result.ok:
            raise BuildFailed(
                f"bazel build {label} failed with exit code {result.returncode}",
                returncode=result.returncode,
                output=output_tail(result.tail),
            )
        return BuildReport(
            label=label,
            args=args,
            returncode=result.returncode,
            time_seconds=elapsed,
            tail=result.tail,
        )
