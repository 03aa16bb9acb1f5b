"""Simulator runner: pick a simulator, boot it, install the built app and launch it.

All device control goes through ``xcrun simctl`` via a CommandRunner, so the
whole state machine runs against recorded fixtures in tests.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import time
import zipfile
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from catalyst.bazel.generator import rule_name
from catalyst.bazel.rules import RuleKind, platform_for
from catalyst.build.commands import CommandNotFound, CommandResult, CommandRunner, LineCallback
from catalyst.core.errors import (
    AppTargetNotFound,
    ArtifactNotFound,
    InstallFailed,
    LaunchFailed,
    NoDefaultSimulator,
    RunError,
    SimulatorBootTimeout,
    SimulatorNotFound,
    output_tail,
)
from catalyst.core.logging import CatalystLogger
from catalyst.core.models import Platform, ProductKind, ProjectGraph, Target

logger = logging.getLogger(__name__)

BOOTED = "Booted"

# simctl runtime identifier prefixes per platform, e.g. com.apple.CoreSimulator.SimRuntime.iOS-18-0
_RUNTIME_NAMES = {
    Platform.IOS: "iOS",
    Platform.TVOS: "tvOS",
    Platform.WATCHOS: "watchOS",
    Platform.VISIONOS: "xrOS",
}

_RUNTIME = re.compile(r"SimRuntime\.(?P<os>[A-Za-z]+)-(?P<version>[0-9-]+)$")
_LAUNCH_PID = re.compile(r":\s*(\d+)\s*$")


class RunState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    BOOTING = "booting"
    INSTALLING = "installing"
    LAUNCHING = "launching"
    STREAMING = "streaming"
    TERMINATED = "terminated"


@dataclass
class SimulatorDevice:
    """One simulator as reported by ``simctl list devices``."""

    name: str
    udid: str
    state: str
    runtime: str

    @property
    def booted(self) -> bool:
        return self.state == BOOTED

    @property
    def os_name(self) -> str | None:
        match = _RUNTIME.search(self.runtime)
        return match.group("os") if match else None

    @property
    def runtime_version(self) -> tuple[int, ...]:
        match = _RUNTIME.search(self.runtime)
        if not match:
            return ()
        return tuple(int(p) for p in match.group("version").split("-") if p.isdigit())

    def runs(self, platform: Platform) -> bool:
        return self.os_name == _RUNTIME_NAMES.get(platform)


def parse_devices(document: dict) -> list[SimulatorDevice]:
    """Flatten ``simctl list devices --json`` output into device records."""
    devices = []
    for runtime, entries in (document.get("devices") or {}).items():
        for entry in entries or []:
            if entry.get("isAvailable") is False:
                continue
            devices.append(
                SimulatorDevice(
                    name=entry.get("name", ""),
                    udid=entry.get("udid", ""),
                    state=entry.get("state", ""),
                    runtime=runtime,
                )
            )
    return devices


def _newest_first(device: SimulatorDevice) -> tuple:
    return tuple(-v for v in device.runtime_version), device.name


@dataclass
class RunReport:
    """What was launched, where."""

    target: str
    bundle_id: str
    device: SimulatorDevice
    # Installed bundle, or the .ipa it was extracted from.
    app_path: Path
    pid: int | None = None
    booted_by_us: bool = False
    log_lines: int = 0
    states: list[RunState] = field(default_factory=list)


class SimulatorRunner:
    """Drives one app run: IDLE → RESOLVING → BOOTING → INSTALLING → LAUNCHING → STREAMING → TERMINATED."""

    def __init__(
        self,
        graph: ProjectGraph,
        output_dir: str | Path,
        runner: CommandRunner,
        xcrun_bin: str = "xcrun",
        default_simulator: str = "iPhone 16",
        boot_timeout: float = 120.0,
        poll_interval: float = 1.0,
        run_logger: CatalystLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.graph = graph
        self.output_dir = Path(output_dir)
        self.runner = runner
        self.xcrun_bin = xcrun_bin
        self.default_simulator = default_simulator
        self.boot_timeout = boot_timeout
        self.poll_interval = poll_interval
        self.run_logger = run_logger
        self._clock = clock
        self._sleep = sleep
        self.state = RunState.IDLE
        self.history: list[RunState] = [RunState.IDLE]

    def _transition(self, state: RunState) -> None:
        logger.debug("Simulator run: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _simctl(self, *args: str) -> CommandResult:
        command = [self.xcrun_bin, "simctl", *args]
        try:
            result = self.runner.run(command)
        except CommandNotFound as e:
            raise RunError(f"'{self.xcrun_bin}' could not be located; is Xcode installed?") from e
        if self.run_logger is not None:
            self.run_logger.command("run", command, result.returncode)
        return result

    # -- Resolving --

    def select_app(self, app_target: str | None = None) -> Target:
        """The named application target, or the first one by name."""
        apps = sorted(self.graph.app_targets(), key=lambda t: t.name)
        if app_target is None:
            if not apps:
                raise AppTargetNotFound(f"Project '{self.graph.name}' has no application target")
            return apps[0]
        wanted = app_target.lower()
        for target in self.graph.targets.values():
            if target.name.lower() == wanted:
                if target.product is not ProductKind.APP:
                    raise AppTargetNotFound(
                        f"Target '{target.name}' is a {target.product.value}, not an application"
                    )
                return target
        names = ", ".join(t.name for t in apps) or "none"
        raise AppTargetNotFound(f"No application target named '{app_target}' (available: {names})")

    def list_devices(self) -> list[SimulatorDevice]:
        result = self._simctl("list", "devices", "available", "--json")
        if not result.ok:
            raise RunError(
                f"Could not list simulators (exit code {result.returncode})\n"
                + output_tail(result.stderr.splitlines())
            )
        try:
            return parse_devices(json.loads(result.stdout))
        except (json.JSONDecodeError, AttributeError) as e:
            raise RunError(f"Unexpected output from simctl list: {e}") from e

    def resolve_device(self, simulator_name: str | None, platform: Platform) -> SimulatorDevice:
        if platform not in _RUNTIME_NAMES:
            raise RunError(f"{platform.value} applications do not run in a simulator")
        candidates = sorted(
            (d for d in self.list_devices() if d.runs(platform)), key=_newest_first
        )
        if simulator_name is not None:
            for device in candidates:
                if device.name == simulator_name:
                    return device
            for device in candidates:
                if device.name.lower() == simulator_name.lower():
                    return device
            raise SimulatorNotFound(simulator_name, sorted({d.name for d in candidates}))

        for device in candidates:
            if device.name == self.default_simulator:
                return device
        if candidates:
            logger.info("Default simulator '%s' not available, using '%s'",
                        self.default_simulator, candidates[0].name)
            return candidates[0]
        raise NoDefaultSimulator(
            f"No {_RUNTIME_NAMES[platform]} simulator is available; create one in Xcode"
        )

    # -- Booting --

    def _current_state(self, udid: str) -> str | None:
        for device in self.list_devices():
            if device.udid == udid:
                return device.state
        return None

    def boot(self, device: SimulatorDevice) -> bool:
        """Boot the device and wait for it; True when this call started it."""
        if device.booted:
            return False
        logger.info("Booting simulator %s (%s)", device.name, device.udid)
        result = self._simctl("boot", device.udid)
        if not result.ok and "current state: Booted" not in result.stderr:
            raise RunError(
                f"Failed to boot simulator '{device.name}'\n"
                + output_tail(result.stderr.splitlines())
            )
        try:
            deadline = self._clock() + self.boot_timeout
            while self._current_state(device.udid) != BOOTED:
                if self._clock() >= deadline:
                    raise SimulatorBootTimeout(device.name, self.boot_timeout)
                self._sleep(self.poll_interval)
        except KeyboardInterrupt:
            logger.info("Interrupted while booting; shutting down %s", device.name)
            self._simctl("shutdown", device.udid)
            raise
        device.state = BOOTED
        return True

    # -- Installing --

    def locate_bundle(self, target: Target, scratch: Path) -> Path:
        """Find the built .app, extracting the .ipa into ``scratch`` if needed."""
        bazel_bin = self.output_dir / "bazel-bin"
        name = rule_name(target.name)
        for candidate in (
            bazel_bin / f"{name}_archive-root" / "Payload" / f"{target.name}.app",
            bazel_bin / f"{target.name}.app",
            bazel_bin / f"{name}.app",
        ):
            if candidate.is_dir():
                return candidate

        ipa = self.archive_path(target)
        if ipa.is_file():
            return _extract_app(ipa, scratch)
        raise ArtifactNotFound(
            f"No built bundle for '{target.name}' under {bazel_bin} (expected {ipa.name}); "
            "was the build successful?"
        )

    def archive_path(self, target: Target) -> Path:
        """The .ipa rules_apple writes for an application rule."""
        return self.output_dir / "bazel-bin" / f"{rule_name(target.name)}.ipa"

    def install(self, device: SimulatorDevice, app_path: Path) -> None:
        result = self._simctl("install", device.udid, str(app_path))
        if not result.ok:
            raise InstallFailed(
                f"Installing {app_path.name} on '{device.name}' failed\n"
                + output_tail(result.stderr.splitlines())
            )

    # -- Launching --

    def launch(self, device: SimulatorDevice, bundle_id: str) -> int | None:
        result = self._simctl("launch", device.udid, bundle_id)
        if not result.ok:
            raise LaunchFailed(
                f"Launching {bundle_id} on '{device.name}' failed\n"
                + output_tail(result.stderr.splitlines())
            )
        match = _LAUNCH_PID.search(result.stdout.strip())
        return int(match.group(1)) if match else None

    def stream_logs(self, device: SimulatorDevice, target: Target, on_line: LineCallback | None) -> int:
        """Relay the app's log lines until the stream ends or the user interrupts."""
        count = 0

        def relay(line: str) -> None:
            nonlocal count
            count += 1
            if on_line is not None:
                on_line(line)

        args = [
            self.xcrun_bin, "simctl", "spawn", device.udid,
            "log", "stream", "--style", "compact",
            "--predicate", f'process == "{target.name}"',
        ]
        try:
            self.runner.stream(args, on_line=relay)
        except KeyboardInterrupt:
            logger.info("Log stream interrupted")
        except CommandNotFound as e:
            raise RunError(f"'{self.xcrun_bin}' could not be located; is Xcode installed?") from e
        return count

    # -- Driver --

    def run(
        self,
        app_target: str | None = None,
        simulator_name: str | None = None,
        stream_logs: bool = True,
        on_line: LineCallback | None = None,
    ) -> RunReport:
        """Resolve, boot, install, launch and (optionally) stream logs."""
        self._transition(RunState.RESOLVING)
        target = self.select_app(app_target)
        platform = platform_for(target, RuleKind.APPLICATION)
        device = self.resolve_device(simulator_name, platform)

        self._transition(RunState.BOOTING)
        booted_by_us = self.boot(device)

        with tempfile.TemporaryDirectory(prefix="catalyst-run-") as scratch:
            self._transition(RunState.INSTALLING)
            app_path = self.locate_bundle(target, Path(scratch))
            self.install(device, app_path)
            if app_path.is_relative_to(scratch):
                # Extracted bundles go away with the scratch directory.
                app_path = self.archive_path(target)

            self._transition(RunState.LAUNCHING)
            pid = self.launch(device, target.bundle_id)
        logger.info("Launched %s on %s (pid %s)", target.bundle_id, device.name, pid)

        report = RunReport(
            target=target.name,
            bundle_id=target.bundle_id,
            device=device,
            app_path=app_path,
            pid=pid,
            booted_by_us=booted_by_us,
        )
        if stream_logs:
            self._transition(RunState.STREAMING)
            report.log_lines = self.stream_logs(device, target, on_line)
        self._transition(RunState.TERMINATED)
        report.states = list(self.history)
        return report


def _extract_app(ipa: Path, scratch: Path) -> Path:
    """Unpack an .ipa and return its Payload/*.app directory."""
    with zipfile.ZipFile(ipa) as archive:
        for info in archive.infolist():
            extracted = archive.extract(info, scratch)
            mode = info.external_attr >> 16
            if mode and not info.is_dir():
                os.chmod(extracted, mode & 0o777)
    apps = sorted((scratch / "Payload").glob("*.app"))
    if not apps:
        raise ArtifactNotFound(f"{ipa} does not contain a Payload/*.app bundle")
    return apps[0]
