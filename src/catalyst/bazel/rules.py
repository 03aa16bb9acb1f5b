"""Product and destination mappings onto rules_apple / rules_swift vocabulary.

Both mappings are closed: anything not listed here is an error, never a
silently skipped target.
"""

from __future__ import annotations

from enum import Enum

from catalyst.core.errors import UnsupportedDestinationError, UnsupportedProductError
from catalyst.core.models import Destination, Platform, ProductKind, Target

RULES_APPLE = "@build_bazel_rules_apple//apple"
RULES_SWIFT = "@build_bazel_rules_swift//swift"


class RuleKind(Enum):
    SWIFT_LIBRARY = "swift_library"
    APPLICATION = "application"
    FRAMEWORK = "framework"
    UNIT_TEST = "unit_test"
    UI_TEST = "ui_test"
    RESOURCE_BUNDLE = "resource_bundle"

    @property
    def is_bundled(self) -> bool:
        """Rules that produce a platform bundle and need a destination."""
        return self in (
            RuleKind.APPLICATION,
            RuleKind.FRAMEWORK,
            RuleKind.UNIT_TEST,
            RuleKind.UI_TEST,
        )

    @property
    def has_module(self) -> bool:
        return self is not RuleKind.RESOURCE_BUNDLE


def rule_kind_for(target: Target) -> RuleKind:
    """Map a product kind onto the rule that builds it."""
    product = target.product
    if product is ProductKind.APP:
        return RuleKind.APPLICATION
    if product is ProductKind.FRAMEWORK:
        return RuleKind.FRAMEWORK
    if product in (
        ProductKind.STATIC_LIBRARY,
        ProductKind.DYNAMIC_LIBRARY,
        ProductKind.STATIC_FRAMEWORK,
    ):
        return RuleKind.SWIFT_LIBRARY
    if product is ProductKind.UNIT_TESTS:
        return RuleKind.UNIT_TEST
    if product is ProductKind.UI_TESTS:
        return RuleKind.UI_TEST
    if product is ProductKind.BUNDLE:
        return RuleKind.RESOURCE_BUNDLE
    raise UnsupportedProductError(target.name, product.value)


def platform_for(target: Target, kind: RuleKind) -> Platform | None:
    """The single platform a bundled rule is built for.

    Libraries compile for whatever platform depends on them and return None.
    """
    if Destination.MAC_CATALYST in target.destinations:
        raise UnsupportedDestinationError(
            target.name, "destination 'macCatalyst' has no rules_apple support"
        )
    if not kind.is_bundled:
        return None
    platforms = target.platforms
    if not platforms:
        raise UnsupportedDestinationError(target.name, "bundled product has no destinations")
    if len(platforms) > 1:
        names = ", ".join(p.value for p in platforms)
        raise UnsupportedDestinationError(
            target.name, f"destinations span several platforms ({names}); split the target per platform"
        )
    return platforms[0]


def bundling_rule(kind: RuleKind, platform: Platform) -> tuple[str, str]:
    """(bzl file, rule symbol) for a bundled rule kind on a platform."""
    bzl = f"{RULES_APPLE}:{platform.value}.bzl"
    if kind is RuleKind.APPLICATION:
        return bzl, f"{platform.value}_application"
    if kind is RuleKind.FRAMEWORK:
        return bzl, f"{platform.value}_framework"
    if kind is RuleKind.UNIT_TEST:
        return bzl, f"{platform.value}_unit_test"
    if kind is RuleKind.UI_TEST:
        return bzl, f"{platform.value}_ui_test"
    raise ValueError(f"{kind.value} is not a bundling rule")


SWIFT_LIBRARY = (f"{RULES_SWIFT}:swift.bzl", "swift_library")
RESOURCE_BUNDLE = (f"{RULES_APPLE}:resources.bzl", "apple_resource_bundle")


def supports_families(platform: Platform) -> bool:
    return platform is Platform.IOS


# (simulator cpu, device cpu) per platform, for the named .bazelrc configs.
_CPUS = {
    Platform.IOS: ("ios_multi_cpus", "sim_arm64", "arm64"),
    Platform.MACOS: ("macos_cpus", "arm64", "arm64"),
    Platform.TVOS: ("tvos_cpus", "sim_arm64", "arm64"),
    Platform.WATCHOS: ("watchos_cpus", "arm64", "arm64_32"),
    Platform.VISIONOS: ("visionos_cpus", "sim_arm64", "arm64"),
}


def cpu_flags(platform: Platform) -> tuple[str, str]:
    """(simulator flag, device flag) selecting CPUs for a platform."""
    flag, simulator, device = _CPUS[platform]
    return f"--{flag}={simulator}", f"--{flag}={device}"


def minimum_os_flag(platform: Platform, version: str) -> str:
    return f"--{platform.value}_minimum_os={version}"
