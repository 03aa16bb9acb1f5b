"""Info.plist generation: platform defaults merged with the target's overrides."""

from __future__ import annotations

import plistlib
from typing import Any

from catalyst.bazel.rules import RuleKind
from catalyst.core.models import Platform, Target

_PACKAGE_TYPES = {
    RuleKind.APPLICATION: "APPL",
    RuleKind.FRAMEWORK: "FMWK",
    RuleKind.UNIT_TEST: "BNDL",
    RuleKind.UI_TEST: "BNDL",
    RuleKind.RESOURCE_BUNDLE: "BNDL",
}


def default_info_plist(target: Target, kind: RuleKind, platform: Platform | None) -> dict[str, Any]:
    """Minimal keys every bundle of this kind needs on its platform."""
    plist: dict[str, Any] = {
        "CFBundleDevelopmentRegion": "en",
        "CFBundleIdentifier": target.bundle_id,
        "CFBundleInfoDictionaryVersion": "6.0",
        "CFBundleName": target.name,
        "CFBundlePackageType": _PACKAGE_TYPES[kind],
        "CFBundleShortVersionString": "1.0",
        "CFBundleVersion": "1",
    }
    if kind is not RuleKind.RESOURCE_BUNDLE:
        plist["CFBundleExecutable"] = target.name

    if kind is RuleKind.APPLICATION:
        if platform in (Platform.IOS, Platform.TVOS, Platform.VISIONOS):
            plist["LSRequiresIPhoneOS"] = True
        if platform in (Platform.IOS, Platform.VISIONOS):
            plist["UILaunchScreen"] = {}
        if platform is Platform.MACOS:
            plist["NSPrincipalClass"] = "NSApplication"
        if platform is Platform.WATCHOS:
            plist["WKApplication"] = True
    return plist


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value if v is not None]
    return value


def merge_info_plist(target: Target, kind: RuleKind, platform: Platform | None) -> dict[str, Any]:
    """Overrides win key by key over the default (top-level merge, as Tuist does)."""
    merged = default_info_plist(target, kind, platform) if target.info_plist.extends_default else {}
    merged.update(dict(target.info_plist.overrides))
    return _drop_none(merged)


def render_info_plist(values: dict[str, Any]) -> bytes:
    """XML plist with sorted keys, so output is stable across runs."""
    return plistlib.dumps(values, fmt=plistlib.FMT_XML, sort_keys=True)
