"""Core data models for Catalyst: the in-memory project graph."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class Platform(str, Enum):
    """Apple OS families a target can be built for."""

    IOS = "ios"
    MACOS = "macos"
    TVOS = "tvos"
    WATCHOS = "watchos"
    VISIONOS = "visionos"


class Destination(str, Enum):
    """Tuist destinations.

    A destination names a device family; building for it covers both the
    device and the simulator environment of its platform.
    """

    IPHONE = "iPhone"
    IPAD = "iPad"
    MAC = "mac"
    MAC_WITH_IPAD_DESIGN = "macWithiPadDesign"
    MAC_CATALYST = "macCatalyst"
    APPLE_WATCH = "appleWatch"
    APPLE_TV = "appleTv"
    APPLE_VISION = "appleVision"
    APPLE_VISION_WITH_IPAD_DESIGN = "appleVisionWithiPadDesign"

    @property
    def platform(self) -> Platform:
        if self in (
            Destination.IPHONE,
            Destination.IPAD,
            Destination.MAC_WITH_IPAD_DESIGN,
            Destination.APPLE_VISION_WITH_IPAD_DESIGN,
            Destination.MAC_CATALYST,
        ):
            return Platform.IOS
        if self is Destination.MAC:
            return Platform.MACOS
        if self is Destination.APPLE_WATCH:
            return Platform.WATCHOS
        if self is Destination.APPLE_TV:
            return Platform.TVOS
        return Platform.VISIONOS

    @property
    def family(self) -> str | None:
        """rules_apple device family, for platforms that have families."""
        if self is Destination.IPHONE:
            return "iphone"
        if self in (
            Destination.IPAD,
            Destination.MAC_WITH_IPAD_DESIGN,
            Destination.APPLE_VISION_WITH_IPAD_DESIGN,
        ):
            return "ipad"
        return None


class ProductKind(str, Enum):
    """Tuist product kinds."""

    APP = "app"
    STATIC_LIBRARY = "static_library"
    DYNAMIC_LIBRARY = "dynamic_library"
    FRAMEWORK = "framework"
    STATIC_FRAMEWORK = "static_framework"
    UNIT_TESTS = "unit_tests"
    UI_TESTS = "ui_tests"
    BUNDLE = "bundle"
    COMMAND_LINE_TOOL = "command_line_tool"
    APP_CLIP = "app_clip"
    APP_EXTENSION = "app_extension"
    WATCH2_APP = "watch2_app"
    WATCH2_EXTENSION = "watch2_extension"
    TV_TOP_SHELF_EXTENSION = "tv_top_shelf_extension"
    MESSAGES_EXTENSION = "messages_extension"
    STICKER_PACK_EXTENSION = "sticker_pack_extension"
    XPC = "xpc"
    SYSTEM_EXTENSION = "system_extension"
    EXTENSION_KIT_EXTENSION = "extension_kit_extension"
    MACRO = "macro"

    @property
    def is_test(self) -> bool:
        return self in (ProductKind.UNIT_TESTS, ProductKind.UI_TESTS)


class DependencyKind(str, Enum):
    LINK = "link"
    EMBED = "embed"


@dataclass(frozen=True)
class Dependency:
    """Directed edge from the owning target to ``target``."""

    target: str
    kind: DependencyKind = DependencyKind.LINK

    def to_dict(self) -> dict[str, str]:
        return {"target": self.target, "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: dict) -> Dependency:
        return cls(target=data["target"], kind=DependencyKind(data.get("kind", "link")))


@dataclass(frozen=True)
class InfoPlist:
    """Info.plist customization: overrides over a platform default, or a file."""

    overrides: Mapping[str, Any] = field(default_factory=dict)
    file: str | None = None
    extends_default: bool = True

    def __post_init__(self):
        object.__setattr__(self, "overrides", MappingProxyType(dict(self.overrides)))

    def __hash__(self) -> int:
        return hash((json.dumps(dict(self.overrides), sort_keys=True, default=str), self.file))

    def to_dict(self) -> dict[str, Any]:
        return {
            "overrides": dict(self.overrides),
            "file": self.file,
            "extends_default": self.extends_default,
        }

    @classmethod
    def from_dict(cls, data: dict) -> InfoPlist:
        return cls(
            overrides=data.get("overrides", {}),
            file=data.get("file"),
            extends_default=data.get("extends_default", True),
        )


@dataclass(frozen=True)
class Target:
    """One buildable unit of the project."""

    name: str
    product: ProductKind
    bundle_id: str
    destinations: frozenset[Destination] = frozenset()
    source_roots: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    resources: tuple[str, ...] = ()
    dependencies: tuple[Dependency, ...] = ()
    info_plist: InfoPlist = field(default_factory=InfoPlist)
    deployment_targets: Mapping[Platform, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "deployment_targets", MappingProxyType(dict(self.deployment_targets)))

    def __hash__(self) -> int:
        return hash(self.name)

    @property
    def platforms(self) -> list[Platform]:
        """Distinct platforms of this target's destinations, in enum order."""
        present = {d.platform for d in self.destinations}
        return [p for p in Platform if p in present]

    @property
    def families(self) -> list[str]:
        return sorted({d.family for d in self.destinations if d.family})

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "product": self.product.value,
            "bundle_id": self.bundle_id,
            "destinations": sorted(d.value for d in self.destinations),
            "source_roots": list(self.source_roots),
            "sources": list(self.sources),
            "resources": list(self.resources),
            "dependencies": [d.to_dict() for d in self.dependencies],
            "info_plist": self.info_plist.to_dict(),
            "deployment_targets": {
                p.value: v for p, v in sorted(self.deployment_targets.items(), key=lambda i: i[0].value)
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> Target:
        return cls(
            name=data["name"],
            product=ProductKind(data["product"]),
            bundle_id=data["bundle_id"],
            destinations=frozenset(Destination(d) for d in data.get("destinations", [])),
            source_roots=tuple(data.get("source_roots", [])),
            sources=tuple(data.get("sources", [])),
            resources=tuple(data.get("resources", [])),
            dependencies=tuple(Dependency.from_dict(d) for d in data.get("dependencies", [])),
            info_plist=InfoPlist.from_dict(data.get("info_plist", {})),
            deployment_targets={
                Platform(p): v for p, v in data.get("deployment_targets", {}).items()
            },
        )


@dataclass(frozen=True)
class ProjectGraph:
    """A named project and its targets. Immutable once loaded."""

    name: str
    path: str
    targets: Mapping[str, Target] = field(default_factory=dict)

    def __post_init__(self):
        ordered = dict(sorted(self.targets.items()))
        object.__setattr__(self, "targets", MappingProxyType(ordered))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProjectGraph):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(self.content_digest)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "targets": {name: t.to_dict() for name, t in self.targets.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> ProjectGraph:
        return cls(
            name=data["name"],
            path=data["path"],
            targets={name: Target.from_dict(t) for name, t in data.get("targets", {}).items()},
        )

    @property
    def content_digest(self) -> str:
        """SHA256 of the canonical JSON form of the graph."""
        raw = json.dumps(self.to_dict(), sort_keys=True, default=str)
        return hashlib.sha256(raw.encode()).hexdigest()

    def source_roots(self) -> list[str]:
        """All buildable folders across targets, sorted and de-duplicated."""
        return sorted({root for t in self.targets.values() for root in t.source_roots})

    def platforms(self) -> list[Platform]:
        """Union of platforms over every target's destinations."""
        present = {p for t in self.targets.values() for p in t.platforms}
        return [p for p in Platform if p in present]

    def app_targets(self) -> list[Target]:
        return [t for t in self.targets.values() if t.product is ProductKind.APP]
