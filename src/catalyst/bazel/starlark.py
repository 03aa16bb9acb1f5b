"""Minimal Starlark rendering for generated BUILD and WORKSPACE files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

INDENT = "    "


@dataclass(frozen=True)
class Raw:
    """A Starlark expression emitted verbatim."""

    expr: str


def quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def render_value(value: Any, depth: int = 1) -> str:
    if isinstance(value, Raw):
        return value.expr
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return quote(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        if len(value) == 1:
            return f"[{render_value(value[0], depth)}]"
        inner = INDENT * (depth + 1)
        items = "".join(f"{inner}{render_value(v, depth + 1)},\n" for v in value)
        return f"[\n{items}{INDENT * depth}]"
    raise TypeError(f"Cannot render {type(value).__name__} as Starlark")


def files_expr(files: list[str], globbed_dirs: list[str]) -> list[str] | Raw:
    """Plain file labels, plus a recursive glob per bundle directory."""
    if not globbed_dirs:
        return list(files)
    patterns = [f"{d}/**" for d in globbed_dirs]
    glob = f"glob({render_value(patterns, 1)})"
    if not files:
        return Raw(glob)
    return Raw(f"{render_value(list(files), 1)} + {glob}")


@dataclass
class Call:
    """A rule or macro invocation with keyword arguments in declaration order."""

    kind: str
    attrs: list[tuple[str, Any]] = field(default_factory=list)
    args: list[Any] = field(default_factory=list)

    def set(self, key: str, value: Any) -> Call:
        self.attrs.append((key, value))
        return self

    def set_if(self, key: str, value: Any) -> Call:
        """Set only when the value is non-empty."""
        if value:
            self.attrs.append((key, value))
        return self

    @property
    def name(self) -> str | None:
        for key, value in self.attrs:
            if key == "name":
                return value
        return None

    def render(self) -> str:
        if not self.attrs and not self.args:
            return f"{self.kind}()\n"
        if not self.attrs and len(self.args) == 1:
            return f"{self.kind}({render_value(self.args[0])})\n"
        lines = [f"{self.kind}("]
        for arg in self.args:
            lines.append(f"{INDENT}{render_value(arg)},")
        for key, value in self.attrs:
            lines.append(f"{INDENT}{key} = {render_value(value)},")
        lines.append(")")
        return "\n".join(lines) + "\n"


def load_statement(bzl: str, symbols: list[str]) -> str:
    quoted = ", ".join(quote(s) for s in [bzl, *sorted(set(symbols))])
    return f"load({quoted})\n"
