"""Layout descriptions and their interpreter.

A layout is a small tree: a leaf names one view, `HSplit`/`VSplit` divide a
region in two, and `Ref` points at another entry of the layout catalog.
Config files spell layouts as JSON:

    "source"                      a leaf (source, asm, output, exe)
    ["h", left, right]            side by side
    ["v", top, bottom]            stacked
    2                             the catalog entry at index 2
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Union

from celive_core import InvalidLayout


class ViewKind(enum.Enum):

    SOURCE = "source"
    ASSEMBLY = "asm"
    COMBINED_OUTPUT = "output"
    EXECUTION_OUTPUT = "exe"


VIEW_ALIASES = {
    "source": ViewKind.SOURCE,
    "src": ViewKind.SOURCE,
    "asm": ViewKind.ASSEMBLY,
    "assembly": ViewKind.ASSEMBLY,
    "output": ViewKind.COMBINED_OUTPUT,
    "compiler-output": ViewKind.COMBINED_OUTPUT,
    "exe": ViewKind.EXECUTION_OUTPUT,
    "execution": ViewKind.EXECUTION_OUTPUT,
}


@dataclass(frozen=True)
class Leaf:

    view: ViewKind


@dataclass(frozen=True)
class HSplit:

    left: "LayoutSpec"
    right: "LayoutSpec"


@dataclass(frozen=True)
class VSplit:

    top: "LayoutSpec"
    bottom: "LayoutSpec"


@dataclass(frozen=True)
class Ref:

    index: int


LayoutSpec = Union[Leaf, HSplit, VSplit, Ref]


@dataclass(frozen=True)
class Region:

    x: int
    y: int
    width: int
    height: int

    def split_horizontal(self) -> tuple["Region", "Region"]:

        left_w = self.width // 2
        return (
            Region(self.x, self.y, left_w, self.height),
            Region(self.x + left_w, self.y, self.width - left_w, self.height),
        )

    def split_vertical(self) -> tuple["Region", "Region"]:

        top_h = self.height // 2
        return (
            Region(self.x, self.y, self.width, top_h),
            Region(self.x, self.y + top_h, self.width, self.height - top_h),
        )

    def area(self) -> int:

        return self.width * self.height

    def intersects(self, other: "Region") -> bool:

        return (
            self.x < other.x + other.width
            and other.x < self.x + self.width
            and self.y < other.y + other.height
            and other.y < self.y + self.height
        )


@dataclass(frozen=True)
class Placement:

    kind: ViewKind
    view: Any
    region: Region


def parse_layout(obj: Any) -> LayoutSpec:

    if isinstance(obj, bool):
        raise InvalidLayout(f"Not a layout: {obj!r}")
    if isinstance(obj, int):
        return Ref(obj)
    if isinstance(obj, str):
        kind = VIEW_ALIASES.get(obj.strip().lower())
        if kind is None:
            raise InvalidLayout(f"Unknown view {obj!r}")
        return Leaf(kind)
    if isinstance(obj, (list, tuple)) and len(obj) == 3 and isinstance(obj[0], str):
        tag = obj[0].strip().lower()
        if tag == "h":
            return HSplit(parse_layout(obj[1]), parse_layout(obj[2]))
        if tag == "v":
            return VSplit(parse_layout(obj[1]), parse_layout(obj[2]))
    raise InvalidLayout(f"Not a layout: {obj!r}")


class LayoutCatalog:
    """Named layouts addressed by index; every Ref is checked when registered."""

    def __init__(self, layouts: list[tuple[str, LayoutSpec]] | None = None):

        self._names: list[str] = []
        self._specs: list[LayoutSpec] = []
        if layouts:
            for name, spec in layouts:
                self._names.append(name)
                self._specs.append(spec)
            self._validate()

    def __len__(self) -> int:

        return len(self._specs)

    def names(self) -> list[str]:

        return list(self._names)

    def register(self, name: str, spec: LayoutSpec) -> int:

        self._names.append(name)
        self._specs.append(spec)
        try:
            self._validate()
        except InvalidLayout:
            self._names.pop()
            self._specs.pop()
            raise
        return len(self._specs) - 1

    def get(self, index: int) -> LayoutSpec:

        if not 0 <= index < len(self._specs):
            raise InvalidLayout(f"Layout reference {index} is out of range (catalog has {len(self._specs)})")
        return self._specs[index]

    def select(self, n: int) -> int:

        if not self._specs:
            raise InvalidLayout("No layouts are registered")
        return n % len(self._specs)

    def _validate(self) -> None:

        for i, spec in enumerate(self._specs):
            try:
                _walk_refs(spec, self, 0)
            except InvalidLayout as e:
                raise InvalidLayout(f"Layout {i} ({self._names[i]}): {e}") from None


def _walk_refs(spec: LayoutSpec, catalog: LayoutCatalog, depth: int) -> None:

    if isinstance(spec, Leaf):
        return
    if isinstance(spec, HSplit):
        _walk_refs(spec.left, catalog, depth)
        _walk_refs(spec.right, catalog, depth)
        return
    if isinstance(spec, VSplit):
        _walk_refs(spec.top, catalog, depth)
        _walk_refs(spec.bottom, catalog, depth)
        return
    if isinstance(spec, Ref):
        # Nesting deeper than the catalog means some entry repeats: a cycle.
        if depth >= len(catalog):
            raise InvalidLayout(f"Reference chain through {spec.index} is cyclic")
        _walk_refs(catalog.get(spec.index), catalog, depth + 1)
        return
    raise InvalidLayout(f"Not a layout: {spec!r}")


class LayoutEngine:

    def __init__(self, catalog: LayoutCatalog):

        self.catalog = catalog

    def apply(
        self,
        spec: LayoutSpec,
        view_provider: Callable[[ViewKind], Any],
        region: Region,
    ) -> list[Placement]:

        out: list[Placement] = []
        self._apply(spec, view_provider, region, 0, out)
        return out

    def apply_index(self, n: int, view_provider: Callable[[ViewKind], Any], region: Region) -> list[Placement]:

        return self.apply(Ref(self.catalog.select(n)), view_provider, region)

    def resolve(self, spec: LayoutSpec, depth: int = 0) -> LayoutSpec:
        """The same layout with every Ref replaced by what it points at."""

        if isinstance(spec, Leaf):
            return spec
        if isinstance(spec, HSplit):
            return HSplit(self.resolve(spec.left, depth), self.resolve(spec.right, depth))
        if isinstance(spec, VSplit):
            return VSplit(self.resolve(spec.top, depth), self.resolve(spec.bottom, depth))
        if isinstance(spec, Ref):
            if depth >= len(self.catalog):
                raise InvalidLayout(f"Reference chain through {spec.index} is longer than the catalog")
            return self.resolve(self.catalog.get(spec.index), depth + 1)
        raise InvalidLayout(f"Not a layout: {spec!r}")

    def _apply(
        self,
        spec: LayoutSpec,
        view_provider: Callable[[ViewKind], Any],
        region: Region,
        depth: int,
        out: list[Placement],
    ) -> None:

        if isinstance(spec, Leaf):
            out.append(Placement(spec.view, view_provider(spec.view), region))
        elif isinstance(spec, HSplit):
            left, right = region.split_horizontal()
            self._apply(spec.left, view_provider, left, depth, out)
            self._apply(spec.right, view_provider, right, depth, out)
        elif isinstance(spec, VSplit):
            top, bottom = region.split_vertical()
            self._apply(spec.top, view_provider, top, depth, out)
            self._apply(spec.bottom, view_provider, bottom, depth, out)
        elif isinstance(spec, Ref):
            if depth >= len(self.catalog):
                raise InvalidLayout(f"Reference chain through {spec.index} is longer than the catalog")
            self._apply(self.catalog.get(spec.index), view_provider, region, depth + 1, out)
        else:
            raise InvalidLayout(f"Not a layout: {spec!r}")


DEFAULT_LAYOUTS: list[tuple[str, Any]] = [
    ("source | asm", ["h", "source", "asm"]),
    ("source | asm / output", ["h", "source", ["v", "asm", "output"]]),
    ("source | asm / exe", ["h", "source", ["v", "asm", "exe"]]),
    ("source / output | asm / exe", ["h", ["v", "source", "output"], ["v", "asm", "exe"]]),
    ("(source | asm) / exe", ["v", 0, "exe"]),
]


def build_catalog(entries: list[Any] | None = None) -> LayoutCatalog:
    """Catalog from config entries: either (name, layout) pairs or bare layouts."""

    raw = entries if entries else DEFAULT_LAYOUTS
    layouts: list[tuple[str, LayoutSpec]] = []
    for i, it in enumerate(raw):
        if isinstance(it, (list, tuple)) and len(it) == 2 and isinstance(it[0], str) and it[0] not in ("h", "v"):
            layouts.append((it[0], parse_layout(it[1])))
        elif isinstance(it, dict) and "layout" in it:
            layouts.append((str(it.get("name") or f"layout {i}"), parse_layout(it["layout"])))
        else:
            layouts.append((f"layout {i}", parse_layout(it)))
    return LayoutCatalog(layouts)
