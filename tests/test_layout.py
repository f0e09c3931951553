from __future__ import annotations

import pytest

from celive_core import InvalidLayout
from celive_layout import (
    HSplit,
    LayoutCatalog,
    LayoutEngine,
    Leaf,
    Ref,
    Region,
    VSplit,
    ViewKind,
    build_catalog,
    parse_layout,
)

SCREEN = Region(0, 0, 1200, 800)


def provider(kind: ViewKind) -> str:
    return f"view:{kind.value}"


def test_hsplit_assigns_two_disjoint_regions():
    engine = LayoutEngine(LayoutCatalog())
    placements = engine.apply(HSplit(Leaf(ViewKind.SOURCE), Leaf(ViewKind.ASSEMBLY)), provider, SCREEN)

    assert [p.kind for p in placements] == [ViewKind.SOURCE, ViewKind.ASSEMBLY]
    assert [p.view for p in placements] == ["view:source", "view:asm"]
    left, right = placements[0].region, placements[1].region
    assert not left.intersects(right)
    assert left.area() + right.area() == SCREEN.area()
    assert left.x < right.x and left.y == right.y


def test_vsplit_stacks_regions():
    engine = LayoutEngine(LayoutCatalog())
    placements = engine.apply(VSplit(Leaf(ViewKind.ASSEMBLY), Leaf(ViewKind.EXECUTION_OUTPUT)), provider, SCREEN)

    top, bottom = placements[0].region, placements[1].region
    assert top == Region(0, 0, 1200, 400)
    assert bottom == Region(0, 400, 1200, 400)


def test_ref_resolves_through_catalog():
    catalog = LayoutCatalog(
        [
            ("pair", HSplit(Leaf(ViewKind.SOURCE), Leaf(ViewKind.ASSEMBLY))),
            ("with exe", VSplit(Ref(0), Leaf(ViewKind.EXECUTION_OUTPUT))),
        ]
    )
    engine = LayoutEngine(catalog)
    placements = engine.apply(Ref(1), provider, SCREEN)

    assert [p.kind for p in placements] == [ViewKind.SOURCE, ViewKind.ASSEMBLY, ViewKind.EXECUTION_OUTPUT]
    regions = [p.region for p in placements]
    for i, a in enumerate(regions):
        for b in regions[i + 1 :]:
            assert not a.intersects(b)
    assert engine.resolve(Ref(1)) == VSplit(
        HSplit(Leaf(ViewKind.SOURCE), Leaf(ViewKind.ASSEMBLY)), Leaf(ViewKind.EXECUTION_OUTPUT)
    )


def test_cyclic_refs_are_rejected_on_registration():
    with pytest.raises(InvalidLayout):
        LayoutCatalog([("a", Ref(1)), ("b", HSplit(Leaf(ViewKind.SOURCE), Ref(0)))])


def test_self_reference_is_rejected_and_catalog_unchanged():
    catalog = LayoutCatalog([("a", Leaf(ViewKind.SOURCE))])
    with pytest.raises(InvalidLayout):
        catalog.register("loop", VSplit(Leaf(ViewKind.ASSEMBLY), Ref(1)))
    assert len(catalog) == 1


def test_out_of_range_ref_is_invalid():
    with pytest.raises(InvalidLayout):
        LayoutCatalog([("a", Ref(7))])
    engine = LayoutEngine(LayoutCatalog([("a", Leaf(ViewKind.SOURCE))]))
    with pytest.raises(InvalidLayout):
        engine.apply(Ref(3), provider, SCREEN)


def test_ref_chain_longer_than_catalog_fails_during_apply():
    # A catalog that slipped past registration must still not loop forever.
    catalog = LayoutCatalog([("a", Leaf(ViewKind.SOURCE))])
    catalog._specs[0] = Ref(0)
    with pytest.raises(InvalidLayout):
        LayoutEngine(catalog).apply(Ref(0), provider, SCREEN)


def test_numeric_selectors_wrap_around():
    catalog = build_catalog()
    n = len(catalog)
    assert catalog.select(0) == 0
    assert catalog.select(n) == 0
    assert catalog.select(n + 1) == 1

    engine = LayoutEngine(catalog)
    assert engine.apply_index(n, provider, SCREEN) == engine.apply_index(0, provider, SCREEN)


def test_empty_catalog_cannot_select():
    with pytest.raises(InvalidLayout):
        LayoutCatalog().select(0)


def test_parse_layout_forms():
    assert parse_layout("source") == Leaf(ViewKind.SOURCE)
    assert parse_layout("ASM") == Leaf(ViewKind.ASSEMBLY)
    assert parse_layout(2) == Ref(2)
    assert parse_layout(["h", "source", ["v", "asm", "exe"]]) == HSplit(
        Leaf(ViewKind.SOURCE), VSplit(Leaf(ViewKind.ASSEMBLY), Leaf(ViewKind.EXECUTION_OUTPUT))
    )
    for bad in ("terminal", ["x", "source", "asm"], ["h", "source"], True, None):
        with pytest.raises(InvalidLayout):
            parse_layout(bad)


def test_build_catalog_accepts_named_and_bare_entries():
    catalog = build_catalog([["h", "source", "asm"], {"name": "stacked", "layout": ["v", 0, "output"]}])
    assert catalog.names() == ["layout 0", "stacked"]
    with pytest.raises(InvalidLayout):
        build_catalog([["v", 1, "output"], ["h", 0, "asm"]])


def test_default_catalog_is_valid():
    catalog = build_catalog()
    engine = LayoutEngine(catalog)
    for i in range(len(catalog)):
        kinds = [p.kind for p in engine.apply_index(i, provider, SCREEN)]
        assert ViewKind.SOURCE in kinds
