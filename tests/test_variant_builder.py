"""
Tests for component-set reconstruction: arity rule, placement and property definitions.
"""
import asyncio

from conftest import FakeHost
from reconstruct import ReconstructionOptions, reconstruct_from_snapshot
from variant_builder import SET_PADDING


def box(x, y, width, height):
    return {"x": x, "y": y, "width": width, "height": height}


def variant(name, bbox=None, **fields):
    node = {"type": "COMPONENT", "name": name, **fields}
    if bbox is not None:
        node["absoluteBoundingBox"] = bbox
    return node


def component_set(children, bbox=box(1000, 500, 400, 200), **fields):
    node = {"type": "COMPONENT_SET", "name": "Button", "children": children, **fields}
    if bbox is not None:
        node["absoluteBoundingBox"] = bbox
    return {"document": node}


def restore(snapshot, host):
    return asyncio.run(reconstruct_from_snapshot(snapshot, ReconstructionOptions(), host))


# --- Arity rule ---

def test_zero_variants_builds_frame_without_combining():
    host = FakeHost()
    result = restore(component_set([]), host)
    assert host.node(result.root_node_id)["type"] == "FRAME"
    assert host.count_calls("combine_as_variants") == 0
    assert result.warnings == ['"Button": no variants, created as frame']


def test_only_non_component_children_builds_frame_containing_them():
    host = FakeHost()
    result = restore(component_set([{"type": "RECTANGLE", "name": "Stray"}]), host)
    root = result.root_node_id
    assert host.node(root)["type"] == "FRAME"
    [child] = host.children_of(root)
    assert host.prop(child, "name") == "Stray"
    assert host.count_calls("combine_as_variants") == 0


def test_single_variant_is_renamed_without_combining():
    host = FakeHost()
    result = restore(component_set([variant("State=Default", box(1000, 500, 100, 40))]), host)
    root = result.root_node_id
    assert host.node(root)["type"] == "COMPONENT"
    assert host.prop(root, "name") == "Button (restored)"
    assert host.count_calls("combine_as_variants") == 0
    assert result.warnings == []


def test_single_variant_renamed_to_set_name():
    host = FakeHost()
    snapshot = {"document": {"type": "FRAME", "name": "Page", "children": [
        component_set([variant("State=Default")], bbox=None)["document"],
    ]}}
    result = restore(snapshot, host)
    [child] = host.children_of(result.root_node_id)
    assert host.prop(child, "name") == "Button"


def test_many_variants_combine_exactly_once():
    host = FakeHost()
    children = [variant(f"State={s}", box(1000 + i * 120, 500, 100, 40)) for i, s in enumerate(["A", "B", "C"])]
    result = restore(component_set(children), host)
    root = result.root_node_id
    assert host.node(root)["type"] == "COMPONENT_SET"
    assert host.count_calls("combine_as_variants") == 1
    assert len(host.children_of(root)) == 3


# --- Placement ---

def test_three_variant_extent_plus_inset():
    host = FakeHost()
    children = [
        variant("Size=S", box(1020, 520, 100, 40)),
        variant("Size=M", box(1140, 520, 120, 48)),
        variant("Size=L", box(1020, 600, 160, 56)),
    ]
    result = restore(component_set(children), host)
    root = result.root_node_id
    small, medium, large = host.children_of(root)

    assert (host.prop(small, "x"), host.prop(small, "y")) == (SET_PADDING, SET_PADDING)
    assert (host.prop(medium, "x"), host.prop(medium, "y")) == (SET_PADDING + 120, SET_PADDING)
    assert (host.prop(large, "x"), host.prop(large, "y")) == (SET_PADDING, SET_PADDING + 80)

    # extent: right edge of M (120 + 120), bottom of L (80 + 56)
    assert host.node(root)["width"] == SET_PADDING + 240 + SET_PADDING
    assert host.node(root)["height"] == SET_PADDING + 136 + SET_PADDING
    assert host.prop(root, "layoutMode") == "NONE"
    assert result.warnings == []


def test_set_is_not_resized_from_its_own_bounding_box():
    host = FakeHost()
    children = [variant("A", box(1000, 500, 10, 10)), variant("B", box(1020, 500, 10, 10))]
    result = restore(component_set(children, bbox=box(1000, 500, 999, 999)), host)
    assert host.node(result.root_node_id)["width"] == SET_PADDING + 30 + SET_PADDING


def test_missing_boxes_fall_back_to_auto_layout():
    host = FakeHost()
    children = [variant("A", box(0, 0, 10, 10)), variant("B")]
    result = restore(component_set(children), host)
    root = result.root_node_id
    assert host.prop(root, "layoutMode") == "HORIZONTAL"
    assert host.prop(root, "itemSpacing") == 20
    assert host.prop(root, "paddingLeft") == SET_PADDING
    assert host.prop(root, "primaryAxisSizingMode") == "AUTO"
    assert result.warnings == ['"Button": variant positions unavailable, using auto-layout']


def test_auto_layout_fallback_keeps_snapshot_spacing_and_direction():
    host = FakeHost()
    children = [variant("A"), variant("B")]
    result = restore(component_set(children, bbox=None, layoutMode="VERTICAL", itemSpacing=8), host)
    batch = [props for node_id, props in host.property_batches
             if node_id == result.root_node_id and "paddingTop" in props][0]
    assert list(batch)[0] == "layoutMode"
    assert batch["layoutMode"] == "VERTICAL"
    assert batch["itemSpacing"] == 8


def test_variants_are_built_before_combining():
    host = FakeHost()
    children = [variant("A", box(0, 0, 10, 10), children=[{"type": "RECTANGLE", "name": "Inner"}]),
                variant("B", box(20, 0, 10, 10))]
    restore(component_set(children, bbox=box(0, 0, 30, 10)), host)
    names = [name for name, _ in host.calls]
    last_create = max(i for i, name in enumerate(names) if name == "create_node")
    assert last_create < names.index("combine_as_variants")


def test_non_component_children_become_siblings_of_the_set():
    host = FakeHost()
    snapshot = {"document": {"type": "FRAME", "name": "Page", "children": [
        component_set([variant("A"), variant("B"), {"type": "TEXT", "name": "Note", "characters": "x"}], bbox=None)["document"],
    ]}}
    result = restore(snapshot, host)
    kinds = sorted(host.node(c)["type"] for c in host.children_of(result.root_node_id))
    assert kinds == ["COMPONENT_SET", "TEXT"]


# --- Component properties ---

def test_component_property_definitions_are_recreated():
    host = FakeHost()
    definitions = {
        "State": {"type": "VARIANT", "defaultValue": "Default"},
        "Label#12:0": {"type": "TEXT", "defaultValue": "Click"},
        "Show icon#12:1": {"type": "BOOLEAN", "defaultValue": True},
    }
    result = restore(component_set([variant("State=Default"), variant("State=Hover")], bbox=None,
                                   componentPropertyDefinitions=definitions), host)
    assert host.component_properties == [
        (result.root_node_id, "Label", "TEXT", "Click"),
        (result.root_node_id, "Show icon", "BOOLEAN", True),
    ]
