"""In-memory stand-in for the Figma plugin, shared by the engine tests."""

import itertools
from typing import Any, Dict, List, Optional, Tuple

import pytest

from figma_host import FigmaHost, FontName, SvgImport
from plugin_bridge import HostCommandError

PAGE_ID = "page"


class FakeHost(FigmaHost):
    """
    Records every command and keeps a minimal scene graph.

    Nodes default to 100x100 like freshly created Figma frames.
    """

    def __init__(self, unavailable_families=(), fail_create_types=(), viewport=(500.0, 400.0)):
        super().__init__(bridge=None)
        self.unavailable_families = set(unavailable_families)
        self.fail_create_types = set(fail_create_types)
        self.viewport = viewport
        self.nodes: Dict[str, Dict[str, Any]] = {PAGE_ID: {"type": "PAGE", "parent": None, "children": [], "props": {}}}
        self.calls: List[Tuple[str, Any]] = []
        self.property_batches: List[Tuple[str, Dict[str, Any]]] = []
        self.font_loads: List[FontName] = []
        self.selection: List[str] = []
        self.component_properties: List[Tuple[str, str, str, Any]] = []
        self._ids = itertools.count(1)

    # --- helpers for assertions ---

    def _new(self, node_type: str, parent_id: Optional[str]) -> str:
        node_id = f"{next(self._ids)}:1"
        self.nodes[node_id] = {"type": node_type, "parent": None, "children": [], "props": {},
                               "width": 100.0, "height": 100.0}
        self._attach(parent_id or PAGE_ID, node_id)
        return node_id

    def _attach(self, parent_id: str, node_id: str) -> None:
        old_parent = self.nodes[node_id]["parent"]
        if old_parent is not None:
            self.nodes[old_parent]["children"].remove(node_id)
        self.nodes[parent_id]["children"].append(node_id)
        self.nodes[node_id]["parent"] = parent_id

    def node(self, node_id: str) -> Dict[str, Any]:
        return self.nodes[node_id]

    def children_of(self, node_id: str) -> List[str]:
        return list(self.nodes[node_id]["children"])

    def prop(self, node_id: str, key: str, default=None):
        return self.nodes[node_id]["props"].get(key, default)

    def created(self, node_type: Optional[str] = None) -> List[str]:
        return [node_id for node_id, node in self.nodes.items()
                if node_id != PAGE_ID and (node_type is None or node["type"] == node_type)]

    def count_calls(self, command: str) -> int:
        return sum(1 for name, _ in self.calls if name == command)

    # --- FigmaHost commands ---

    async def create_node(self, node_type: str, parent_id: Optional[str] = None) -> str:
        self.calls.append(("create_node", (node_type, parent_id)))
        if node_type in self.fail_create_types:
            raise HostCommandError({"code": "create_failed", "message": f"cannot create {node_type}"})
        return self._new(node_type, parent_id)

    async def create_node_from_svg(self, svg: str, parent_id: Optional[str] = None) -> SvgImport:
        self.calls.append(("create_node_from_svg", (svg, parent_id)))
        wrapper = self._new("FRAME", parent_id)
        children = [self._new("VECTOR", wrapper) for _ in range(svg.count("<path"))]
        return SvgImport(id=wrapper, children=children)

    async def group_nodes(self, node_ids: List[str], parent_id: Optional[str] = None) -> str:
        self.calls.append(("group_nodes", (list(node_ids), parent_id)))
        group_id = self._new("GROUP", parent_id)
        for node_id in node_ids:
            self._attach(group_id, node_id)
        return group_id

    async def combine_as_variants(self, node_ids: List[str], parent_id: Optional[str] = None) -> str:
        self.calls.append(("combine_as_variants", (list(node_ids), parent_id)))
        set_id = self._new("COMPONENT_SET", parent_id)
        for node_id in node_ids:
            self._attach(set_id, node_id)
        return set_id

    async def set_properties(self, node_id: str, properties: Dict[str, Any]) -> None:
        self.calls.append(("set_node_properties", (node_id, dict(properties))))
        self.property_batches.append((node_id, dict(properties)))
        self.nodes[node_id]["props"].update(properties)

    async def resize(self, node_id: str, width: float, height: float) -> None:
        self.calls.append(("resize_node", (node_id, width, height)))
        self.nodes[node_id]["width"] = float(width)
        self.nodes[node_id]["height"] = float(height)

    async def get_node_size(self, node_id: str) -> Tuple[float, float]:
        node = self.nodes[node_id]
        return node["width"], node["height"]

    async def append_child(self, parent_id: Optional[str], node_id: str) -> None:
        self.calls.append(("append_child", (parent_id, node_id)))
        self._attach(parent_id or PAGE_ID, node_id)

    async def remove_node(self, node_id: str) -> None:
        self.calls.append(("remove_node", node_id))
        node = self.nodes.pop(node_id)
        if node["parent"] is not None:
            self.nodes[node["parent"]]["children"].remove(node_id)

    async def add_component_property(self, node_id: str, name: str, property_type: str, default_value: Any) -> None:
        self.calls.append(("add_component_property", (node_id, name, property_type, default_value)))
        self.component_properties.append((node_id, name, property_type, default_value))

    async def load_font(self, font: FontName) -> None:
        self.calls.append(("load_font", font))
        self.font_loads.append(font)
        if font.family in self.unavailable_families:
            raise HostCommandError({"code": "font_load_failed", "message": f"{font} is not available"})

    async def get_viewport_center(self) -> Tuple[float, float]:
        return self.viewport

    async def select_and_zoom(self, node_ids: List[str]) -> None:
        self.calls.append(("select_and_zoom", list(node_ids)))
        self.selection = list(node_ids)


@pytest.fixture
def host():
    return FakeHost()
