"""
Reconstruction engine - rebuilds Figma nodes from JSON_REST_V1 snapshots

`reconstruct_from_snapshot` is the only entry point that can fail outright.
Below it, every node is built by its own handler and any host failure is
turned into a warning so the rest of the tree still gets built.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from figma_host import FigmaHost
from font_resolver import FontResolver
from paint_converters import has_image_paint
from plugin_bridge import HostCommandError
from property_mappers import (
    child_layout_properties,
    common_properties,
    corner_radius_properties,
    frame_properties,
    group_properties,
    layer_properties,
    node_size,
    text_properties,
)
from reconstruct_utils import ReconstructionError, ReconstructionWarnings
from snapshot_models import (
    BOOLEAN_OPERATION,
    COMPONENT,
    COMPONENT_SET,
    ELLIPSE,
    FRAME,
    GROUP,
    INSTANCE,
    RECTANGLE,
    TEXT,
    VECTOR_LIKE_TYPES,
    SnapshotNode,
    count_nodes,
    is_node_entry,
)
from variant_builder import VariantGroupBuilder, apply_component_property_definitions

logger = logging.getLogger(__name__)

YIELD_EVERY = 10

ProgressCallback = Callable[[str, int], None]
NodeHandler = Callable[[SnapshotNode, Optional[str], Optional[SnapshotNode]], Awaitable[Optional[str]]]


def _ignore_progress(message: str, percent: int) -> None:
    pass


@dataclass
class ReconstructionOptions:
    root_label: Optional[str] = None
    on_progress: ProgressCallback = _ignore_progress


@dataclass
class ReconstructionResult:
    root_node_id: str
    warnings: List[str] = field(default_factory=list)

    def to_message(self) -> Dict[str, Any]:
        return {"nodeId": self.root_node_id, "warnings": self.warnings}


class SnapshotWalker:
    """
    Depth-first, type-dispatched builder for one reconstruction call.

    Holds all call-scoped state (node counter, warnings, font cache), so a
    walker must never be reused across calls.
    """

    def __init__(self, host: FigmaHost, on_progress: ProgressCallback = _ignore_progress, total_nodes: int = 0):
        self.host = host
        self.on_progress = on_progress
        self.total_nodes = total_nodes
        self.processed = 0
        self.warnings = ReconstructionWarnings()
        self.fonts = FontResolver(host, self.warnings)
        self.variants = VariantGroupBuilder(self)
        self.handlers: Dict[str, NodeHandler] = {
            FRAME: self.build_frame,
            RECTANGLE: self.build_rectangle,
            ELLIPSE: self.build_ellipse,
            TEXT: self.build_text,
            GROUP: self.build_group,
            COMPONENT: self.build_component,
            COMPONENT_SET: self.variants.build,
            INSTANCE: self.build_instance,
        }
        for vector_type in VECTOR_LIKE_TYPES:
            self.handlers[vector_type] = self.build_vector_like

    # ----- dispatch -----

    def parse(self, raw: Any) -> Optional[SnapshotNode]:
        """Validate one raw entry; non-node entries are skipped silently, invalid nodes with a warning."""
        if not is_node_entry(raw):
            logger.debug("Skipping non-node entry in snapshot")
            return None
        try:
            return SnapshotNode.model_validate(raw)
        except ValidationError as e:
            name = raw.get("name") or raw.get("type")
            self.warnings.add(f'"{name}": invalid {raw.get("type")} data skipped ({e.error_count()} errors)')
            return None

    async def _tick(self) -> None:
        self.processed += 1
        if self.processed % YIELD_EVERY == 0:
            if self.total_nodes:
                percent = 10 + round(min(self.processed, self.total_nodes) / self.total_nodes * 85)
                self.on_progress(f"Building nodes ({self.processed}/{self.total_nodes})", percent)
            await asyncio.sleep(0)

    async def build_node(self, raw: Any, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> Optional[str]:
        """Build one raw snapshot entry under `parent_id`; returns the new node id or None."""
        node = self.parse(raw)
        if node is None:
            return None
        return await self.build_parsed(node, parent_id, parent)

    async def build_parsed(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> Optional[str]:
        await self._tick()
        handler = self.handlers.get(node.type)
        if handler is None:
            self.warnings.add(f'Unknown node type "{node.type}" for "{node.name or "?"}" — skipped')
            return None
        try:
            return await handler(node, parent_id, parent)
        except HostCommandError as e:
            self.warnings.add(f'"{node.label()}": {node.type} could not be reconstructed ({e})')
            return None

    async def build_children(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> List[str]:
        built = []
        for raw in node.children or []:
            child_id = await self.build_node(raw, parent_id, parent)
            if child_id:
                built.append(child_id)
        return built

    # ----- property application -----

    async def apply(self, node_id: str, node: SnapshotNode, properties: Dict[str, Any]) -> None:
        """Send a property batch; a rejected batch is a warning, the node is kept."""
        if not properties:
            return
        try:
            await self.host.set_properties(node_id, properties)
        except HostCommandError as e:
            self.warnings.add(f'"{node.label()}": some properties could not be applied ({e})')

    async def apply_size(self, node_id: str, node: SnapshotNode) -> None:
        size = node_size(node)
        if size is None:
            return
        try:
            await self.host.resize(node_id, *size)
        except HostCommandError as e:
            self.warnings.add(f'"{node.label()}": could not be resized ({e})')

    async def apply_common(self, node_id: str, node: SnapshotNode) -> None:
        await self.apply(node_id, node, common_properties(node))
        await self.apply_size(node_id, node)
        if has_image_paint(node.fills) or has_image_paint(node.strokes):
            self.warnings.add(f'"{node.label()}": image paint dropped (no image data in snapshot)')

    # ----- builders -----

    async def _build_container(self, node_type: str, node: SnapshotNode, parent_id: Optional[str],
                               parent: Optional[SnapshotNode]) -> str:
        node_id = await self.host.create_node(node_type, parent_id)
        await self.apply_common(node_id, node)
        await self.apply(node_id, node, {**frame_properties(node), **corner_radius_properties(node)})
        await self.apply(node_id, node, child_layout_properties(node, parent))
        await self.build_children(node, node_id, node)
        return node_id

    async def build_frame(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> str:
        return await self._build_container(FRAME, node, parent_id, parent)

    async def build_component(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> str:
        node_id = await self._build_container(COMPONENT, node, parent_id, parent)
        await apply_component_property_definitions(self, node_id, node)
        return node_id

    async def build_instance(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> str:
        self.warnings.add(f'"{node.name or "Instance"}": INSTANCE downgraded to Frame (cannot recreate without original component)')
        return await self.build_frame(node, parent_id, parent)

    async def _build_shape(self, node_type: str, node: SnapshotNode, parent_id: Optional[str],
                           parent: Optional[SnapshotNode], rounded: bool) -> str:
        node_id = await self.host.create_node(node_type, parent_id)
        await self.apply_common(node_id, node)
        if rounded:
            await self.apply(node_id, node, corner_radius_properties(node))
        await self.apply(node_id, node, child_layout_properties(node, parent))
        return node_id

    async def build_rectangle(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> str:
        return await self._build_shape(RECTANGLE, node, parent_id, parent, rounded=True)

    async def build_ellipse(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> str:
        return await self._build_shape(ELLIPSE, node, parent_id, parent, rounded=False)

    async def build_text(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> str:
        node_id = await self.host.create_node(TEXT, parent_id)
        style = node.style
        font = await self.fonts.resolve(
            style.font_family if style else None,
            style.font_weight if style else None,
        )
        await self.apply_common(node_id, node)
        await self.apply(node_id, node, text_properties(node, font))
        await self.apply(node_id, node, child_layout_properties(node, parent))
        return node_id

    async def build_group(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> Optional[str]:
        name = node.name or "Group"
        if not node.children:
            self.warnings.add(f'"{name}": empty group skipped')
            return None

        # Groups wrap already-placed siblings: build against the group's own parent
        built = await self.build_children(node, parent_id, parent)
        if not built:
            self.warnings.add(f'"{name}": no valid children, group skipped')
            return None

        group_id = await self.host.group_nodes(built, parent_id)
        await self.apply(group_id, node, group_properties(node))
        return group_id

    async def build_vector_like(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> str:
        if node.svg_data:
            return await self.build_from_svg(node, parent_id, parent)
        if node.type == BOOLEAN_OPERATION:
            self.warnings.add(f'"{node.name or "BooleanOp"}": BOOLEAN_OPERATION downgraded to Frame (no SVG data)')
            return await self.build_frame(node, parent_id, parent)
        self.warnings.add(f'"{node.label()}": {node.type} replaced with placeholder rectangle (no SVG data)')
        return await self._build_shape(RECTANGLE, node, parent_id, parent, rounded=True)

    async def build_from_svg(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> str:
        imported = await self.host.create_node_from_svg(node.svg_data, parent_id)
        node_id = imported.id
        if len(imported.children) == 1:
            # Unwrap the single-child wrapper frame the SVG importer adds
            node_id = imported.children[0]
            await self.host.append_child(parent_id, node_id)
            await self.host.remove_node(imported.id)

        props = layer_properties(node)
        props.setdefault("name", node.label())
        await self.apply(node_id, node, props)
        await self.apply_size(node_id, node)
        await self.apply(node_id, node, child_layout_properties(node, parent))
        self.warnings.add(f'"{node.label()}": reconstructed from SVG')
        return node_id


async def reconstruct_from_snapshot(snapshot: Any, options: Optional[ReconstructionOptions] = None,
                                    host: Optional[FigmaHost] = None) -> ReconstructionResult:
    """
    Rebuild the snapshot's document as live nodes on the current page.

    Args:
        snapshot: JSON_REST_V1 export, a dict with a `document` node
        options: root label and progress callback
        host: host command API (defaults to the process-wide bridge)

    Returns:
        ReconstructionResult with the new root node id and every warning

    Raises:
        ReconstructionError: the document is missing, invalid, or its root could not be built
    """
    options = options or ReconstructionOptions()
    host = host or FigmaHost()

    document = snapshot.get("document") if isinstance(snapshot, dict) else None
    if not isinstance(document, dict):
        raise ReconstructionError("missing_document", "Snapshot has no document property")
    try:
        root = SnapshotNode.model_validate(document)
    except ValidationError as e:
        raise ReconstructionError("invalid_document", f"Snapshot document is invalid: {e.error_count()} errors",
                                  {"errors": e.errors(include_url=False)})

    options.on_progress("Preparing reconstruction...", 5)
    walker = SnapshotWalker(host, options.on_progress, total_nodes=count_nodes(document))
    logger.info(f"🏗️ Reconstructing '{root.label()}' ({walker.total_nodes} nodes)")

    root_id = await walker.build_parsed(root, None, None)
    if not root_id:
        raise ReconstructionError("root_not_created", "Failed to create root node from snapshot",
                                  {"warnings": walker.warnings.as_list()})

    label = f"{options.root_label or root.name or 'Component'} (restored)"
    try:
        width, height = await host.get_node_size(root_id)
        center_x, center_y = await host.get_viewport_center()
        await host.set_properties(root_id, {
            "name": label,
            "x": round(center_x - width / 2),
            "y": round(center_y - height / 2),
        })
        await host.select_and_zoom([root_id])
    except HostCommandError as e:
        walker.warnings.add(f'"{label}": could not be placed in view ({e})')

    options.on_progress("Reconstruction complete!", 100)
    logger.info(f"✅ Reconstruction finished: root={root_id}, warnings={len(walker.warnings)}")
    return ReconstructionResult(root_node_id=root_id, warnings=walker.warnings.as_list())
