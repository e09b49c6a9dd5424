"""
Variant group builder

Rebuilds a COMPONENT_SET: every variant is first built as a standalone
component next to the set's intended position, then the built components
are combined into one variant set and laid out.
"""

import logging
import re
from typing import TYPE_CHECKING, List, Optional, Tuple

from plugin_bridge import HostCommandError
from property_mappers import corner_radius_properties, visual_properties
from reconstruct_utils import compute_relative_position
from snapshot_models import COMPONENT, SnapshotNode

if TYPE_CHECKING:
    from reconstruct import SnapshotWalker

logger = logging.getLogger(__name__)

SET_PADDING = 16
DEFAULT_VARIANT_SPACING = 20

# VARIANT definitions are implied by the variant names themselves
RECREATABLE_PROPERTY_TYPES = frozenset({"BOOLEAN", "TEXT", "INSTANCE_SWAP"})

_PROPERTY_ID_SUFFIX = re.compile(r"#[^#]*$")


async def apply_component_property_definitions(walker: "SnapshotWalker", node_id: str, node: SnapshotNode) -> None:
    """Re-add BOOLEAN, TEXT and INSTANCE_SWAP properties; REST keys carry a `#id` suffix that is dropped."""
    for key, definition in (node.component_property_definitions or {}).items():
        if definition.type not in RECREATABLE_PROPERTY_TYPES:
            continue
        name = _PROPERTY_ID_SUFFIX.sub("", key) or key
        try:
            await walker.host.add_component_property(node_id, name, definition.type, definition.default_value)
        except HostCommandError as e:
            walker.warnings.add(f'"{node.label()}": component property "{name}" could not be recreated ({e})')


class VariantGroupBuilder:
    def __init__(self, walker: "SnapshotWalker"):
        self.walker = walker

    @property
    def host(self):
        return self.walker.host

    @property
    def warnings(self):
        return self.walker.warnings

    async def build(self, node: SnapshotNode, parent_id: Optional[str], parent: Optional[SnapshotNode]) -> Optional[str]:
        name = node.name or "ComponentSet"
        variants = []
        others = []
        for raw in node.children or []:
            child = self.walker.parse(raw)
            if child is None:
                continue
            (variants if child.type == COMPONENT else others).append(child)

        if not variants:
            self.warnings.add(f'"{name}": no variants, created as frame')
            return await self.walker.build_frame(node, parent_id, parent)

        built: List[Tuple[str, SnapshotNode]] = []
        for variant in variants:
            # Built standalone; combination reparents them into the set
            variant_id = await self.walker.build_parsed(variant, parent_id, None)
            if variant_id:
                built.append((variant_id, variant))

        if not built:
            self.warnings.add(f'"{name}": no variant could be built, created as frame')
            return await self.walker.build_frame(node, parent_id, parent)

        for other in others:
            # Non-component children are unusual in a set; they become siblings of it
            await self.walker.build_parsed(other, parent_id, node)

        if len(built) == 1:
            # Combination needs two or more components
            only_id, only_node = built[0]
            await self.walker.apply(only_id, only_node, {"name": node.name or only_node.label()})
            return only_id

        set_id = await self.host.combine_as_variants([variant_id for variant_id, _ in built], parent_id)
        logger.info(f"🧩 Combined {len(built)} variants into '{name}'")

        # Visual properties only: resizing or layout here would fight the variant placement below
        await self.walker.apply(set_id, node, {**visual_properties(node), **corner_radius_properties(node)})
        await apply_component_property_definitions(self.walker, set_id, node)

        if node.absolute_bounding_box is not None and all(v.absolute_bounding_box is not None for _, v in built):
            await self._place_manually(set_id, node, built)
        else:
            self.warnings.add(f'"{name}": variant positions unavailable, using auto-layout')
            await self._place_with_auto_layout(set_id, node)
        return set_id

    async def _place_manually(self, set_id: str, node: SnapshotNode, built: List[Tuple[str, SnapshotNode]]) -> None:
        """Keep the original variant arrangement, normalised to a SET_PADDING inset."""
        positions = [compute_relative_position(variant, node) for _, variant in built]
        min_x = min(x for x, _ in positions)
        min_y = min(y for _, y in positions)

        await self.walker.apply(set_id, node, {"layoutMode": "NONE"})

        max_right = 0.0
        max_bottom = 0.0
        for (variant_id, variant), (x, y) in zip(built, positions):
            placed_x = SET_PADDING + x - min_x
            placed_y = SET_PADDING + y - min_y
            await self.walker.apply(variant_id, variant, {"x": placed_x, "y": placed_y})
            width, height = await self.host.get_node_size(variant_id)
            max_right = max(max_right, placed_x + width)
            max_bottom = max(max_bottom, placed_y + height)

        await self.host.resize(set_id, max(1.0, max_right + SET_PADDING), max(1.0, max_bottom + SET_PADDING))

    async def _place_with_auto_layout(self, set_id: str, node: SnapshotNode) -> None:
        layout_mode = node.layout_mode if node.is_auto_layout else "HORIZONTAL"
        item_spacing = node.item_spacing if node.item_spacing is not None else DEFAULT_VARIANT_SPACING
        await self.walker.apply(set_id, node, {
            "layoutMode": layout_mode,
            "primaryAxisSizingMode": "AUTO",
            "counterAxisSizingMode": "AUTO",
            "paddingTop": SET_PADDING,
            "paddingBottom": SET_PADDING,
            "paddingLeft": SET_PADDING,
            "paddingRight": SET_PADDING,
            "itemSpacing": item_spacing,
        })
