"""
Property mappers

Pure functions turning a SnapshotNode into ordered plugin property dicts.
Enum-valued properties are only emitted when the value is in the host's
legal set; anything else is left at the host default.
"""

from typing import Any, Dict, Optional, Tuple

from figma_host import FontName
from paint_converters import convert_effects, convert_paints
from reconstruct_utils import clamp_size, compute_relative_position
from snapshot_models import SnapshotNode

BLEND_MODES = frozenset({
    "PASS_THROUGH", "NORMAL", "DARKEN", "MULTIPLY", "LINEAR_BURN", "COLOR_BURN", "LIGHTEN",
    "SCREEN", "LINEAR_DODGE", "COLOR_DODGE", "OVERLAY", "SOFT_LIGHT", "HARD_LIGHT",
    "DIFFERENCE", "EXCLUSION", "HUE", "SATURATION", "COLOR", "LUMINOSITY",
})
STROKE_ALIGNS = frozenset({"INSIDE", "OUTSIDE", "CENTER"})
LAYOUT_MODES = frozenset({"HORIZONTAL", "VERTICAL"})
AXIS_SIZING_MODES = frozenset({"FIXED", "AUTO"})
PRIMARY_AXIS_ALIGNS = frozenset({"MIN", "CENTER", "MAX", "SPACE_BETWEEN"})
COUNTER_AXIS_ALIGNS = frozenset({"MIN", "CENTER", "MAX", "BASELINE"})
LAYOUT_ALIGNS = frozenset({"MIN", "CENTER", "MAX", "STRETCH", "INHERIT"})
LAYOUT_SIZINGS = frozenset({"FIXED", "HUG", "FILL"})
TEXT_ALIGN_HORIZONTAL = frozenset({"LEFT", "CENTER", "RIGHT", "JUSTIFIED"})
TEXT_ALIGN_VERTICAL = frozenset({"TOP", "CENTER", "BOTTOM"})
TEXT_DECORATIONS = frozenset({"NONE", "UNDERLINE", "STRIKETHROUGH"})
TEXT_CASES = frozenset({"ORIGINAL", "UPPER", "LOWER", "TITLE", "SMALL_CAPS", "SMALL_CAPS_FORCED"})
TEXT_AUTO_RESIZE = frozenset({"NONE", "WIDTH_AND_HEIGHT", "HEIGHT", "TRUNCATE"})

_CORNERS = (
    ("top_left_radius", "topLeftRadius"),
    ("top_right_radius", "topRightRadius"),
    ("bottom_left_radius", "bottomLeftRadius"),
    ("bottom_right_radius", "bottomRightRadius"),
)


def _set_if_legal(props: Dict[str, Any], key: str, value: Optional[str], legal: frozenset) -> None:
    if value in legal:
        props[key] = value


def _set_if_number(props: Dict[str, Any], key: str, value: Optional[float]) -> None:
    if value is not None:
        props[key] = value


def node_size(node: SnapshotNode) -> Optional[Tuple[float, float]]:
    """Size from the bounding box, else from the declared size."""
    box = node.absolute_bounding_box
    if box is not None and box.has_size:
        return clamp_size(box.width), clamp_size(box.height)
    if box is None and node.size is not None:
        return clamp_size(node.size.x), clamp_size(node.size.y)
    return None


def layer_properties(node: SnapshotNode) -> Dict[str, Any]:
    """name, visibility, opacity and blend mode."""
    props: Dict[str, Any] = {}
    if node.name:
        props["name"] = node.name
    if node.visible is False:
        props["visible"] = False
    _set_if_number(props, "opacity", node.opacity)
    if node.blend_mode != "PASS_THROUGH":
        _set_if_legal(props, "blendMode", node.blend_mode, BLEND_MODES)
    return props


def common_properties(node: SnapshotNode) -> Dict[str, Any]:
    """Layer, paint, stroke and effect properties shared by every geometry node."""
    props = layer_properties(node)
    if node.fills is not None:
        props["fills"] = convert_paints(node.fills)
    if node.strokes is not None:
        props["strokes"] = convert_paints(node.strokes)
    _set_if_number(props, "strokeWeight", node.stroke_weight)
    _set_if_legal(props, "strokeAlign", node.stroke_align, STROKE_ALIGNS)
    effects = convert_effects(node.effects)
    if effects:
        props["effects"] = effects
    return props


def visual_properties(node: SnapshotNode) -> Dict[str, Any]:
    """Common properties plus clipping, without anything that resizes or re-lays out the node."""
    props = common_properties(node)
    if node.clips_content is not None:
        props["clipsContent"] = node.clips_content
    return props


def group_properties(node: SnapshotNode) -> Dict[str, Any]:
    props: Dict[str, Any] = {"name": node.name or "Group"}
    if node.visible is False:
        props["visible"] = False
    _set_if_number(props, "opacity", node.opacity)
    return props


def frame_properties(node: SnapshotNode) -> Dict[str, Any]:
    """Clipping and auto-layout container properties; layoutMode is always the first layout key."""
    props: Dict[str, Any] = {}
    if node.clips_content is not None:
        props["clipsContent"] = node.clips_content

    if node.layout_mode not in LAYOUT_MODES:
        return props

    props["layoutMode"] = node.layout_mode
    _set_if_number(props, "paddingTop", node.padding_top)
    _set_if_number(props, "paddingBottom", node.padding_bottom)
    _set_if_number(props, "paddingLeft", node.padding_left)
    _set_if_number(props, "paddingRight", node.padding_right)
    _set_if_number(props, "itemSpacing", node.item_spacing)
    _set_if_number(props, "counterAxisSpacing", node.counter_axis_spacing)
    _set_if_legal(props, "primaryAxisSizingMode", node.primary_axis_sizing_mode, AXIS_SIZING_MODES)
    _set_if_legal(props, "counterAxisSizingMode", node.counter_axis_sizing_mode, AXIS_SIZING_MODES)
    _set_if_legal(props, "primaryAxisAlignItems", node.primary_axis_align_items, PRIMARY_AXIS_ALIGNS)
    _set_if_legal(props, "counterAxisAlignItems", node.counter_axis_align_items, COUNTER_AXIS_ALIGNS)
    return props


def corner_radius_properties(node: SnapshotNode) -> Dict[str, Any]:
    """Uniform radius first so per-corner values override it."""
    props: Dict[str, Any] = {}
    _set_if_number(props, "cornerRadius", node.corner_radius)
    for attr, key in _CORNERS:
        _set_if_number(props, key, getattr(node, attr))
    return props


def text_properties(node: SnapshotNode, font: FontName) -> Dict[str, Any]:
    """Typography for a TEXT node. `font` must already be loaded by the host."""
    style = node.style
    props: Dict[str, Any] = {"fontName": font.as_params()}
    if node.characters is not None:
        props["characters"] = str(node.characters)
    if style is None:
        return props

    _set_if_number(props, "fontSize", style.font_size)
    _set_if_legal(props, "textAlignHorizontal", style.text_align_horizontal, TEXT_ALIGN_HORIZONTAL)
    _set_if_legal(props, "textAlignVertical", style.text_align_vertical, TEXT_ALIGN_VERTICAL)

    if style.line_height_px is not None:
        props["lineHeight"] = {"value": style.line_height_px, "unit": "PIXELS"}
    elif style.line_height_percent_font_size is not None:
        props["lineHeight"] = {"value": style.line_height_percent_font_size, "unit": "PERCENT"}
    elif style.line_height_percent is not None:
        props["lineHeight"] = {"value": style.line_height_percent, "unit": "PERCENT"}

    if style.letter_spacing is not None:
        props["letterSpacing"] = {"value": style.letter_spacing, "unit": "PIXELS"}

    _set_if_legal(props, "textDecoration", style.text_decoration, TEXT_DECORATIONS)
    _set_if_legal(props, "textCase", style.text_case, TEXT_CASES)
    _set_if_legal(props, "textAutoResize", style.text_auto_resize, TEXT_AUTO_RESIZE)
    return props


def child_layout_properties(node: SnapshotNode, parent: Optional[SnapshotNode]) -> Dict[str, Any]:
    """
    Placement inside the original parent.

    Manual children get x/y relative to the parent's bounding box; children
    of an auto-layout parent get layout participation flags instead.
    """
    props: Dict[str, Any] = {}
    if parent is None:
        return props

    if parent.is_auto_layout:
        _set_if_legal(props, "layoutAlign", node.layout_align, LAYOUT_ALIGNS)
        _set_if_number(props, "layoutGrow", node.layout_grow)
        _set_if_legal(props, "layoutSizingHorizontal", node.layout_sizing_horizontal, LAYOUT_SIZINGS)
        _set_if_legal(props, "layoutSizingVertical", node.layout_sizing_vertical, LAYOUT_SIZINGS)
        return props

    if node.absolute_bounding_box is not None and parent.absolute_bounding_box is not None:
        x, y = compute_relative_position(node, parent)
        props["x"] = x
        props["y"] = y
    return props
