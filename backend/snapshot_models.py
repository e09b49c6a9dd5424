"""Pydantic models for JSON_REST_V1 node snapshots."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


# ----- node types -----

FRAME = "FRAME"
RECTANGLE = "RECTANGLE"
ELLIPSE = "ELLIPSE"
TEXT = "TEXT"
GROUP = "GROUP"
COMPONENT = "COMPONENT"
COMPONENT_SET = "COMPONENT_SET"
INSTANCE = "INSTANCE"
VECTOR = "VECTOR"
STAR = "STAR"
REGULAR_POLYGON = "REGULAR_POLYGON"
LINE = "LINE"
BOOLEAN_OPERATION = "BOOLEAN_OPERATION"

VECTOR_LIKE_TYPES = frozenset({VECTOR, STAR, REGULAR_POLYGON, LINE, BOOLEAN_OPERATION})


class Vector(SnapshotModel):
    x: float = 0.0
    y: float = 0.0


class BoundingBox(SnapshotModel):
    x: float = 0.0
    y: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None

    @property
    def has_size(self) -> bool:
        return self.width is not None and self.height is not None


class Color(SnapshotModel):
    r: float = 0.0
    g: float = 0.0
    b: float = 0.0
    a: float = 1.0


class ColorStop(SnapshotModel):
    position: float = 0.0
    color: Color = Field(default_factory=Color)


class Paint(SnapshotModel):
    type: str
    visible: bool = True
    opacity: Optional[float] = None
    color: Optional[Color] = None
    gradient_stops: List[ColorStop] = Field(default_factory=list)
    gradient_handle_positions: Optional[List[Vector]] = None
    image_ref: Optional[str] = None


class Effect(SnapshotModel):
    type: str
    visible: bool = True
    color: Optional[Color] = None
    offset: Optional[Vector] = None
    radius: Optional[float] = None
    spread: Optional[float] = None
    blend_mode: Optional[str] = None


class TypeStyle(SnapshotModel):
    font_family: Optional[str] = None
    font_weight: Optional[float] = None
    font_size: Optional[float] = None
    text_align_horizontal: Optional[str] = None
    text_align_vertical: Optional[str] = None
    line_height_px: Optional[float] = None
    line_height_percent_font_size: Optional[float] = None
    line_height_percent: Optional[float] = None
    letter_spacing: Optional[float] = None
    text_decoration: Optional[str] = None
    text_case: Optional[str] = None
    text_auto_resize: Optional[str] = None


class ComponentPropertyDefinition(SnapshotModel):
    type: str
    default_value: Any = None


class SnapshotNode(SnapshotModel):
    """
    One node of a snapshot tree.

    `children` stays raw: each child is validated only when the walker
    reaches it, so one malformed descendant cannot invalidate its ancestors.
    """

    type: str
    id: Optional[str] = None
    name: Optional[str] = None
    visible: bool = True
    opacity: Optional[float] = None
    blend_mode: Optional[str] = None
    absolute_bounding_box: Optional[BoundingBox] = None
    size: Optional[Vector] = None
    children: Optional[List[Any]] = None

    # geometry / paint
    fills: Optional[List[Paint]] = None
    strokes: Optional[List[Paint]] = None
    stroke_weight: Optional[float] = None
    stroke_align: Optional[str] = None
    effects: Optional[List[Effect]] = None
    clips_content: Optional[bool] = None

    # corners
    corner_radius: Optional[float] = None
    top_left_radius: Optional[float] = None
    top_right_radius: Optional[float] = None
    bottom_left_radius: Optional[float] = None
    bottom_right_radius: Optional[float] = None

    # auto layout container
    layout_mode: Optional[str] = None
    padding_top: Optional[float] = None
    padding_bottom: Optional[float] = None
    padding_left: Optional[float] = None
    padding_right: Optional[float] = None
    item_spacing: Optional[float] = None
    counter_axis_spacing: Optional[float] = None
    primary_axis_sizing_mode: Optional[str] = None
    counter_axis_sizing_mode: Optional[str] = None
    primary_axis_align_items: Optional[str] = None
    counter_axis_align_items: Optional[str] = None

    # auto layout child
    layout_align: Optional[str] = None
    layout_grow: Optional[float] = None
    layout_sizing_horizontal: Optional[str] = None
    layout_sizing_vertical: Optional[str] = None

    # text
    characters: Optional[str] = None
    style: Optional[TypeStyle] = None

    # components
    component_property_definitions: Optional[Dict[str, ComponentPropertyDefinition]] = None

    # vector markup exported alongside the REST json
    svg_data: Optional[str] = Field(default=None, alias="_svgData")

    def label(self, default: Optional[str] = None) -> str:
        """Name used in warnings."""
        return self.name or default or self.type

    @property
    def is_auto_layout(self) -> bool:
        return self.layout_mode in ("HORIZONTAL", "VERTICAL")


def is_node_entry(raw: Any) -> bool:
    """True for entries that look like nodes (objects carrying a type)."""
    return isinstance(raw, dict) and bool(raw.get("type"))


def count_nodes(raw: Any) -> int:
    """Number of node entries in a raw snapshot subtree."""
    if not is_node_entry(raw):
        return 0
    children = raw.get("children")
    if not isinstance(children, list):
        return 1
    return 1 + sum(count_nodes(child) for child in children)
