"""
Paint & effect converters

Translate REST paint/effect descriptors into plugin Paint and Effect
objects. Gradient geometry is approximated from the first two handle
positions; the third handle (non-uniform scale/skew) is discarded.
"""

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from snapshot_models import Color, Effect, Paint, Vector

Transform = Tuple[Tuple[float, float, float], Tuple[float, float, float]]

IDENTITY_TRANSFORM: Transform = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0))

GRADIENT_TYPES = frozenset({"GRADIENT_LINEAR", "GRADIENT_RADIAL", "GRADIENT_ANGULAR", "GRADIENT_DIAMOND"})
SHADOW_TYPES = frozenset({"DROP_SHADOW", "INNER_SHADOW"})
BLUR_TYPES = frozenset({"LAYER_BLUR", "BACKGROUND_BLUR"})

EFFECT_BLEND_MODES = frozenset({
    "NORMAL", "DARKEN", "MULTIPLY", "LINEAR_BURN", "COLOR_BURN", "LIGHTEN", "SCREEN",
    "LINEAR_DODGE", "COLOR_DODGE", "OVERLAY", "SOFT_LIGHT", "HARD_LIGHT", "DIFFERENCE",
    "EXCLUSION", "HUE", "SATURATION", "COLOR", "LUMINOSITY",
})

DEFAULT_SHADOW_COLOR = Color(r=0, g=0, b=0, a=0.25)
DEFAULT_EFFECT_RADIUS = 4.0
DEFAULT_SHADOW_OFFSET = Vector(x=0, y=4)


def compute_gradient_transform(handles: Optional[Sequence[Vector]]) -> Transform:
    """
    Approximate a gradient transform from two handle positions.

    Row one is the unit vector from handle 0 to handle 1, row two its
    perpendicular, and handle 0 is the translation. Fewer than two handles
    yields the identity.
    """
    if not handles or len(handles) < 2:
        return IDENTITY_TRANSFORM
    start, end = handles[0], handles[1]
    dx = end.x - start.x
    dy = end.y - start.y
    length = math.hypot(dx, dy) or 1.0
    cos = dx / length
    sin = dy / length
    return ((cos, sin, start.x), (-sin, cos, start.y))


def _rgb(color: Optional[Color]) -> Dict[str, float]:
    color = color or Color()
    return {"r": color.r, "g": color.g, "b": color.b}


def _rgba(color: Color) -> Dict[str, float]:
    return {"r": color.r, "g": color.g, "b": color.b, "a": color.a}


def convert_paint(paint: Paint) -> Optional[Dict[str, Any]]:
    """Convert one paint; returns None for paints that cannot be rebuilt (images, empty gradients, unknown)."""
    opacity = paint.opacity if paint.opacity is not None else 1.0
    if paint.type == "SOLID":
        return {
            "type": "SOLID",
            "color": _rgb(paint.color),
            "opacity": opacity,
            "visible": paint.visible,
        }
    if paint.type in GRADIENT_TYPES:
        if not paint.gradient_stops:
            return None
        transform = compute_gradient_transform(paint.gradient_handle_positions)
        return {
            "type": paint.type,
            "gradientStops": [{"position": stop.position, "color": _rgba(stop.color)} for stop in paint.gradient_stops],
            "gradientTransform": [list(row) for row in transform],
            "opacity": opacity,
            "visible": paint.visible,
        }
    # IMAGE paints only carry an imageRef hash; the pixels are not in the snapshot
    return None


def convert_paints(paints: Optional[List[Paint]]) -> List[Dict[str, Any]]:
    converted = []
    for paint in paints or []:
        if not paint.visible:
            continue
        result = convert_paint(paint)
        if result is not None:
            converted.append(result)
    return converted


def has_image_paint(paints: Optional[List[Paint]]) -> bool:
    return any(p.type == "IMAGE" and p.visible for p in paints or [])


def convert_effect(effect: Effect) -> Optional[Dict[str, Any]]:
    radius = effect.radius if effect.radius is not None else DEFAULT_EFFECT_RADIUS
    if effect.type in SHADOW_TYPES:
        offset = effect.offset or DEFAULT_SHADOW_OFFSET
        blend_mode = effect.blend_mode if effect.blend_mode in EFFECT_BLEND_MODES else "NORMAL"
        return {
            "type": effect.type,
            "color": _rgba(effect.color or DEFAULT_SHADOW_COLOR),
            "offset": {"x": offset.x, "y": offset.y},
            "radius": radius,
            "spread": effect.spread if effect.spread is not None else 0.0,
            "visible": effect.visible,
            "blendMode": blend_mode,
        }
    if effect.type in BLUR_TYPES:
        return {"type": effect.type, "radius": radius, "visible": effect.visible}
    return None


def convert_effects(effects: Optional[List[Effect]]) -> List[Dict[str, Any]]:
    converted = []
    for effect in effects or []:
        if not effect.visible:
            continue
        result = convert_effect(effect)
        if result is not None:
            converted.append(result)
    return converted
