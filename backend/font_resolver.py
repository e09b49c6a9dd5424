"""Font resolution with a per-reconstruction cache and a fixed fallback."""

import logging
from typing import Dict, Optional, Tuple

from figma_host import FigmaHost, FontName
from plugin_bridge import HostCommandError
from reconstruct_utils import ReconstructionWarnings

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "Inter"
DEFAULT_FONT_WEIGHT = 400
FALLBACK_FONT = FontName(family="Inter", style="Regular")

# (upper bound inclusive, style name)
_WEIGHT_STYLES = (
    (100, "Thin"),
    (200, "ExtraLight"),
    (300, "Light"),
    (400, "Regular"),
    (500, "Medium"),
    (600, "SemiBold"),
    (700, "Bold"),
    (800, "ExtraBold"),
)


def map_weight_to_style(weight: float) -> str:
    for bound, style in _WEIGHT_STYLES:
        if weight <= bound:
            return style
    return "Black"


class FontResolver:
    """
    Resolves (family, weight) to a loaded font.

    Each distinct (family, style) pair is loaded at most once; a pair that
    fails to load resolves to FALLBACK_FONT and produces exactly one warning.
    """

    def __init__(self, host: FigmaHost, warnings: ReconstructionWarnings, fallback: FontName = FALLBACK_FONT):
        self.host = host
        self.warnings = warnings
        self.fallback = fallback
        self._cache: Dict[Tuple[str, str], FontName] = {}
        self._fallback_loaded = False

    async def resolve(self, family: Optional[str], weight: Optional[float]) -> FontName:
        requested = FontName(
            family=family or DEFAULT_FONT_FAMILY,
            style=map_weight_to_style(weight if weight is not None else DEFAULT_FONT_WEIGHT),
        )
        key = (requested.family, requested.style)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            await self.host.load_font(requested)
            resolved = requested
            logger.info(f"🔤 Loaded font {requested}")
        except HostCommandError as e:
            logger.info(f"🔤 Font {requested} failed to load: {e}")
            await self._load_fallback()
            resolved = self.fallback
            self.warnings.add(f'Font "{requested}" unavailable — using {self.fallback}')

        self._cache[key] = resolved
        return resolved

    async def _load_fallback(self) -> None:
        if self._fallback_loaded:
            return
        try:
            await self.host.load_font(self.fallback)
        except HostCommandError as e:
            # Text is still assigned the fallback; the host keeps its default face
            logger.error(f"❌ Fallback font {self.fallback} failed to load: {e}")
        self._fallback_loaded = True
