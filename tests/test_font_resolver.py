"""
Tests for weight mapping and font resolution with fallback.
"""
import asyncio

import pytest

from conftest import FakeHost
from figma_host import FontName
from font_resolver import FALLBACK_FONT, FontResolver, map_weight_to_style
from reconstruct_utils import ReconstructionWarnings


@pytest.mark.parametrize("weight, style", [
    (100, "Thin"), (150, "ExtraLight"), (200, "ExtraLight"), (300, "Light"),
    (400, "Regular"), (450, "Medium"), (600, "SemiBold"), (700, "Bold"),
    (800, "ExtraBold"), (801, "Black"), (950, "Black"),
])
def test_map_weight_to_style_buckets(weight, style):
    assert map_weight_to_style(weight) == style


def test_available_font_is_loaded_once():
    host = FakeHost()
    warnings = ReconstructionWarnings()
    resolver = FontResolver(host, warnings)

    async def run():
        first = await resolver.resolve("Roboto", 700)
        second = await resolver.resolve("Roboto", 700)
        return first, second

    first, second = asyncio.run(run())
    assert first == second == FontName(family="Roboto", style="Bold")
    assert host.font_loads == [FontName(family="Roboto", style="Bold")]
    assert len(warnings) == 0


def test_missing_font_falls_back_with_one_warning_per_pair():
    host = FakeHost(unavailable_families={"Foo"})
    warnings = ReconstructionWarnings()
    resolver = FontResolver(host, warnings)

    async def run():
        return [await resolver.resolve("Foo", 400) for _ in range(3)] + [await resolver.resolve("Foo", 700)]

    resolved = asyncio.run(run())
    assert all(font == FALLBACK_FONT for font in resolved)
    assert warnings.as_list() == [
        'Font "Foo Regular" unavailable — using Inter Regular',
        'Font "Foo Bold" unavailable — using Inter Regular',
    ]
    # one attempt per pair plus a single fallback load
    assert host.font_loads == [
        FontName(family="Foo", style="Regular"),
        FALLBACK_FONT,
        FontName(family="Foo", style="Bold"),
    ]


def test_defaults_to_inter_regular():
    host = FakeHost()
    resolver = FontResolver(host, ReconstructionWarnings())
    assert asyncio.run(resolver.resolve(None, None)) == FontName(family="Inter", style="Regular")

