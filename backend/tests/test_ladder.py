"""Tests for quality ladder planning.

Covers rung selection against the source resolution and bitrate, aspect ratio
preservation for landscape and portrait sources and the synthesized rung used
when nothing in the catalog fits.
"""

import pytest
from hypothesis import given, settings, strategies as st

from transcoder.models.job import LadderRung, SourceDescriptor
from transcoder.services.ladder import (
    ASPECT_TOLERANCE,
    FALLBACK_BITRATE_KBPS,
    PRESET_CATALOG,
    interpolate_catalog,
    make_rendition,
    plan_ladder,
)

CATALOG = [
    LadderRung(width=640, height=360, bitrate=500, label="360p"),
    LadderRung(width=854, height=480, bitrate=1000, label="480p"),
    LadderRung(width=1280, height=720, bitrate=2500, label="720p"),
    LadderRung(width=1920, height=1080, bitrate=5000, label="1080p"),
]


source_strategy = st.builds(
    SourceDescriptor,
    width=st.integers(min_value=240, max_value=4096),
    height=st.integers(min_value=240, max_value=4096),
    duration=st.floats(min_value=1, max_value=7200),
    bitrate=st.integers(min_value=0, max_value=50_000),
)

catalog_strategy = st.lists(
    st.builds(
        LadderRung,
        width=st.integers(min_value=16, max_value=4096),
        height=st.integers(min_value=16, max_value=4096),
        bitrate=st.integers(min_value=100, max_value=20_000),
        label=st.sampled_from(["low", "mid", "high"]),
    ),
    max_size=8,
)


class TestCatalogSelection:
    """Rung filtering against the source."""

    def test_landscape_source_drops_rung_above_bitrate_threshold(self) -> None:
        source = SourceDescriptor(width=1920, height=1080, duration=60, bitrate=4000)

        renditions = plan_ladder(source, catalog=CATALOG)

        assert [r.label for r in renditions] == ["360p", "480p", "720p"]
        assert [(r.width, r.height) for r in renditions] == [(640, 360), (854, 480), (1280, 720)]

    def test_portrait_source_matches_short_side(self) -> None:
        source = SourceDescriptor(width=480, height=854, duration=30, bitrate=0)

        renditions = plan_ladder(source, catalog=CATALOG)

        assert [r.label for r in renditions] == ["360p", "480p"]
        assert renditions[0].width == 360
        assert renditions[0].height == 640
        assert renditions[1].width == 480
        assert renditions[1].height == 854

    def test_unknown_source_bitrate_keeps_every_fitting_rung(self) -> None:
        source = SourceDescriptor(width=1920, height=1080, duration=60, bitrate=0)

        renditions = plan_ladder(source, catalog=CATALOG)

        assert len(renditions) == 4

    def test_tiny_source_gets_synthesized_rung(self) -> None:
        source = SourceDescriptor(width=320, height=240, duration=10, bitrate=300)

        renditions = plan_ladder(source, catalog=CATALOG)

        assert len(renditions) == 1
        assert (renditions[0].width, renditions[0].height) == (320, 240)
        assert renditions[0].label == "240p"
        assert renditions[0].bitrate == 300

    def test_synthesized_rung_caps_bitrate(self) -> None:
        source = SourceDescriptor(width=320, height=240, duration=10, bitrate=0)

        renditions = plan_ladder(source, catalog=CATALOG)

        assert renditions[0].bitrate == FALLBACK_BITRATE_KBPS

    def test_low_bitrate_source_falls_back_at_source_resolution(self) -> None:
        source = SourceDescriptor(width=1280, height=720, duration=10, bitrate=400)

        renditions = plan_ladder(source, catalog=CATALOG)

        assert len(renditions) == 1
        assert (renditions[0].width, renditions[0].height) == (1280, 720)
        assert renditions[0].label == "720p"

    def test_invalid_dimensions_rejected(self) -> None:
        with pytest.raises(ValueError):
            plan_ladder(SourceDescriptor(width=0, height=720, duration=10, bitrate=1000))


class TestCatalogInterpolation:

    def test_spreads_range_over_presets(self) -> None:
        catalog = interpolate_catalog(500, 2500)

        assert [rung.label for rung in catalog] == [label for _, _, label in PRESET_CATALOG]
        assert catalog[0].bitrate == 500
        assert catalog[-1].bitrate == 2500
        assert [rung.bitrate for rung in catalog] == sorted(rung.bitrate for rung in catalog)

    def test_swapped_bounds_are_reordered(self) -> None:
        assert interpolate_catalog(2500, 500) == interpolate_catalog(500, 2500)

    def test_rate_control_values(self) -> None:
        rendition = make_rendition(1280, 720, 2500, "720p")

        assert rendition.maxrate == 3000
        assert rendition.bufsize == 5000


class TestLadderProperties:
    """Properties that hold for any source."""

    @given(source=source_strategy)
    @settings(max_examples=200)
    def test_never_empty(self, source: SourceDescriptor) -> None:
        assert plan_ladder(source)

    @given(source=source_strategy)
    @settings(max_examples=200)
    def test_never_upscales(self, source: SourceDescriptor) -> None:
        for rendition in plan_ladder(source):
            assert rendition.width <= source.width
            assert rendition.height <= source.height

    @given(source=source_strategy)
    @settings(max_examples=200)
    def test_sorted_ascending_by_resolution(self, source: SourceDescriptor) -> None:
        pixels = [r.width * r.height for r in plan_ladder(source)]
        assert pixels == sorted(pixels)

    @given(source=source_strategy)
    @settings(max_examples=200)
    def test_dimensions_are_even(self, source: SourceDescriptor) -> None:
        for rendition in plan_ladder(source):
            assert rendition.width % 2 == 0
            assert rendition.height % 2 == 0

    @given(source=source_strategy)
    @settings(max_examples=200)
    def test_preserves_aspect_ratio(self, source: SourceDescriptor) -> None:
        source_ratio = source.width / source.height
        for rendition in plan_ladder(source):
            ratio = rendition.width / rendition.height
            assert abs(ratio - source_ratio) <= ASPECT_TOLERANCE

    @given(source=source_strategy)
    @settings(max_examples=200)
    def test_catalog_rungs_respect_bitrate_threshold(self, source: SourceDescriptor) -> None:
        renditions = plan_ladder(source)
        # More than one rung means none of them was synthesized
        if source.bitrate > 0 and len(renditions) > 1:
            for rendition in renditions:
                assert rendition.bitrate <= source.bitrate * 0.8


class TestArbitraryCatalogs:
    """The same guarantees with caller-supplied catalogs."""

    def test_rung_too_small_for_aspect_ratio_is_dropped(self) -> None:
        source = SourceDescriptor(width=303, height=240, duration=10, bitrate=0)
        catalog = [LadderRung(width=16, height=16, bitrate=200, label="tiny")]

        renditions = plan_ladder(source, catalog=catalog)

        assert [r.label for r in renditions] == ["240p"]
        assert abs(renditions[0].width / renditions[0].height - 303 / 240) <= ASPECT_TOLERANCE

    def test_only_misfitting_rungs_are_dropped(self) -> None:
        source = SourceDescriptor(width=1920, height=1080, duration=10, bitrate=0)
        catalog = [
            LadderRung(width=16, height=16, bitrate=100, label="thumb"),
            LadderRung(width=320, height=180, bitrate=300, label="180p"),
        ]

        renditions = plan_ladder(source, catalog=catalog)

        # 16 rows would need 28.44 columns, which rounds to 28
        assert [r.label for r in renditions] == ["180p"]
        assert (renditions[0].width, renditions[0].height) == (320, 180)

    @given(source=source_strategy, catalog=catalog_strategy)
    @settings(max_examples=300)
    def test_never_empty(self, source: SourceDescriptor, catalog: list[LadderRung]) -> None:
        assert plan_ladder(source, catalog=catalog)

    @given(source=source_strategy, catalog=catalog_strategy)
    @settings(max_examples=300)
    def test_never_upscales(self, source: SourceDescriptor, catalog: list[LadderRung]) -> None:
        for rendition in plan_ladder(source, catalog=catalog):
            assert rendition.width <= source.width
            assert rendition.height <= source.height

    @given(source=source_strategy, catalog=catalog_strategy)
    @settings(max_examples=300)
    def test_sorted_ascending_by_resolution(self, source: SourceDescriptor, catalog: list[LadderRung]) -> None:
        pixels = [r.width * r.height for r in plan_ladder(source, catalog=catalog)]
        assert pixels == sorted(pixels)

    @given(source=source_strategy, catalog=catalog_strategy)
    @settings(max_examples=300)
    def test_dimensions_are_even(self, source: SourceDescriptor, catalog: list[LadderRung]) -> None:
        for rendition in plan_ladder(source, catalog=catalog):
            assert rendition.width % 2 == 0
            assert rendition.height % 2 == 0

    @given(source=source_strategy, catalog=catalog_strategy)
    @settings(max_examples=300)
    def test_preserves_aspect_ratio(self, source: SourceDescriptor, catalog: list[LadderRung]) -> None:
        source_ratio = source.width / source.height
        for rendition in plan_ladder(source, catalog=catalog):
            assert abs(rendition.width / rendition.height - source_ratio) <= ASPECT_TOLERANCE
