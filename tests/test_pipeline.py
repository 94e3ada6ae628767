"""
Integration tests for the blueprint pipeline.

Covers the solid and split reference images, merging, palette ordering,
previews and run-to-run determinism.
"""
import base64
import io

import numpy as np
import pytest
from PIL import Image

from blueprint_engine.config import config
from blueprint_engine.errors import Err, ErrorKind, Ok
from blueprint_engine.services.blueprint.pipeline import (
    BLUEPRINT_METHOD,
    BlueprintParams,
    generate_blueprint,
    run_blueprint,
    validate_params,
)
from blueprint_engine.services.colors.threads import ThreadCatalog
from conftest import solid_image, split_image


@pytest.fixture(scope="module")
def catalog():
    return ThreadCatalog.load(config.DMC_DATASET_PATH)


@pytest.fixture
def noisy_image(cached_image):
    rng = np.random.default_rng(2024)
    base = np.repeat(np.repeat(rng.integers(0, 256, size=(6, 8, 3)), 4, axis=0), 4, axis=1)
    noise = rng.integers(-12, 13, size=base.shape)
    return cached_image(np.clip(base + noise, 0, 255).astype(np.uint8))


class TestReferenceImages:

    def test_solid_red(self, cached_image):
        image = cached_image(solid_image(10, 10, (255, 0, 0)))
        result = generate_blueprint(image, BlueprintParams(palette_size=3))

        assert (result.width, result.height, result.total_pixels) == (10, 10, 100)
        assert len(result.regions) == 1
        region = result.regions[0]
        assert region.area_px == 100
        assert region.label_index == 0
        assert region.bbox == (0, 0, 10, 10)

        contour = region.contours[0]
        assert contour[0] == contour[-1]
        assert len(contour) >= 4

        assert result.palette[0].rgb == (255, 0, 0)
        assert result.palette[0].count == 100
        assert result.palette[0].percent == 100.0
        assert [entry.index for entry in result.palette] == [0, 1, 2]
        assert all(entry.count == 0 for entry in result.palette[1:])
        assert result.method == BLUEPRINT_METHOD

    def test_red_blue_split(self, cached_image):
        image = cached_image(split_image(20, 20, (255, 0, 0), (0, 0, 255)))
        result = generate_blueprint(image, BlueprintParams(palette_size=2, seed=42))

        assert len(result.regions) == 2
        assert sorted(r.area_px for r in result.regions) == [200, 200]
        assert {entry.hex for entry in result.palette} == {"#FF0000", "#0000FF"}
        for region in result.regions:
            for x, y in region.contours[0]:
                assert 0 <= x < 20 and 0 <= y < 20

        left = result.regions[0]
        assert left.bbox == (0, 0, 10, 20)
        assert result.palette[left.label_index].hex == "#FF0000"


class TestPaletteAndRegions:

    def test_palette_sorted_by_count(self, cached_image):
        pixels = solid_image(10, 10, (0, 0, 255))
        pixels[:3, :] = (255, 255, 0)
        result = generate_blueprint(cached_image(pixels), BlueprintParams(palette_size=2))

        counts = [entry.count for entry in result.palette]
        assert counts == [70, 30]
        assert result.palette[0].hex == "#0000FF"
        assert sum(entry.percent for entry in result.palette) == pytest.approx(100.0)

    def test_region_labels_point_into_sorted_palette(self, noisy_image):
        result = generate_blueprint(noisy_image, BlueprintParams(palette_size=5, seed=9))
        totals = {}
        for region in result.regions:
            totals[region.label_index] = totals.get(region.label_index, 0) + region.area_px
        for entry in result.palette:
            assert totals.get(entry.index, 0) == entry.count
        assert sum(r.area_px for r in result.regions) == result.total_pixels

    def test_small_region_merged(self, cached_image):
        pixels = solid_image(10, 10, (0, 0, 255))
        pixels[5, 5] = (255, 0, 0)
        params = BlueprintParams(palette_size=2, min_region_area=4)
        result = generate_blueprint(cached_image(pixels), params)

        assert len(result.regions) == 1
        assert result.regions[0].area_px == 100
        assert result.palette[0].count == 100
        assert result.palette[0].hex == "#0000FF"
        assert result.palette[1].count == 0

    def test_merge_explicitly_disabled(self, cached_image):
        pixels = solid_image(10, 10, (0, 0, 255))
        pixels[5, 5] = (255, 0, 0)
        params = BlueprintParams(palette_size=2, min_region_area=4, merge_small_regions=False)
        result = generate_blueprint(cached_image(pixels), params)
        assert len(result.regions) == 2

    def test_delta_e_merge_strategy(self, cached_image):
        pixels = split_image(10, 10, (255, 0, 0), (0, 0, 255))
        # Dark blue speck on the red half, touching only red
        pixels[5, 1] = (0, 0, 120)
        params = BlueprintParams(palette_size=3, min_region_area=4, merge_strategy="delta_e")
        result = generate_blueprint(cached_image(pixels), params)

        assert sum(region.area_px for region in result.regions) == 100
        assert all(region.area_px >= 4 for region in result.regions)
        assert len(result.regions) == 2

    def test_dmc_matches(self, cached_image, catalog):
        image = cached_image(solid_image(6, 6, (227, 29, 66)))
        with_dmc = generate_blueprint(image, BlueprintParams(palette_size=1), catalog)
        without = generate_blueprint(image, BlueprintParams(palette_size=1, include_dmc=False), catalog)
        no_catalog = generate_blueprint(image, BlueprintParams(palette_size=1))

        assert with_dmc.palette[0].dmc_match["best"]["id"] == "DMC-666"
        assert without.palette[0].dmc_match is None
        assert no_catalog.palette[0].dmc_match is None


class TestPreview:

    def test_preview_png(self, cached_image):
        image = cached_image(split_image(20, 20, (255, 0, 0), (0, 0, 255)))
        result = generate_blueprint(image, BlueprintParams(palette_size=2, return_preview=True))

        png = Image.open(io.BytesIO(base64.b64decode(result.preview_png_base64)))
        assert png.size == (20, 20)
        assert png.mode == "P"
        rgb = png.convert("RGB")
        assert rgb.getpixel((0, 0)) == (255, 0, 0)
        assert rgb.getpixel((19, 19)) == (0, 0, 255)
        assert "preview_ms" in result.timings

    def test_no_preview_by_default(self, cached_image):
        result = generate_blueprint(cached_image(solid_image(4, 4, (9, 9, 9))), BlueprintParams(palette_size=1))
        assert result.preview_png_base64 is None


class TestDeterminism:

    def test_same_input_same_output(self, noisy_image):
        params = BlueprintParams(palette_size=6, seed=123, min_region_area=6)
        first = generate_blueprint(noisy_image, params).to_dict()
        second = generate_blueprint(noisy_image, params).to_dict()
        first.pop("timings")
        second.pop("timings")
        assert first == second


class TestParams:

    def test_merge_enabled_rules(self):
        assert BlueprintParams(palette_size=4).merge_enabled is False
        assert BlueprintParams(palette_size=4, min_region_area=3).merge_enabled is True
        assert BlueprintParams(palette_size=4, min_region_area=3, merge_small_regions=False).merge_enabled is False
        assert BlueprintParams(palette_size=4, merge_small_regions=True).merge_enabled is False

    @pytest.mark.parametrize("params", [
        BlueprintParams(palette_size=0),
        BlueprintParams(palette_size=config.MAX_PALETTE_SIZE + 1),
        BlueprintParams(palette_size=4, epsilon=-1.0),
        BlueprintParams(palette_size=4, min_region_area=-1),
        BlueprintParams(palette_size=4, max_iterations=0),
        BlueprintParams(palette_size=4, merge_strategy="nearest"),
    ])
    def test_invalid_params(self, params):
        error = validate_params(params)
        assert isinstance(error, Err)
        assert error.kind == ErrorKind.INVALID_INPUT

    def test_run_blueprint_wraps_result(self, cached_image):
        image = cached_image(solid_image(4, 4, (0, 0, 0)))
        assert isinstance(run_blueprint(image, BlueprintParams(palette_size=2)), Ok)
        assert isinstance(run_blueprint(image, BlueprintParams(palette_size=0)), Err)
