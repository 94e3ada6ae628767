"""
Unit tests for image registration and color sampling.
"""
import pytest

from blueprint_engine.config import config
from blueprint_engine.errors import Err, ErrorKind, Ok
from blueprint_engine.services.cache import ImageSessionCache
from blueprint_engine.services.colors.threads import ThreadCatalog
from blueprint_engine.services.sampling import register_image, sample_color
from conftest import solid_image, split_image


@pytest.fixture(scope="module")
def catalog():
    return ThreadCatalog.load(config.DMC_DATASET_PATH)


@pytest.fixture
def cache():
    return ImageSessionCache()


class TestRegisterImage:

    def test_data_url_prefix_accepted(self, cache, png_base64):
        data = "data:image/png;base64," + png_base64(solid_image(6, 4, (1, 2, 3)))
        result = register_image(cache, data, 2048)
        assert isinstance(result, Ok)
        assert (result.value.width, result.value.height) == (6, 4)

    def test_empty_payload(self, cache):
        result = register_image(cache, "   ", 2048)
        assert result.kind == ErrorKind.INVALID_INPUT

    def test_invalid_base64(self, cache):
        result = register_image(cache, "invalid_base64_data!!", 2048)
        assert result.kind == ErrorKind.DECODE_FAILURE


class TestSampleColor:

    def test_sample_registered_image(self, cache, catalog, png_base64):
        image_id = register_image(cache, png_base64(solid_image(10, 10, (227, 29, 66))), 2048).value.image_id
        result = sample_color(cache, catalog, image_id=image_id, x=0.5, y=0.5, radius=2)

        assert isinstance(result, Ok)
        body = result.value.to_dict()
        assert body["rgb"] == [227, 29, 66]
        assert body["hex"] == "#E31D42"
        assert body["match"]["best"]["id"] == "DMC-666"
        assert body["input_normalized"] == {"x": 0.5, "y": 0.5, "radius": 2}

    def test_sample_inline_image(self, cache, catalog, png_base64):
        data = png_base64(split_image(10, 4, (255, 0, 0), (0, 0, 255)))
        left = sample_color(cache, catalog, image_base64=data, x=0.0, y=0.5)
        right = sample_color(cache, catalog, image_base64=data, x=1.0, y=0.5)
        assert left.value.rgb == (255, 0, 0)
        assert right.value.rgb == (0, 0, 255)
        assert cache.stats()["entries"] == 1

    @pytest.mark.parametrize("x,y", [(-0.1, 0.5), (0.5, 1.5)])
    def test_coordinates_out_of_range(self, cache, catalog, x, y):
        result = sample_color(cache, catalog, image_id="any", x=x, y=y)
        assert result.kind == ErrorKind.INVALID_INPUT

    def test_negative_radius(self, cache, catalog):
        result = sample_color(cache, catalog, image_id="any", x=0.5, y=0.5, radius=-1)
        assert result.kind == ErrorKind.INVALID_INPUT

    def test_missing_image_reference(self, cache, catalog):
        result = sample_color(cache, catalog, x=0.5, y=0.5)
        assert result.kind == ErrorKind.INVALID_INPUT

    def test_unknown_image_id(self, cache, catalog):
        result = sample_color(cache, catalog, image_id="deadbeef", x=0.5, y=0.5)
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.NOT_FOUND

    def test_catalog_unavailable(self, cache, png_base64):
        data = png_base64(solid_image(4, 4, (0, 0, 0)))
        result = sample_color(cache, None, image_base64=data, x=0.5, y=0.5)
        assert result.kind == ErrorKind.DATASET_UNAVAILABLE
