"""
Unit tests for DMC thread catalog loading and matching.
"""
import json

import pytest

from blueprint_engine.config import config
from blueprint_engine.errors import DatasetUnavailableError, Err, ErrorKind, Ok
from blueprint_engine.services.colors.threads import MATCH_METHOD, ThreadCatalog, match_thread, round_delta_e


@pytest.fixture(scope="module")
def catalog():
    return ThreadCatalog.load(config.DMC_DATASET_PATH)


class TestCatalogLoading:

    def test_packaged_dataset_loads(self, catalog):
        with open(config.DMC_DATASET_PATH, encoding="utf-8") as f:
            entries = json.load(f)
        assert len(catalog) == len(entries)
        assert catalog.lab.shape == (len(entries), 3)

    def test_missing_file(self, tmp_path):
        with pytest.raises(DatasetUnavailableError):
            ThreadCatalog.load(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "dmc.json"
        path.write_text("{not json")
        with pytest.raises(DatasetUnavailableError):
            ThreadCatalog.load(path)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "dmc.json"
        path.write_text(json.dumps({"id": "DMC-1"}))
        with pytest.raises(DatasetUnavailableError):
            ThreadCatalog.load(path)

    def test_bad_hex_entry(self):
        with pytest.raises(DatasetUnavailableError):
            ThreadCatalog.from_entries([{"id": "X", "name": "Broken", "hex": "#12345"}])

    def test_empty_list(self):
        with pytest.raises(DatasetUnavailableError):
            ThreadCatalog.from_entries([])


class TestMatchThread:

    def test_exact_hex_match(self, catalog):
        result = match_thread(catalog, hex="#E31D42")
        assert isinstance(result, Ok)
        match = result.value
        assert match.best.id == "DMC-666"
        assert match.best.name == "Bright Christmas Red"
        assert match.best.delta_e < 1
        assert match.method == MATCH_METHOD

    def test_rgb_input(self, catalog):
        result = match_thread(catalog, rgb=(227, 29, 66))
        assert result.value.best.id == "DMC-666"
        assert result.value.input_hex == "#E31D42"

    def test_black_and_white(self, catalog):
        assert match_thread(catalog, hex="000000").value.best.id == "DMC-310"
        assert match_thread(catalog, hex="#ffffff").value.best.id == "DMC-B5200"

    def test_alternatives_sorted(self, catalog):
        match = match_thread(catalog, hex="#1A1A4D").value
        assert len(match.alternatives) == 5
        distances = [match.best.delta_e] + [alt.delta_e for alt in match.alternatives]
        assert distances == sorted(distances)
        assert all(round(d, 2) == d for d in distances)

    def test_rgb_normalized(self, catalog):
        match = match_thread(catalog, rgb=(300, -10, 0.4)).value
        assert match.input_rgb == (255, 0, 0)
        assert match.to_dict()["input_normalized"] == {"rgb": [255, 0, 0], "hex": "#FF0000"}

    def test_rgb_takes_precedence_over_hex(self, catalog):
        match = match_thread(catalog, rgb=(0, 0, 0), hex="#FFFFFF").value
        assert match.input_hex == "#000000"

    def test_ties_keep_dataset_order(self):
        small = ThreadCatalog.from_entries([
            {"id": "A", "name": "First", "hex": "#101010"},
            {"id": "B", "name": "Second", "hex": "#101010"},
        ])
        match = match_thread(small, hex="#101010").value
        assert match.best.id == "A"
        assert [alt.id for alt in match.alternatives] == ["B"]

    @pytest.mark.parametrize("bad_hex", ["#12345", "#GGGGGG", "red"])
    def test_invalid_hex(self, catalog, bad_hex):
        result = match_thread(catalog, hex=bad_hex)
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.INVALID_INPUT

    def test_missing_input(self, catalog):
        result = match_thread(catalog)
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.INVALID_INPUT

    def test_dataset_unavailable(self):
        result = match_thread(None, hex="#E31D42")
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.DATASET_UNAVAILABLE


class TestDeltaERounding:

    @pytest.mark.parametrize("distance, expected", [
        (0.125, 0.13),
        (0.625, 0.63),
        (2.5, 2.5),
        (0.0, 0.0),
        (12.3449, 12.34),
    ])
    def test_ties_round_up(self, distance, expected):
        assert round_delta_e(distance) == expected
