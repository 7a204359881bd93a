"""Unit tests for StationCatalog."""

import pytest

from coderadio.errors import StationNotFoundError
from coderadio.models.station import Station
from coderadio.net.payloads import CodeRadioMessage
from coderadio.services.catalog import StationCatalog

SSE_URL = "https://example.org/sse"


def station(station_id, name=None):
    return Station(
        id=station_id,
        name=name or f"Station {station_id}",
        audio_url=f"https://example.org/{station_id}.mp3",
        metadata_url=SSE_URL,
    )


@pytest.mark.unit
class TestStationCatalog:

    def test_from_message_sorts_mounts_and_remotes(self, code_radio_message):
        catalog = StationCatalog.from_message(CodeRadioMessage.model_validate(code_radio_message()), SSE_URL)

        assert [s.id for s in catalog] == ["1", "2", "5"]
        assert catalog.get("2").bitrate == 64
        assert catalog.get("5").metadata_url == SSE_URL

    def test_default_is_the_listen_url_station(self, code_radio_message):
        catalog = StationCatalog.from_message(CodeRadioMessage.model_validate(code_radio_message()), SSE_URL)
        assert catalog.default.id == "5"

    def test_default_falls_back_to_first(self):
        catalog = StationCatalog([station("b"), station("a")])
        assert catalog.default.id == "b"

    def test_unknown_station(self):
        catalog = StationCatalog([station("coding")])

        with pytest.raises(StationNotFoundError) as exc_info:
            catalog.get("nope")

        assert exc_info.value.station_id == "nope"
        assert str(exc_info.value) == 'Station with ID "nope" not found'

    def test_empty_catalog_has_no_default(self):
        with pytest.raises(StationNotFoundError):
            StationCatalog().default

    def test_lookup_accepts_numeric_ids(self):
        catalog = StationCatalog([station("5")])
        assert 5 in catalog
        assert catalog.get(5).id == "5"

    def test_merge_config(self):
        class Config:
            def get(self, key, default=None):
                assert key == "stations"
                return [{"id": "coding", "audio_url": "http://localhost/a.mp3", "metadata_url": "http://localhost/sse"}]

        catalog = StationCatalog([station("1")])
        catalog.merge_config(Config())

        assert len(catalog) == 2
        assert catalog.get("coding").name == "coding"
        assert catalog.find_by_url("http://localhost/a.mp3").id == "coding"
