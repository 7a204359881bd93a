"""Station catalog: maps station ids to their audio and metadata endpoints."""

import logging
from typing import Dict, Iterable, Iterator, Optional

from ..errors import StationNotFoundError
from ..models.station import Station
from ..net.api import stations_from_message
from ..net.payloads import CodeRadioMessage

logger = logging.getLogger(__name__)


class StationCatalog:
    """Ordered collection of known stations."""

    def __init__(self, stations: Iterable[Station] = (), default_id: Optional[str] = None):
        self._stations: Dict[str, Station] = {}
        for station in stations:
            self.add(station)
        self._default_id = default_id

    @classmethod
    def from_message(cls, message: CodeRadioMessage, metadata_url: str) -> "StationCatalog":
        """Build the catalog from a Code Radio message.

        The default station is the one the message lists as ``listen_url``.
        """
        stations = stations_from_message(message, metadata_url)
        default_id = next(
            (s.id for s in stations if s.audio_url == message.station.listen_url),
            None,
        )
        return cls(stations, default_id)

    def merge_config(self, config) -> None:
        """Add stations listed under ``stations`` in the configuration."""
        for entry in config.get("stations", None) or []:
            station = Station(
                id=str(entry["id"]),
                name=entry.get("name", str(entry["id"])),
                audio_url=entry["audio_url"],
                metadata_url=entry["metadata_url"],
            )
            logger.debug(f"Adding configured station {station.id}: {station.name}")
            self.add(station)

    def add(self, station: Station) -> None:
        self._stations[station.id] = station

    def get(self, station_id: str) -> Station:
        """Look up a station.

        Raises:
            StationNotFoundError: if the id is unknown
        """
        try:
            return self._stations[str(station_id)]
        except KeyError:
            raise StationNotFoundError(str(station_id)) from None

    def find_by_url(self, audio_url: str) -> Optional[Station]:
        return next((s for s in self._stations.values() if s.audio_url == audio_url), None)

    @property
    def default(self) -> Station:
        if self._default_id is not None:
            return self.get(self._default_id)
        if not self._stations:
            raise StationNotFoundError("<default>")
        return next(iter(self._stations.values()))

    def __contains__(self, station_id: object) -> bool:
        return str(station_id) in self._stations

    def __iter__(self) -> Iterator[Station]:
        return iter(self._stations.values())

    def __len__(self) -> int:
        return len(self._stations)
