from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

WEB_MERCATOR_SRS = "EPSG:3857"
OUTPUT_TILE_SIZE = 256
OUTPUT_MEDIA_TYPE = "image/png"

# NYC GeoWebCache WMS endpoint serving the DoITT basemap and orthophoto layers.
DEFAULT_WMS_URL = "http://maps1.nyc.gov/geowebcache/service/wms/"
WMS_URL_ENV = "TILEPROXY_WMS_URL"
WMS_IMAGE_FORMAT = "image/png"
WMS_VERSION = "1.1.1"

REQUEST_TIMEOUT_ENV = "TILEPROXY_REQUEST_TIMEOUT"
DEFAULT_REQUEST_TIMEOUT = 30.0

# EPSG:2263, NAD83 / New York Long Island (ftUS).
NY_LONG_ISLAND_PROJ = (
    "+proj=lcc +lat_1=41.03333333333333 +lat_2=40.66666666666666 "
    "+lat_0=40.16666666666666 +lon_0=-74 +x_0=300000.0000000001 +y_0=0 "
    "+ellps=GRS80 +datum=NAD83 +to_meter=0.3048006096012192 +no_defs"
)


@dataclass(frozen=True)
class GridConfig:
    """Static description of an upstream gridset.

    ``extent`` is ``(west, south, east, north)`` in the grid's own units and its
    north-west corner is the origin cells are counted from. ``resolutions`` is
    the ladder of ground units per pixel, coarsest first.
    """

    name: str
    srs: str
    proj: str
    extent: Tuple[float, float, float, float]
    resolutions: Tuple[float, ...]
    cell_size: int = 512

    def __post_init__(self) -> None:
        if not self.resolutions:
            raise ValueError(f"grid {self.name!r} needs at least one resolution")
        if any(value <= 0 for value in self.resolutions):
            raise ValueError(f"grid {self.name!r} resolutions must be positive")
        if any(a <= b for a, b in zip(self.resolutions, self.resolutions[1:])):
            raise ValueError(f"grid {self.name!r} resolutions must be strictly descending")
        if self.cell_size <= 0:
            raise ValueError("cell_size must be positive")
        west, south, east, north = self.extent
        if west >= east or south >= north:
            raise ValueError(f"grid {self.name!r} has an empty extent")

    @property
    def origin(self) -> Tuple[float, float]:
        return self.extent[0], self.extent[3]

    @property
    def coarsest(self) -> float:
        return self.resolutions[0]

    @property
    def finest(self) -> float:
        return self.resolutions[-1]


# Gridset advertised in the GeoWebCache GetCapabilities document
# (http://maps1.nyc.gov/geowebcache/service/wms/?service=WMS&request=GetCapabilities).
NYC_GRID = GridConfig(
    name="EPSG:2263",
    srs="EPSG:2263",
    proj=NY_LONG_ISLAND_PROJ,
    extent=(
        700000.0,
        -4444.4455643044785,
        1366666.6683464567,
        440000.0,
    ),
    resolutions=(
        434.0277788713911,
        303.8194452099737,
        222.22222278215222,
        111.11111139107611,
        55.555555695538054,
        27.777777847769027,
        13.888888923884513,
        6.944444461942257,
        3.4722222309711284,
        1.7361111154855642,
        0.8680555577427821,
        0.43402777887139105,
        0.21701388943569552,
        0.10850694471784776,
    ),
    cell_size=512,
)


@dataclass(frozen=True)
class ServiceSettings:
    """Runtime settings for talking to the upstream WMS."""

    wms_url: str = DEFAULT_WMS_URL
    timeout: float = DEFAULT_REQUEST_TIMEOUT
    image_format: str = WMS_IMAGE_FORMAT
    output_size: int = OUTPUT_TILE_SIZE


def _request_timeout_seconds() -> float:
    raw_value = os.getenv(REQUEST_TIMEOUT_ENV, "").strip()
    if not raw_value:
        return DEFAULT_REQUEST_TIMEOUT
    try:
        timeout = float(raw_value)
    except ValueError:
        return DEFAULT_REQUEST_TIMEOUT
    if timeout <= 0:
        return DEFAULT_REQUEST_TIMEOUT
    return timeout


def load_settings() -> ServiceSettings:
    """Build :class:`ServiceSettings` from the process environment."""

    wms_url = os.getenv(WMS_URL_ENV, "").strip() or DEFAULT_WMS_URL
    return ServiceSettings(wms_url=wms_url, timeout=_request_timeout_seconds())
