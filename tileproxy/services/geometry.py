from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from pyproj import CRS, Transformer

from ..config import OUTPUT_TILE_SIZE, WEB_MERCATOR_SRS, GridConfig
from .errors import InvalidTileCoordinate, OutsideCoverageError

# Half the circumference of the EPSG:3857 sphere, i.e. the edge of the square world.
WEB_MERCATOR_HALF_EXTENT = 20037508.342789244

# Tiles deeper than this are finer than anything the upstream gridset can serve.
MAX_ZOOM = 30


@dataclass(frozen=True)
class TileCoordinate:
    """A tile address in the standard XYZ web map scheme."""

    x: int
    y: int
    zoom: int

    def __str__(self) -> str:
        return f"{self.zoom}/{self.x}/{self.y}"


@dataclass(frozen=True)
class BoundingBox:
    """An axis-aligned box tagged with the CRS its numbers are expressed in."""

    west: float
    south: float
    east: float
    north: float
    crs: str

    def __post_init__(self) -> None:
        if self.west > self.east:
            raise ValueError(f"west ({self.west}) must not exceed east ({self.east})")
        if self.south > self.north:
            raise ValueError(f"south ({self.south}) must not exceed north ({self.north})")

    @property
    def width(self) -> float:
        return self.east - self.west

    @property
    def height(self) -> float:
        return self.north - self.south

    def contains(self, other: "BoundingBox") -> bool:
        if other.crs != self.crs:
            return False
        return (
            self.west <= other.west
            and self.south <= other.south
            and self.east >= other.east
            and self.north >= other.north
        )


@dataclass(frozen=True)
class GridCellBounds:
    """One cell of an upstream gridset at a single resolution."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float
    column: int
    row: int
    resolution: float

    @property
    def key(self) -> Tuple[float, int, int]:
        return self.resolution, self.column, self.row

    @property
    def wms_bbox(self) -> str:
        return f"{self.xmin!r},{self.ymin!r},{self.xmax!r},{self.ymax!r}"


def tile_footprint(coord: TileCoordinate) -> BoundingBox:
    """Return the EPSG:3857 bounds of ``coord``.

    Raises :class:`InvalidTileCoordinate` when any part is not a plain int, the
    zoom is outside ``[0, MAX_ZOOM]`` or x/y fall outside ``[0, 2**zoom)``.
    """

    x, y, zoom = coord.x, coord.y, coord.zoom
    for name, value in (("x", x), ("y", y), ("zoom", zoom)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidTileCoordinate(f"{name} must be an integer, got {value!r}")
    if not 0 <= zoom <= MAX_ZOOM:
        raise InvalidTileCoordinate(f"zoom must be between 0 and {MAX_ZOOM}, got {zoom}")
    tiles_per_axis = 2 ** zoom
    if not 0 <= x < tiles_per_axis or not 0 <= y < tiles_per_axis:
        raise InvalidTileCoordinate(
            f"tile {coord} is outside the valid range [0, {tiles_per_axis}) for zoom {zoom}"
        )

    side = 2 * WEB_MERCATOR_HALF_EXTENT / tiles_per_axis
    west = -WEB_MERCATOR_HALF_EXTENT + x * side
    north = WEB_MERCATOR_HALF_EXTENT - y * side
    return BoundingBox(
        west=west,
        south=north - side,
        east=west + side,
        north=north,
        crs=WEB_MERCATOR_SRS,
    )


@lru_cache(maxsize=None)
def _transformer_for(proj: str) -> Transformer:
    return Transformer.from_crs(CRS.from_user_input(WEB_MERCATOR_SRS), CRS.from_proj4(proj), always_xy=True)


def reproject(bbox: BoundingBox, grid: GridConfig) -> BoundingBox:
    """Project a Web Mercator box into the grid's CRS.

    Only the south-west and north-east corners are transformed. The grid
    covers a single US state, so there is no wraparound to worry about.
    """

    if bbox.crs != WEB_MERCATOR_SRS:
        raise ValueError(f"expected a {WEB_MERCATOR_SRS} bounding box, got {bbox.crs}")

    transformer = _transformer_for(grid.proj)
    west, south = transformer.transform(bbox.west, bbox.south)
    east, north = transformer.transform(bbox.east, bbox.north)
    if not all(math.isfinite(value) for value in (west, south, east, north)):
        raise OutsideCoverageError(f"footprint {bbox} cannot be projected into {grid.srs}")
    # Far from the zone the cone's rotation can flip the diagonal corners.
    if west > east or south > north:
        raise OutsideCoverageError(f"footprint {bbox} is too far from the {grid.name} zone")
    return BoundingBox(west=west, south=south, east=east, north=north, crs=grid.srs)


def feet_per_pixel(bbox: BoundingBox, tile_size: int = OUTPUT_TILE_SIZE) -> float:
    """Ground units per output pixel for a projected footprint."""

    return bbox.width / tile_size


def select_resolution(requested: float, grid: GridConfig) -> float:
    """Pick the smallest ladder entry strictly greater than ``requested``.

    Requests coarser than the whole ladder get the coarsest entry.
    """

    selected = grid.coarsest
    for resolution in grid.resolutions:
        if resolution > requested:
            selected = resolution
    return selected


def cell_bounds(x: float, y: float, resolution: float, grid: GridConfig) -> GridCellBounds:
    """Snap a grid-CRS point to the cell containing it at ``resolution``.

    Columns grow eastward and rows grow southward from the grid's north-west
    origin. Cells are half-open, so a point on a shared edge belongs to the
    cell whose minimum edge it is.
    """

    origin_x, origin_y = grid.origin
    _, south_limit, east_limit, _ = grid.extent
    size = resolution * grid.cell_size

    column = math.floor((x - origin_x) / size)
    row = math.ceil((origin_y - y) / size) - 1

    xmin = origin_x + column * size
    ymax = origin_y - row * size
    if column < 0 or row < 0 or xmin >= east_limit or ymax <= south_limit:
        raise OutsideCoverageError(
            f"point ({x:.2f}, {y:.2f}) lies outside the {grid.name} gridset extent"
        )

    return GridCellBounds(
        xmin=xmin,
        ymin=ymax - size,
        xmax=xmin + size,
        ymax=ymax,
        column=column,
        row=row,
        resolution=resolution,
    )
