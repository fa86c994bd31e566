from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Tuple

import httpx

from ..config import NYC_GRID, OUTPUT_MEDIA_TYPE, GridConfig, ServiceSettings, load_settings
from .compositor import compose, crop_to_footprint, encode_png
from .coverage import Quadrant, covered_bounds, plan
from .errors import OutsideCoverageError
from .fetcher import fetch_all, wms_params
from .geometry import (
    TileCoordinate,
    feet_per_pixel,
    reproject,
    select_resolution,
    tile_footprint,
)

logger = logging.getLogger(__name__)


@dataclass
class OutputTile:
    """A rendered 256x256 tile ready to hand back to the caller."""

    content: bytes
    coordinate: TileCoordinate
    layer: str
    resolution: float
    quadrants: Tuple[str, ...]
    media_type: str = field(default=OUTPUT_MEDIA_TYPE)
    source_urls: Tuple[str, ...] = field(default=())


async def get_tile(
    layer: str,
    x: int,
    y: int,
    z: int,
    *,
    grid: GridConfig = NYC_GRID,
    settings: ServiceSettings | None = None,
) -> OutputTile:
    """Render web tile ``z/x/y`` of ``layer`` from the upstream state-plane WMS.

    Either returns a complete tile or raises a
    :class:`~tileproxy.services.errors.TileRequestError` subclass.
    """

    if not isinstance(layer, str) or not layer.strip():
        raise ValueError("layer must be a non-empty string")
    layer = layer.strip()
    settings = settings or load_settings()

    coord = TileCoordinate(x=x, y=y, zoom=z)
    mercator_bbox = tile_footprint(coord)
    footprint = reproject(mercator_bbox, grid)

    resolution = select_resolution(feet_per_pixel(footprint, settings.output_size), grid)
    logger.info(
        "Tile %s of %s uses gridset resolution %.6f ft/px", coord, layer, resolution
    )

    cells = plan(footprint, resolution, grid)
    if not covered_bounds(cells, grid.srs).contains(footprint):
        raise OutsideCoverageError(
            f"tile {coord} spans more than the {len(cells)} {grid.name} cells planned for it"
        )

    source_urls = tuple(
        str(
            httpx.URL(
                settings.wms_url,
                params=wms_params(cell, layer=layer, grid=grid, image_format=settings.image_format),
            )
        )
        for cell in cells.values()
    )

    async with httpx.AsyncClient(timeout=httpx.Timeout(settings.timeout)) as client:
        images = await fetch_all(client, cells, layer=layer, grid=grid, settings=settings)

    composite = compose(images, grid.cell_size)
    rendered = crop_to_footprint(
        composite,
        footprint,
        cells[Quadrant.NW],
        resolution,
        grid.cell_size,
        output_size=settings.output_size,
    )

    return OutputTile(
        content=encode_png(rendered),
        coordinate=coord,
        layer=layer,
        resolution=resolution,
        quadrants=tuple(quadrant.value for quadrant in cells),
        source_urls=source_urls,
    )
