from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Tuple

from ..config import GridConfig
from .geometry import BoundingBox, GridCellBounds, cell_bounds

logger = logging.getLogger(__name__)


class Quadrant(str, Enum):
    """Position of a source cell relative to the requested footprint."""

    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"


# Paste order when compositing; also the order fetches are launched in.
QUADRANT_ORDER: Tuple[Quadrant, ...] = (Quadrant.NW, Quadrant.NE, Quadrant.SW, Quadrant.SE)

CoveragePlan = Dict[Quadrant, GridCellBounds]


def plan(footprint: BoundingBox, resolution: float, grid: GridConfig) -> CoveragePlan:
    """Return the 1, 2 or 4 grid cells needed to cover ``footprint``.

    ``se`` is only added when both ``ne`` and ``sw`` are needed. On a regular
    grid with footprints smaller than one cell a tile cannot need the
    south-east cell on its own, and the planner relies on that rather than
    testing the south-east corner separately.
    """

    if footprint.crs != grid.srs:
        raise ValueError(f"footprint must be in {grid.srs}, got {footprint.crs}")

    nw = cell_bounds(footprint.west, footprint.north, resolution, grid)
    cells: CoveragePlan = {Quadrant.NW: nw}

    ne = cell_bounds(footprint.east, footprint.north, resolution, grid)
    if ne.key != nw.key:
        cells[Quadrant.NE] = ne

    sw = cell_bounds(footprint.west, footprint.south, resolution, grid)
    if sw.key != nw.key:
        cells[Quadrant.SW] = sw

    if Quadrant.NE in cells and Quadrant.SW in cells:
        cells[Quadrant.SE] = cell_bounds(footprint.east, footprint.south, resolution, grid)

    logger.debug(
        "Footprint %.2f,%.2f,%.2f,%.2f at %.6f ft/px needs cells %s",
        footprint.west,
        footprint.south,
        footprint.east,
        footprint.north,
        resolution,
        ", ".join(quadrant.value for quadrant in cells),
    )
    return cells


def covered_bounds(cells: CoveragePlan, crs: str) -> BoundingBox:
    """Union of the planned cells as one box."""

    return BoundingBox(
        west=min(cell.xmin for cell in cells.values()),
        south=min(cell.ymin for cell in cells.values()),
        east=max(cell.xmax for cell in cells.values()),
        north=max(cell.ymax for cell in cells.values()),
        crs=crs,
    )
