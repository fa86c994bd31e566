from __future__ import annotations

import io
import logging
from typing import Dict, Mapping, Tuple

from PIL import Image, UnidentifiedImageError

from ..config import OUTPUT_TILE_SIZE
from .coverage import QUADRANT_ORDER, Quadrant
from .errors import CompositionError, CropOutOfBoundsError
from .geometry import BoundingBox, GridCellBounds

logger = logging.getLogger(__name__)

# Projected footprints are not perfectly square, so the crop window may drift
# past the composite edge by a fraction of a pixel. Anything beyond this is a bug.
CROP_TOLERANCE_PX = 1.0


def quadrant_offset(quadrant: Quadrant, cell_size: int) -> Tuple[int, int]:
    x = 0 if quadrant in (Quadrant.NW, Quadrant.SW) else cell_size
    y = 0 if quadrant in (Quadrant.NW, Quadrant.NE) else cell_size
    return x, y


def canvas_size(quadrants, cell_size: int) -> Tuple[int, int]:
    present = set(quadrants)
    width = cell_size * 2 if present & {Quadrant.NE, Quadrant.SE} else cell_size
    height = cell_size * 2 if present & {Quadrant.SW, Quadrant.SE} else cell_size
    return width, height


def compose(images: Mapping[Quadrant, bytes], cell_size: int) -> Image.Image:
    """Stitch fetched cells into one raster.

    Placement depends only on each image's quadrant, so the order of
    ``images`` does not matter.
    """

    if Quadrant.NW not in images:
        raise CompositionError("cannot compose without the nw cell")

    decoded: Dict[Quadrant, Image.Image] = {}
    for quadrant in QUADRANT_ORDER:
        if quadrant not in images:
            continue
        try:
            image = Image.open(io.BytesIO(images[quadrant]))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise CompositionError(f"{quadrant.value} cell could not be decoded: {exc}") from exc
        if image.size != (cell_size, cell_size):
            raise CompositionError(
                f"{quadrant.value} cell is {image.width}x{image.height}, "
                f"expected {cell_size}x{cell_size}"
            )
        decoded[quadrant] = image.convert("RGBA")

    canvas = Image.new("RGBA", canvas_size(decoded, cell_size), (0, 0, 0, 0))
    for quadrant, image in decoded.items():
        canvas.paste(image, quadrant_offset(quadrant, cell_size))
    return canvas


def crop_window(
    footprint: BoundingBox,
    nw_cell: GridCellBounds,
    resolution: float,
    cell_size: int,
) -> Tuple[float, float, float, float]:
    """Pixel rectangle of ``footprint`` inside a composite anchored at ``nw_cell``.

    Image rows run top to bottom while grid y grows northward, hence the flip
    against the bottom edge of the nw cell.
    """

    left = (footprint.west - nw_cell.xmin) / resolution
    top = cell_size - (footprint.north - nw_cell.ymin) / resolution
    extent = (footprint.east - nw_cell.xmin) / resolution - left
    return left, top, left + extent, top + extent


def crop_to_footprint(
    composite: Image.Image,
    footprint: BoundingBox,
    nw_cell: GridCellBounds,
    resolution: float,
    cell_size: int,
    output_size: int = OUTPUT_TILE_SIZE,
) -> Image.Image:
    """Cut ``footprint`` out of the composite and resample it to the output size."""

    left, top, right, bottom = crop_window(footprint, nw_cell, resolution, cell_size)
    width, height = composite.size

    if (
        left < -CROP_TOLERANCE_PX
        or top < -CROP_TOLERANCE_PX
        or right > width + CROP_TOLERANCE_PX
        or bottom > height + CROP_TOLERANCE_PX
        or right <= left
        or bottom <= top
    ):
        logger.error(
            "Geometry defect: crop window (%.2f, %.2f, %.2f, %.2f) falls outside the %dx%d composite",
            left,
            top,
            right,
            bottom,
            width,
            height,
        )
        raise CropOutOfBoundsError(
            f"crop window ({left:.2f}, {top:.2f}, {right:.2f}, {bottom:.2f}) "
            f"exceeds composite of {width}x{height}"
        )

    box = shift_inside((left, top, right, bottom), width, height)
    cropped = composite.resize((output_size, output_size), Image.LANCZOS, box=box)
    return cropped


def shift_inside(
    box: Tuple[float, float, float, float], width: int, height: int
) -> Tuple[float, float, float, float]:
    """Slide ``box`` back inside a ``width`` x ``height`` raster without resizing it."""

    left, top, right, bottom = box
    dx = -left if left < 0 else min(0.0, width - right)
    dy = -top if top < 0 else min(0.0, height - bottom)
    return left + dx, top + dy, right + dx, bottom + dy


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
