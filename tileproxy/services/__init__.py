"""Service utilities exposed by the ``tileproxy.services`` package."""

from .errors import (
    CompositionError,
    CropOutOfBoundsError,
    InvalidTileCoordinate,
    OutsideCoverageError,
    TileRequestError,
    UpstreamFetchError,
)
from .tiles import OutputTile, get_tile

__all__ = [
    "get_tile",
    "OutputTile",
    "TileRequestError",
    "InvalidTileCoordinate",
    "OutsideCoverageError",
    "UpstreamFetchError",
    "CompositionError",
    "CropOutOfBoundsError",
]
