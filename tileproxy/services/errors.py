from __future__ import annotations


class TileRequestError(Exception):
    """Base class for every failure raised while rendering a tile."""


class InvalidTileCoordinate(TileRequestError):
    """Raised when x/y/zoom fall outside the web tile scheme."""


class OutsideCoverageError(TileRequestError):
    """Raised when a footprint leaves the upstream gridset extent."""


class UpstreamFetchError(TileRequestError):
    """Raised when a required source cell cannot be downloaded or decoded."""

    def __init__(self, quadrant: str, detail: str, *, url: str | None = None) -> None:
        self.quadrant = quadrant
        self.detail = detail
        self.url = url
        message = f"{quadrant} cell: {detail}"
        if url:
            message = f"{message} ({url})"
        super().__init__(message)


class CompositionError(TileRequestError):
    """Raised when fetched cells cannot be stitched into one raster."""


class CropOutOfBoundsError(TileRequestError):
    """Raised when the crop window leaves the composite raster.

    This always points at a geometry defect rather than an upstream problem.
    """
