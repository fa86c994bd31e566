from __future__ import annotations

import asyncio
import io
import logging
from typing import Dict, Mapping

import httpx
from PIL import Image, UnidentifiedImageError

from ..config import WMS_VERSION, GridConfig, ServiceSettings
from .coverage import QUADRANT_ORDER, Quadrant
from .errors import UpstreamFetchError
from .geometry import GridCellBounds

logger = logging.getLogger(__name__)


def wms_params(cell: GridCellBounds, *, layer: str, grid: GridConfig, image_format: str) -> Dict[str, str | int]:
    """GetMap query parameters addressing exactly one grid cell."""

    return {
        "SERVICE": "WMS",
        "REQUEST": "GetMap",
        "VERSION": WMS_VERSION,
        "FORMAT": image_format,
        "STYLES": "",
        "LAYERS": layer,
        "SRS": grid.srs,
        "WIDTH": grid.cell_size,
        "HEIGHT": grid.cell_size,
        "BBOX": cell.wms_bbox,
    }


async def fetch_cell(
    client: httpx.AsyncClient,
    quadrant: Quadrant,
    cell: GridCellBounds,
    *,
    layer: str,
    grid: GridConfig,
    settings: ServiceSettings,
) -> bytes:
    """Download one cell and make sure it decodes to a full-size image."""

    params = wms_params(cell, layer=layer, grid=grid, image_format=settings.image_format)
    request_url = str(httpx.URL(settings.wms_url, params=params))
    logger.debug("Fetching %s source cell %s", quadrant.value, request_url)

    try:
        response = await client.get(settings.wms_url, params=params)
    except httpx.RequestError as exc:
        logger.warning("WMS request for %s cell failed: %s", quadrant.value, exc)
        raise UpstreamFetchError(quadrant.value, str(exc) or type(exc).__name__, url=request_url) from exc

    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        detail = _short_error_detail(exc.response.text)
        logger.warning(
            "WMS request for %s cell failed with status %s: %s",
            quadrant.value,
            exc.response.status_code,
            detail,
        )
        raise UpstreamFetchError(
            quadrant.value, f"{exc.response.status_code} {detail}", url=request_url
        ) from exc

    if not _is_image_response(response):
        content_type = response.headers.get("Content-Type", "unknown")
        detail = _short_error_detail(response.text)
        logger.warning(
            "WMS request for %s cell returned non-image payload (%s): %s",
            quadrant.value,
            content_type,
            detail,
        )
        raise UpstreamFetchError(
            quadrant.value, f"unexpected payload ({content_type}): {detail}", url=request_url
        )

    content = response.content
    try:
        with Image.open(io.BytesIO(content)) as image:
            image.load()
            size = image.size
    except (UnidentifiedImageError, OSError) as exc:
        raise UpstreamFetchError(
            quadrant.value, f"unable to decode cell image: {exc}", url=request_url
        ) from exc

    expected = (grid.cell_size, grid.cell_size)
    if size != expected:
        raise UpstreamFetchError(
            quadrant.value,
            f"cell image is {size[0]}x{size[1]}, expected {expected[0]}x{expected[1]}",
            url=request_url,
        )
    return content


async def fetch_all(
    client: httpx.AsyncClient,
    cells: Mapping[Quadrant, GridCellBounds],
    *,
    layer: str,
    grid: GridConfig,
    settings: ServiceSettings,
) -> Dict[Quadrant, bytes]:
    """Fetch every planned cell concurrently.

    The first failure cancels the fetches still in flight and is re-raised;
    there is never a partial result.
    """

    tasks: Dict[Quadrant, asyncio.Task[bytes]] = {
        quadrant: asyncio.create_task(
            fetch_cell(client, quadrant, cells[quadrant], layer=layer, grid=grid, settings=settings)
        )
        for quadrant in QUADRANT_ORDER
        if quadrant in cells
    }

    try:
        done, pending = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
    except BaseException:
        await _cancel_all(tasks.values())
        raise

    if pending:
        await _cancel_all(pending)

    # Every finished task's exception is read so none is reported as never retrieved.
    failures = [
        task.exception()
        for task in tasks.values()
        if task in done and not task.cancelled() and task.exception() is not None
    ]
    if failures:
        raise failures[0]

    return {quadrant: task.result() for quadrant, task in tasks.items()}


async def _cancel_all(tasks) -> None:
    pending = [task for task in tasks if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
        logger.debug("Cancelled %d in-flight cell fetches", len(pending))


def _is_image_response(response: httpx.Response) -> bool:
    content_type = response.headers.get("Content-Type", "")
    return "image" in content_type.lower()


def _short_error_detail(detail: str) -> str:
    detail = detail.strip()
    if len(detail) > 160:
        return f"{detail[:157]}..."
    return detail or "(no detail)"
