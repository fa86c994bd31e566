import io

import pytest
from PIL import Image

from tileproxy.config import GridConfig


@pytest.fixture
def square_grid():
    # Power-of-two numbers keep every cell edge exactly representable.
    return GridConfig(
        name="test-grid",
        srs="EPSG:2263",
        proj="+proj=longlat +datum=WGS84 +no_defs",
        extent=(0.0, 0.0, 4096.0, 4096.0),
        resolutions=(4.0, 2.0, 1.0),
        cell_size=512,
    )


def png_bytes(size: int = 512, color=(120, 200, 150)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (size, size), color=color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def make_png():
    return png_bytes
