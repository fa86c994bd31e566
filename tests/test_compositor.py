import io

import pytest
from PIL import Image

from tileproxy.services.compositor import (
    compose,
    crop_to_footprint,
    crop_window,
    encode_png,
    shift_inside,
)
from tileproxy.services.coverage import Quadrant, plan
from tileproxy.services.errors import CompositionError, CropOutOfBoundsError
from tileproxy.services.geometry import BoundingBox

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)


def _close(pixel, color, tolerance=2):
    return all(abs(a - b) <= tolerance for a, b in zip(pixel[:3], color))


def test_single_cell_composite_is_the_fetched_cell(make_png):
    source = make_png(color=RED)
    composite = compose({Quadrant.NW: source}, 512)

    assert composite.size == (512, 512)
    with Image.open(io.BytesIO(source)) as original:
        assert composite.tobytes() == original.convert("RGBA").tobytes()


def test_ne_doubles_the_width_only(make_png):
    composite = compose({Quadrant.NW: make_png(color=RED), Quadrant.NE: make_png(color=GREEN)}, 512)

    assert composite.size == (1024, 512)
    assert composite.getpixel((10, 10))[:3] == RED
    assert composite.getpixel((600, 10))[:3] == GREEN


def test_sw_doubles_the_height_only(make_png):
    composite = compose({Quadrant.NW: make_png(color=RED), Quadrant.SW: make_png(color=BLUE)}, 512)

    assert composite.size == (512, 1024)
    assert composite.getpixel((10, 600))[:3] == BLUE


def test_four_cells_land_on_their_quadrant_offsets(make_png):
    composite = compose(
        {
            Quadrant.NW: make_png(color=RED),
            Quadrant.NE: make_png(color=GREEN),
            Quadrant.SW: make_png(color=BLUE),
            Quadrant.SE: make_png(color=WHITE),
        },
        512,
    )

    assert composite.size == (1024, 1024)
    assert composite.getpixel((0, 0))[:3] == RED
    assert composite.getpixel((512, 0))[:3] == GREEN
    assert composite.getpixel((0, 512))[:3] == BLUE
    assert composite.getpixel((1023, 1023))[:3] == WHITE


def test_composition_ignores_arrival_order(make_png):
    cells = {
        Quadrant.NW: make_png(color=RED),
        Quadrant.NE: make_png(color=GREEN),
        Quadrant.SW: make_png(color=BLUE),
        Quadrant.SE: make_png(color=WHITE),
    }
    reversed_cells = dict(reversed(list(cells.items())))

    assert compose(cells, 512).tobytes() == compose(reversed_cells, 512).tobytes()


def test_wrong_cell_size_is_a_composition_error(make_png):
    with pytest.raises(CompositionError):
        compose({Quadrant.NW: make_png(), Quadrant.NE: make_png(size=256)}, 512)


def test_missing_nw_is_a_composition_error(make_png):
    with pytest.raises(CompositionError):
        compose({Quadrant.NE: make_png()}, 512)


def test_undecodable_cell_is_a_composition_error():
    with pytest.raises(CompositionError):
        compose({Quadrant.NW: b"<ServiceException>nope</ServiceException>"}, 512)


def test_crop_window_flips_the_y_axis(square_grid):
    footprint = BoundingBox(100.0, 3700.0, 300.0, 3900.0, square_grid.srs)
    nw_cell = plan(footprint, 1.0, square_grid)[Quadrant.NW]

    assert crop_window(footprint, nw_cell, 1.0, 512) == (100.0, 196.0, 300.0, 396.0)


def test_crop_window_scales_with_resolution(square_grid):
    footprint = BoundingBox(400.0, 2400.0, 1200.0, 3200.0, square_grid.srs)
    nw_cell = plan(footprint, 2.0, square_grid)[Quadrant.NW]

    left, top, right, bottom = crop_window(footprint, nw_cell, 2.0, 512)
    assert (left, right) == (200.0, 600.0)
    assert top == pytest.approx(512 - (3200.0 - 3072.0) / 2.0)
    assert bottom - top == right - left


@pytest.mark.parametrize(
    "footprint",
    [
        (100.0, 3700.0, 300.0, 3900.0),
        (400.0, 3700.0, 600.0, 3900.0),
        (100.0, 3500.0, 300.0, 3700.0),
        (400.0, 3500.0, 600.0, 3700.0),
    ],
)
def test_output_is_always_256_square(square_grid, make_png, footprint):
    bbox = BoundingBox(*footprint, square_grid.srs)
    cells = plan(bbox, 1.0, square_grid)
    composite = compose({quadrant: make_png(color=GREEN) for quadrant in cells}, 512)

    tile = crop_to_footprint(composite, bbox, cells[Quadrant.NW], 1.0, 512)

    assert tile.size == (256, 256)
    assert _close(tile.getpixel((128, 128)), GREEN)


def test_crop_takes_pixels_from_the_footprint(square_grid, make_png):
    bbox = BoundingBox(400.0, 3700.0, 600.0, 3900.0, square_grid.srs)
    cells = plan(bbox, 1.0, square_grid)
    composite = compose({Quadrant.NW: make_png(color=RED), Quadrant.NE: make_png(color=BLUE)}, 512)

    tile = crop_to_footprint(composite, bbox, cells[Quadrant.NW], 1.0, 512)

    # Footprint spans x 400..600, so the edge between cells sits at 112/200 of the width.
    assert _close(tile.getpixel((10, 128)), RED)
    assert _close(tile.getpixel((250, 128)), BLUE)


def test_crop_outside_the_composite_is_rejected(square_grid, make_png):
    inside = BoundingBox(100.0, 3700.0, 300.0, 3900.0, square_grid.srs)
    nw_cell = plan(inside, 1.0, square_grid)[Quadrant.NW]
    composite = compose({Quadrant.NW: make_png()}, 512)
    too_far_east = BoundingBox(400.0, 3700.0, 600.0, 3900.0, square_grid.srs)

    with pytest.raises(CropOutOfBoundsError):
        crop_to_footprint(composite, too_far_east, nw_cell, 1.0, 512)


def test_sub_pixel_overshoot_keeps_the_window_square(square_grid, make_png):
    bbox = BoundingBox(312.5, 3584.0, 512.4, 3784.0, square_grid.srs)
    nw_cell = plan(BoundingBox(312.5, 3600.0, 500.0, 3784.0, square_grid.srs), 1.0, square_grid)[Quadrant.NW]
    composite = compose({Quadrant.NW: make_png()}, 512)

    tile = crop_to_footprint(composite, bbox, nw_cell, 1.0, 512)

    assert tile.size == (256, 256)
    left, top, right, bottom = shift_inside(crop_window(bbox, nw_cell, 1.0, 512), 512, 512)
    assert right == 512.0
    assert right - left == pytest.approx(bottom - top)


@pytest.mark.parametrize(
    "box, expected",
    [
        ((-0.5, 10.0, 199.5, 210.0), (0.0, 10.0, 200.0, 210.0)),
        ((312.6, 10.0, 512.6, 210.0), (312.0, 10.0, 512.0, 210.0)),
        ((10.0, -0.25, 210.0, 199.75), (10.0, 0.0, 210.0, 200.0)),
        ((10.0, 824.5, 210.0, 1024.5), (10.0, 824.0, 210.0, 1024.0)),
        ((5.0, 5.0, 205.0, 205.0), (5.0, 5.0, 205.0, 205.0)),
    ],
)
def test_shift_inside_moves_the_box_without_resizing(box, expected):
    shifted = shift_inside(box, 512, 1024)

    assert shifted == pytest.approx(expected)
    assert shifted[2] - shifted[0] == pytest.approx(box[2] - box[0])
    assert shifted[3] - shifted[1] == pytest.approx(box[3] - box[1])


def test_overshoot_shifts_rather_than_squeezes_the_crop(square_grid):
    # A horizontal gradient makes any change in the sampled window visible.
    composite = Image.linear_gradient("L").rotate(90, expand=True).resize((512, 512)).convert("RGBA")
    bbox = BoundingBox(256.8, 3584.0, 512.8, 3840.0, square_grid.srs)
    nw_cell = plan(BoundingBox(300.0, 3600.0, 500.0, 3800.0, square_grid.srs), 1.0, square_grid)[Quadrant.NW]

    tile = crop_to_footprint(composite, bbox, nw_cell, 1.0, 512)

    shifted = composite.resize((256, 256), Image.LANCZOS, box=(256.0, 256.0, 512.0, 512.0))
    clamped = composite.resize((256, 256), Image.LANCZOS, box=(256.8, 256.0, 512.0, 512.0))
    assert tile.tobytes() == shifted.tobytes()
    assert tile.tobytes() != clamped.tobytes()


def test_encode_png_round_trips_size(make_png):
    composite = compose({Quadrant.NW: make_png()}, 512)
    data = encode_png(composite)

    with Image.open(io.BytesIO(data)) as image:
        assert image.format == "PNG"
        assert image.size == (512, 512)
