"""Drawing operations understood by a level.

Every operation is described by a static Operation record combining three
strategies:

- project: geographic arguments -> Primitive in canvas pixels of a zoom
- bounds: Primitive -> inclusive canvas bounding box (strokes, radii and
  text extents included), used to find the tiles it touches
- paint: Primitive translated to tile-local pixels -> RGBA layer that is
  later composited into the tile

Geographic input is either ``points`` (a list of [lat, lon] pairs) or the
scalars ``x`` (longitude) and ``y`` (latitude); a missing scalar falls back
to the level centroid. Remaining keyword arguments are Pillow styling
(fill, outline, width, font, ...) and are handed to ImageDraw unchanged.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import numpy as np
from PIL import Image, ImageColor, ImageDraw

from geo.quadkey import latlons_to_pixels, meters_to_pixels
from imaging.gradient import radial_gradient_layer
from shared.constants import RADIAL_GRADIENT_COLOR, RADIAL_MIN_DRAWN_PX, TILE_SIZE

if TYPE_CHECKING:
    from domain.models import GeoPoint

BBox = tuple[int, int, int, int]

_REQUIRED = object()

# ImageDraw.textbbox() keywords that affect text extents
_TEXT_LAYOUT_KEYS = frozenset(
    {
        'font',
        'font_size',
        'spacing',
        'align',
        'direction',
        'features',
        'language',
        'stroke_width',
        'embedded_color',
    }
)

_HALIGN_ANCHOR = {'left': 'l', 'center': 'm', 'right': 'r'}
_VALIGN_ANCHOR = {'top': 'a', 'center': 'm', 'bottom': 'd', 'baseline': 's'}


@dataclass(frozen=True)
class Primitive:
    """One drawing call projected onto the canvas of a zoom level."""

    name: str
    points: tuple[tuple[float, float], ...]
    params: Mapping[str, Any] = field(default_factory=dict)
    style: Mapping[str, Any] = field(default_factory=dict)

    def translated(self, dx: float, dy: float) -> Primitive:
        return replace(self, points=tuple((x + dx, y + dy) for x, y in self.points))


@dataclass(frozen=True)
class Operation:
    """Static description of a drawing operation."""

    name: str
    bounds: Callable[[Primitive], BBox | None]
    paint: Callable[[np.ndarray, Primitive], np.ndarray | None]
    min_points: int = 1
    max_points: int | None = None
    # geometric parameters consumed before styling, with defaults
    params: Mapping[str, Any] = field(default_factory=dict)
    # False if leftover keyword arguments are an error
    pillow_style: bool = True
    resolve: Callable[[Primitive, int, GeoPoint], Primitive | None] | None = None

    def project(
        self,
        zoom: int,
        centroid: GeoPoint,
        args: Mapping[str, Any],
    ) -> Primitive | None:
        """
        Convert geographic arguments into a canvas-space Primitive.

        Returns None when the operation has nothing to draw at this zoom.

        Raises:
            ValueError: missing or malformed geometry or parameters

        """
        args = dict(args)
        points = args.pop('points', None)
        x = args.pop('x', None)
        y = args.pop('y', None)

        if points is None:
            if self.max_points != 1 and x is None and y is None:
                msg = f'{self.name}: points are required'
                raise ValueError(msg)
            lat = centroid.latitude if y is None else y
            lng = centroid.longitude if x is None else x
            points = [(lat, lng)]

        try:
            pixels = latlons_to_pixels(zoom, points)
        except (TypeError, ValueError) as e:
            msg = f'{self.name}: points must be [lat, lon] pairs'
            raise ValueError(msg) from e

        if len(pixels) < self.min_points or (
            self.max_points is not None and len(pixels) > self.max_points
        ):
            expected = (
                str(self.min_points)
                if self.max_points == self.min_points
                else f'at least {self.min_points}'
                if self.max_points is None
                else f'{self.min_points}..{self.max_points}'
            )
            msg = f'{self.name}: expected {expected} points, got {len(pixels)}'
            raise ValueError(msg)

        params = {}
        for name, default in self.params.items():
            value = args.pop(name, default)
            if value is _REQUIRED:
                msg = f'{self.name}: missing required argument {name!r}'
                raise ValueError(msg)
            params[name] = value

        if args and not self.pillow_style:
            msg = f'{self.name}: unexpected arguments {sorted(args)}'
            raise ValueError(msg)

        primitive = Primitive(self.name, tuple(pixels), params, args)
        if self.resolve is not None:
            return self.resolve(primitive, zoom, centroid)
        return primitive


def _stroke_margin(style: Mapping[str, Any]) -> int:
    width = style.get('width') or 1
    return int(math.ceil(width / 2)) + 1


def _points_bounds(prim: Primitive) -> BBox:
    xs = [p[0] for p in prim.points]
    ys = [p[1] for p in prim.points]
    m = _stroke_margin(prim.style)
    return (
        int(math.floor(min(xs))) - m,
        int(math.floor(min(ys))) - m,
        int(math.ceil(max(xs))) + m,
        int(math.ceil(max(ys))) + m,
    )


def _circle_bounds(prim: Primitive) -> BBox | None:
    r = float(prim.params['r'])
    if r < 0:
        msg = f'{prim.name}: radius must be non-negative, got {r}'
        raise ValueError(msg)
    x, y = prim.points[0]
    m = int(math.ceil(r)) + _stroke_margin(prim.style)
    return (int(x) - m, int(y) - m, int(x) + m, int(y) + m)


def _seed_bounds(prim: Primitive) -> BBox:
    x, y = prim.points[0]
    return (int(x), int(y), int(x), int(y))


def text_anchor(prim: Primitive) -> str:
    if prim.name == 'string':
        return 'ls'
    halign = prim.params['halign']
    valign = prim.params['valign']
    try:
        return _HALIGN_ANCHOR[halign] + _VALIGN_ANCHOR[valign]
    except KeyError:
        msg = f'{prim.name}: unsupported alignment halign={halign!r} valign={valign!r}'
        raise ValueError(msg) from None


def _text_bounds(prim: Primitive) -> BBox:
    layout = {k: v for k, v in prim.style.items() if k in _TEXT_LAYOUT_KEYS}
    scratch = ImageDraw.Draw(Image.new('RGBA', (1, 1)))
    left, top, right, bottom = scratch.textbbox(
        prim.points[0],
        str(prim.params['text']),
        anchor=text_anchor(prim),
        **layout,
    )
    return (
        int(math.floor(left)) - 1,
        int(math.floor(top)) - 1,
        int(math.ceil(right)) + 1,
        int(math.ceil(bottom)) + 1,
    )


def _new_layer() -> Image.Image:
    return Image.new('RGBA', (TILE_SIZE, TILE_SIZE), (0, 0, 0, 0))


def _pillow_paint(
    draw_fn: Callable[[ImageDraw.ImageDraw, Primitive], None],
) -> Callable[[np.ndarray, Primitive], np.ndarray]:
    def paint(base: np.ndarray, prim: Primitive) -> np.ndarray:
        layer = _new_layer()
        draw_fn(ImageDraw.Draw(layer), prim)
        return np.array(layer, dtype=np.uint8)

    return paint


def _draw_setpixel(draw: ImageDraw.ImageDraw, prim: Primitive) -> None:
    draw.point(list(prim.points), **prim.style)


def _draw_line(draw: ImageDraw.ImageDraw, prim: Primitive) -> None:
    draw.line(list(prim.points), **prim.style)


def _draw_polygon(draw: ImageDraw.ImageDraw, prim: Primitive) -> None:
    draw.polygon(list(prim.points), **prim.style)


def _draw_box(draw: ImageDraw.ImageDraw, prim: Primitive) -> None:
    (x0, y0), (x1, y1) = prim.points
    draw.rectangle(
        [min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)],
        **prim.style,
    )


def _circle_box(prim: Primitive) -> list[float]:
    x, y = prim.points[0]
    r = float(prim.params['r'])
    return [x - r, y - r, x + r, y + r]


def _draw_circle(draw: ImageDraw.ImageDraw, prim: Primitive) -> None:
    draw.ellipse(_circle_box(prim), **prim.style)


def _draw_arc(draw: ImageDraw.ImageDraw, prim: Primitive) -> None:
    start = prim.params['start']
    end = prim.params['end']
    if prim.params['filled']:
        draw.pieslice(_circle_box(prim), start, end, **prim.style)
    else:
        draw.arc(_circle_box(prim), start, end, **prim.style)


def _draw_text(draw: ImageDraw.ImageDraw, prim: Primitive) -> None:
    draw.text(
        prim.points[0],
        str(prim.params['text']),
        anchor=text_anchor(prim),
        **prim.style,
    )


def _rgba(color: Any) -> tuple[int, int, int, int]:
    if isinstance(color, str):
        return ImageColor.getcolor(color, 'RGBA')
    values = tuple(int(c) for c in color)
    if len(values) == 3:
        return (*values, 255)
    if len(values) == 4:
        return values
    msg = f'Colour must be a name or an RGB(A) tuple, got {color!r}'
    raise ValueError(msg)


def _paint_flood_fill(base: np.ndarray, prim: Primitive) -> np.ndarray | None:
    """Fill the region around the seed; the fill stops at the tile border."""
    x, y = (int(v) for v in prim.points[0])
    if not (0 <= x < TILE_SIZE and 0 <= y < TILE_SIZE):
        return None

    fill = _rgba(prim.params['fill'])
    border = prim.params['border']
    # fromarray shares the numpy buffer read-only; floodfill needs a writable copy
    filled = Image.fromarray(base).copy()
    ImageDraw.floodfill(
        filled,
        (x, y),
        fill,
        border=_rgba(border) if border is not None else None,
        thresh=prim.params['thresh'],
    )
    changed = np.any(np.array(filled) != base, axis=-1)

    layer = np.zeros_like(base)
    layer[changed] = fill
    return layer


def _resolve_radial(prim: Primitive, zoom: int, centroid: GeoPoint) -> Primitive | None:
    """Convert the radius from metres to pixels of this zoom."""
    r_px = meters_to_pixels(float(prim.params['r']), centroid.latitude, zoom)
    min_r = prim.params['min_r']
    if min_r is not None:
        r_px = max(r_px, float(min_r))
    elif r_px < RADIAL_MIN_DRAWN_PX:
        return None
    if r_px <= 0:
        return None
    return replace(prim, params={**prim.params, 'r': r_px})


def _paint_radial(base: np.ndarray, prim: Primitive) -> np.ndarray:
    color = prim.params['color']
    return radial_gradient_layer(
        prim.points[0],
        float(prim.params['r']),
        tuple(_rgba(color)[:3]),
    )


OPERATIONS: dict[str, Operation] = {
    op.name: op
    for op in (
        Operation('setpixel', _points_bounds, _pillow_paint(_draw_setpixel)),
        Operation(
            'line', _points_bounds, _pillow_paint(_draw_line), min_points=2, max_points=2
        ),
        Operation(
            'box', _points_bounds, _pillow_paint(_draw_box), min_points=2, max_points=2
        ),
        Operation('polyline', _points_bounds, _pillow_paint(_draw_line), min_points=2),
        Operation('polygon', _points_bounds, _pillow_paint(_draw_polygon), min_points=3),
        Operation(
            'arc',
            _circle_bounds,
            _pillow_paint(_draw_arc),
            max_points=1,
            params={'r': _REQUIRED, 'start': 0, 'end': 360, 'filled': True},
        ),
        Operation(
            'circle',
            _circle_bounds,
            _pillow_paint(_draw_circle),
            max_points=1,
            params={'r': _REQUIRED},
        ),
        Operation(
            'flood_fill',
            _seed_bounds,
            _paint_flood_fill,
            max_points=1,
            params={'fill': _REQUIRED, 'border': None, 'thresh': 0},
            pillow_style=False,
        ),
        Operation(
            'string',
            _text_bounds,
            _pillow_paint(_draw_text),
            max_points=1,
            params={'text': _REQUIRED},
        ),
        Operation(
            'align_string',
            _text_bounds,
            _pillow_paint(_draw_text),
            max_points=1,
            params={'text': _REQUIRED, 'halign': 'left', 'valign': 'baseline'},
        ),
        Operation(
            'radial_circle',
            _circle_bounds,
            _paint_radial,
            max_points=1,
            params={'r': _REQUIRED, 'min_r': None, 'color': RADIAL_GRADIENT_COLOR},
            pillow_style=False,
            resolve=_resolve_radial,
        ),
    )
}

DRAWING_OPERATIONS = tuple(OPERATIONS)


def get_operation(name: str) -> Operation:
    try:
        return OPERATIONS[name]
    except KeyError:
        msg = f'Unknown drawing operation {name!r} (expected one of: {", ".join(OPERATIONS)})'
        raise ValueError(msg) from None
