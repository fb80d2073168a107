from enum import Enum

# Side of a square tile (px)
TILE_SIZE = 256

# Channels of a tile buffer (RGBA)
TILE_CHANNELS = 4

# Zoom range of the Bing Maps tile system handled by the layer
MIN_ZOOM = 1
MAX_ZOOM = 19

# Latitude limit of Web Mercator (degrees)
MERCATOR_MAX_LAT_DEG = 85.05112878

# Longitude window
WORLD_LNG_HALF_SPAN_DEG = 180.0
WORLD_LNG_SPAN_DEG = 360.0

# Earth radius for Web Mercator (m)
EARTH_RADIUS_M = 6378137.0

# Default centroid (London), used when a call omits a coordinate
DEFAULT_CENTROID_LATITUDE = 51.5171
DEFAULT_CENTROID_LONGITUDE = 0.1062

# File extension of persisted tiles
TILE_FILE_SUFFIX = '.png'

# Colour of the radial heat-map gradient (RGB)
RADIAL_GRADIENT_COLOR = (0, 0, 0)

# Smallest pixel radius drawn by radial_circle when no minimum is given
RADIAL_MIN_DRAWN_PX = 1.0

# Size of the colourise lookup table (one entry per intensity level)
COLOURISE_LUT_SIZE = 256

# Heat-map ramp for colourise: intensity 0..1 -> RGB
HEATMAP_COLOR_RAMP = [
    (0.00, (0, 0, 255)),  # blue
    (0.25, (0, 255, 255)),  # cyan
    (0.50, (0, 255, 0)),  # green
    (0.75, (255, 255, 0)),  # yellow
    (1.00, (255, 0, 0)),  # red
]


class CombineMode(str, Enum):
    """Pixel compositing applied when a primitive is merged into a tile."""

    NONE = 'none'
    NORMAL = 'normal'
    MULTIPLY = 'multiply'
    ADD = 'add'
    SUBTRACT = 'subtract'
    DIFF = 'diff'
    LIGHTEN = 'lighten'
    DARKEN = 'darken'
    SCREEN = 'screen'


def default_combine_mode() -> CombineMode:
    return CombineMode.DARKEN


class FilterType(str, Enum):
    GAUSSIAN = 'gaussian'
    UNSHARPMASK = 'unsharpmask'
    CONTRAST = 'contrast'
    HARDINVERT = 'hardinvert'
