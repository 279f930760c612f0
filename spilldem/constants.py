"""
Project-wide constants.

Centralizes flow direction codes, sentinels and defaults used across
modules.
"""

# Flow direction sentinels (shared by all encodings)
FLOW_FLAT = 0
FLOW_NODATA = 255

# Internal "no direction" marker for direction-index buffers
NO_DIRECTION = -1

# Direction names in the fixed angular order used everywhere
DIRECTION_NAMES = ("E", "SE", "S", "SW", "W", "NW", "N", "NE")

# D8 encoding (standard D8, compatible with pyflwdir/pysheds/ArcGIS)
D8_CODES = (1, 2, 4, 8, 16, 32, 64, 128)

# LDD encoding (PCRaster keypad layout)
LDD_CODES = (6, 3, 2, 1, 4, 7, 8, 9)

FLOW_ENCODINGS = {
    "d8": D8_CODES,
    "ldd": LDD_CODES,
}

# Raster defaults
DEFAULT_NODATA = -9999.0
DEFAULT_OUTPUT = "out.tif"
