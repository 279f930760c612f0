"""
Command-line scripts for SpillDEM.

This package contains:
- fill_dem: Fill depressions in a DEM and optionally write flow directions
"""
