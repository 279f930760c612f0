"""
Pydantic models for per-run fill configuration.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class FillOptions(BaseModel):
    """
    Options recognized by the flood engine.

    Pixel size and NoData come from the input grid, not from here.

    Attributes
    ----------
    min_slope_degrees : float
        Minimum slope to preserve between a cell and the cell that
        discovered it [deg]; 0 disables slope preservation
    compute_flow : bool
        Whether to derive the flow direction grid
    flow_encoding : str
        Output code table for flow directions ('d8' or 'ldd')
    """

    model_config = ConfigDict(frozen=True)

    min_slope_degrees: float = Field(
        0.0,
        ge=0,
        lt=90,
        description="Minimum preserved slope [deg], 0 = plain fill",
    )
    compute_flow: bool = Field(
        False,
        description="Derive flow directions alongside the filled DEM",
    )
    flow_encoding: Literal["d8", "ldd"] = Field(
        "d8",
        description="Flow direction code table",
    )

    @property
    def preserve_slope(self) -> bool:
        return self.min_slope_degrees > 0
