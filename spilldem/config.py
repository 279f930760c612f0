"""
Application configuration module.

Loads settings from environment variables (prefix ``SPILLDEM_``) with
sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from spilldem.constants import DEFAULT_OUTPUT


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes
    ----------
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR)
    default_output : str
        Filled DEM path used when the CLI gets no --output
    min_slope_degrees : float
        Default minimum preserved slope [deg]
    flow_encoding : str
        Default flow direction code table ('d8' or 'ldd')
    compress : str
        GeoTIFF compression for written rasters
    """

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    default_output: str = DEFAULT_OUTPUT
    min_slope_degrees: float = Field(0.0, ge=0, lt=90)
    flow_encoding: Literal["d8", "ldd"] = "d8"
    compress: str = "lzw"

    model_config = SettingsConfigDict(
        env_prefix="SPILLDEM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns
    -------
    Settings
        Application settings
    """
    return Settings()
