"""
Raster I/O utilities for reading DEM files and writing fill results.

Supports ASCII GRID (.asc) through a plain-text parser and anything GDAL
can open (GeoTIFF, VRT, ...) through rasterio. Outputs are GeoTIFFs that
carry the georeferencing of the input.
"""

import logging
import os
import tempfile
from pathlib import Path

import numpy as np

from spilldem.constants import DEFAULT_NODATA

logger = logging.getLogger(__name__)

_ASCII_HEADER_KEYS = (
    "ncols",
    "nrows",
    "xllcorner",
    "yllcorner",
    "xllcenter",
    "yllcenter",
    "cellsize",
    "nodata_value",
)


def _check_shape(data: np.ndarray, filepath: Path) -> None:
    if data.ndim != 2 or data.size == 0:
        raise ValueError(f"Raster has zero area: {filepath} (shape {data.shape})")


def read_raster(filepath: Path) -> tuple[np.ndarray, dict]:
    """
    Read band 1 of a raster file (ASC, VRT or GeoTIFF) using rasterio.

    Parameters
    ----------
    filepath : Path
        Path to raster file

    Returns
    -------
    tuple
        (data array, metadata dict with ncols, nrows, xres, yres,
        cellsize, nodata_value, crs, transform, bounds, dtype)

    Raises
    ------
    FileNotFoundError
        If file does not exist
    ValueError
        If the raster has zero area
    """
    import rasterio

    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Raster file not found: {filepath}")

    logger.info(f"Reading raster: {filepath}")

    with rasterio.open(filepath) as src:
        if src.count > 1:
            logger.warning(f"{filepath} has {src.count} bands, only band 1 is used")
        data = src.read(1)

        metadata = {
            "ncols": src.width,
            "nrows": src.height,
            "xres": abs(src.transform.a),
            "yres": abs(src.transform.e),
            "cellsize": abs(src.transform.a),
            "nodata_value": src.nodata if src.nodata is not None else DEFAULT_NODATA,
            "crs": src.crs,
            "bounds": src.bounds,
            "transform": src.transform,
            "dtype": src.dtypes[0],
        }

    _check_shape(data, filepath)

    logger.info(f"Read raster: {metadata['nrows']}x{metadata['ncols']} cells")
    logger.info(f"Pixel size: {metadata['xres']} x {metadata['yres']}")
    logger.info(f"NoData: {metadata['nodata_value']}")

    return data, metadata


def read_ascii_grid(filepath: Path) -> tuple[np.ndarray, dict]:
    """
    Read ARC/INFO ASCII GRID file.

    Supports both corner (xllcorner/yllcorner) and center (xllcenter/yllcenter)
    coordinate formats. Center coordinates are converted to corner.

    Parameters
    ----------
    filepath : Path
        Path to .asc file

    Returns
    -------
    tuple
        (data array, metadata dict with ncols, nrows, xllcorner,
        yllcorner, cellsize, xres, yres, nodata_value)

    Raises
    ------
    FileNotFoundError
        If file does not exist
    ValueError
        If file format is invalid
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"DEM file not found: {filepath}")

    metadata = {}
    header_lines = 0

    with open(filepath) as f:
        for line in f:
            parts = line.split()
            if not parts:
                header_lines += 1
                continue
            key = parts[0].lower()
            if key not in _ASCII_HEADER_KEYS:
                break
            header_lines += 1
            if len(parts) < 2:
                raise ValueError(f"Header field without value: {key}")
            if key in ("ncols", "nrows"):
                metadata[key] = int(parts[1])
            else:
                metadata[key] = float(parts[1])

    if "xllcenter" in metadata and "xllcorner" not in metadata:
        metadata["xllcorner"] = metadata["xllcenter"] - metadata.get("cellsize", 0) / 2
        logger.info("Converted xllcenter to xllcorner")
    if "yllcenter" in metadata and "yllcorner" not in metadata:
        metadata["yllcorner"] = metadata["yllcenter"] - metadata.get("cellsize", 0) / 2
        logger.info("Converted yllcenter to yllcorner")

    required = ["ncols", "nrows", "xllcorner", "yllcorner", "cellsize"]
    for field in required:
        if field not in metadata:
            raise ValueError(f"Missing required header field: {field}")

    if metadata["ncols"] <= 0 or metadata["nrows"] <= 0:
        raise ValueError(
            f"Raster has zero area: {filepath} "
            f"({metadata['nrows']}x{metadata['ncols']})"
        )

    if "nodata_value" not in metadata:
        metadata["nodata_value"] = DEFAULT_NODATA
    metadata["xres"] = metadata["yres"] = metadata["cellsize"]
    metadata["crs"] = None
    metadata["dtype"] = "float32"

    data = np.loadtxt(filepath, skiprows=header_lines, dtype=np.float32, ndmin=2)

    if data.shape != (metadata["nrows"], metadata["ncols"]):
        raise ValueError(
            f"Data shape {data.shape} doesn't match header "
            f"({metadata['nrows']}, {metadata['ncols']})"
        )

    logger.info(f"Read DEM: {metadata['nrows']}x{metadata['ncols']} cells")
    logger.info(f"Origin: ({metadata['xllcorner']:.1f}, {metadata['yllcorner']:.1f})")
    logger.info(f"Cell size: {metadata['cellsize']}")

    return data, metadata


def load_dem(filepath: Path) -> tuple[np.ndarray, dict]:
    """
    Read a DEM, choosing the reader by file suffix.

    ``.asc`` files go through ``read_ascii_grid``; everything else is
    opened with rasterio.
    """
    filepath = Path(filepath)
    if filepath.suffix.lower() == ".asc":
        return read_ascii_grid(filepath)
    return read_raster(filepath)


def _resolve_transform(metadata: dict, nrows: int, ncols: int):
    from rasterio.transform import from_origin

    if metadata.get("transform") is not None:
        return metadata["transform"]

    xres = metadata.get("xres", metadata["cellsize"])
    yres = metadata.get("yres", metadata["cellsize"])
    xmin = metadata["xllcorner"]
    ymax = metadata["yllcorner"] + nrows * yres
    return from_origin(xmin, ymax, xres, yres)


def save_raster_geotiff(
    data: np.ndarray,
    metadata: dict,
    output_path: Path,
    nodata: float = DEFAULT_NODATA,
    dtype: str = "float32",
    compress: str = "lzw",
) -> None:
    """
    Save numpy array as GeoTIFF with the source CRS and transform.

    The file is written under a temporary name in the target directory
    and renamed into place only after a complete write; on failure the
    temporary file is removed and the error propagates.

    Parameters
    ----------
    data : np.ndarray
        Raster data array
    metadata : dict
        Grid metadata with transform (preferred) or xllcorner, yllcorner,
        cellsize; crs is optional
    output_path : Path
        Output GeoTIFF path
    nodata : float
        NoData value
    dtype : str
        Output data type ('float32', 'float64', 'int16', 'int32', 'uint8')
    compress : str
        GeoTIFF compression
    """
    import rasterio

    output_path = Path(output_path)
    nrows, ncols = data.shape
    transform = _resolve_transform(metadata, nrows, ncols)

    dtype_map = {
        "float32": (np.float32, rasterio.float32),
        "float64": (np.float64, rasterio.float64),
        "int32": (np.int32, rasterio.int32),
        "int16": (np.int16, rasterio.int16),
        "uint8": (np.uint8, rasterio.uint8),
    }
    if dtype not in dtype_map:
        raise ValueError(f"Unsupported output dtype: {dtype}")
    np_dtype, rio_dtype = dtype_map[dtype]

    out_data = data.astype(np_dtype)

    if output_path.parent and not output_path.parent.exists():
        output_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{output_path.stem}.", suffix=".partial", dir=output_path.parent
    )
    os.close(fd)
    tmp_path = Path(tmp_name)

    try:
        with rasterio.open(
            tmp_path,
            "w",
            driver="GTiff",
            height=nrows,
            width=ncols,
            count=1,
            dtype=rio_dtype,
            crs=metadata.get("crs"),
            transform=transform,
            nodata=nodata,
            compress=compress,
        ) as dst:
            dst.write(out_data, 1)
        os.replace(tmp_path, output_path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info(f"Saved: {output_path} ({output_path.stat().st_size / 1024:.1f} KB)")
