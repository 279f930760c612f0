"""
Script to fill depressions in a DEM and optionally derive flow directions.

Reads a DEM (ASCII GRID, GeoTIFF, VRT or any GDAL-readable raster), fills
closed depressions with the Wang & Liu (2006) priority-flood algorithm and
writes the filled DEM as GeoTIFF with the input's georeferencing. With
--flow-output, a D8 (or LDD) flow direction raster is written as well.

Usage
-----
    spilldem --help
    python -m scripts.fill_dem ../data/nmt/dem.tif -o dem_filled.tif

Examples
--------
    # Plain fill
    spilldem dem.tif -o dem_filled.tif

    # Fill with 0.01 degree minimum slope and D8 flow directions
    spilldem dem.tif -o dem_filled.tif -s 0.01 -f dem_flowdir.tif

    # LDD flow codes, verbose logging
    spilldem dem.asc -o filled.tif -f ldd.tif --encoding ldd -v
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from pydantic import ValidationError
from rasterio.errors import RasterioError, RasterioIOError

from spilldem import __version__
from spilldem.config import get_settings
from spilldem.constants import FLOW_NODATA
from spilldem.flood import fill_depressions
from spilldem.options import FillOptions
from spilldem.raster_io import load_dem, save_raster_geotiff

logger = logging.getLogger(__name__)


class OutputWriteError(OSError):
    """Writing the filled DEM or the flow raster failed."""


def fill_dem(
    input_path: Path,
    output_path: Path,
    flow_output: Path | None = None,
    min_slope_degrees: float = 0.0,
    flow_encoding: str = "d8",
    compress: str = "lzw",
) -> dict:
    """
    Fill depressions in a DEM file and write the results.

    Parameters
    ----------
    input_path : Path
        Input raster
    output_path : Path
        Filled DEM GeoTIFF
    flow_output : Path, optional
        Flow direction GeoTIFF; flow directions are computed only if given
    min_slope_degrees : float
        Minimum preserved slope [deg], 0 = plain fill
    flow_encoding : str
        'd8' or 'ldd'
    compress : str
        GeoTIFF compression

    Returns
    -------
    dict
        Statistics from the flood run plus grid info

    Raises
    ------
    pydantic.ValidationError
        Invalid options (checked before the input is read)
    FileNotFoundError
        Input does not exist
    ValueError
        Input raster is empty or malformed
    OutputWriteError
        An output raster could not be written; no output is left behind
    """
    options = FillOptions(
        min_slope_degrees=min_slope_degrees,
        compute_flow=flow_output is not None,
        flow_encoding=flow_encoding,
    )

    dem, metadata = load_dem(input_path)
    nodata = metadata["nodata_value"]

    result = fill_depressions(
        dem,
        nodata=nodata,
        cellsize=(metadata["xres"], metadata["yres"]),
        options=options,
    )

    stats = dict(result.stats)
    stats["ncols"] = metadata["ncols"]
    stats["nrows"] = metadata["nrows"]
    stats["xres"] = metadata["xres"]
    stats["yres"] = metadata["yres"]

    # With a flow raster, the filled DEM is staged and renamed only after
    # both writes succeed, so a failed run leaves neither output behind.
    output_path = Path(output_path)
    staged = output_path
    flow_written = False
    if flow_output is not None:
        flow_output = Path(flow_output)
        staged = output_path.with_name(f".{output_path.name}.staged")

    try:
        save_raster_geotiff(
            result.filled,
            metadata,
            staged,
            nodata=nodata,
            dtype="float32",
            compress=compress,
        )
        if flow_output is not None:
            save_raster_geotiff(
                result.flow,
                metadata,
                flow_output,
                nodata=FLOW_NODATA,
                dtype="uint8",
                compress=compress,
            )
            flow_written = True
            os.replace(staged, output_path)
    except (OSError, RasterioError) as e:
        if staged != output_path:
            staged.unlink(missing_ok=True)
        if flow_written:
            flow_output.unlink(missing_ok=True)
        raise OutputWriteError(f"Cannot write output: {e}") from e

    return stats


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the fill script."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="spilldem",
        description="Fill depressions in a DEM (Wang & Liu priority-flood)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "datasource",
        type=str,
        help="Path to input DEM raster",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=settings.default_output,
        help=f"Output filled DEM GeoTIFF (default: {settings.default_output})",
    )
    parser.add_argument(
        "--flow-output",
        "-f",
        type=str,
        default=None,
        help="Output flow direction GeoTIFF (enables flow direction computation)",
    )
    parser.add_argument(
        "--min-slope",
        "-s",
        type=float,
        default=settings.min_slope_degrees,
        help=(
            "Minimum slope to preserve in degrees, 0 disables "
            f"(default: {settings.min_slope_degrees})"
        ),
    )
    parser.add_argument(
        "--encoding",
        choices=["d8", "ldd"],
        default=settings.flow_encoding,
        help=f"Flow direction encoding (default: {settings.flow_encoding})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Display debug messages",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level),
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    input_path = Path(args.datasource)
    output_path = Path(args.output)
    flow_output = Path(args.flow_output) if args.flow_output else None

    logger.info("=" * 60)
    logger.info("DEM Depression Filling")
    logger.info("=" * 60)
    logger.info(f"Input: {input_path}")
    logger.info(f"Output: {output_path}")
    if flow_output:
        logger.info(f"Flow output: {flow_output} ({args.encoding})")
    logger.info(f"Min slope: {args.min_slope}°")
    logger.info("=" * 60)

    start_time = time.time()

    try:
        stats = fill_dem(
            input_path,
            output_path,
            flow_output=flow_output,
            min_slope_degrees=args.min_slope,
            flow_encoding=args.encoding,
            compress=settings.compress,
        )
    except OutputWriteError as e:
        logger.error(str(e))
        raise
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except (ValueError, RasterioIOError) as e:
        logger.error(f"Invalid input raster: {e}")
        return 1
    except Exception as e:
        logger.error(f"Processing failed: {e}")
        raise

    elapsed = time.time() - start_time

    logger.info("=" * 60)
    logger.info("Processing complete!")
    logger.info(f"  Grid size: {stats['ncols']} x {stats['nrows']}")
    logger.info(f"  Pixel size: {stats['xres']} x {stats['yres']}")
    logger.info(f"  Total cells: {stats['total_cells']:,}")
    logger.info(f"  Valid cells: {stats['valid_cells']:,}")
    logger.info(f"  Edge seeds: {stats['seeded_cells']:,}")
    logger.info(f"  Raised cells: {stats['raised_cells']:,}")
    logger.info(f"  Max fill depth: {stats['max_fill_depth']:.3f}")
    if "flat_cells" in stats:
        logger.info(f"  Flat cells: {stats['flat_cells']:,}")
    logger.info(f"  Time elapsed: {elapsed:.1f}s")
    logger.info("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
