#!/usr/bin/env python
"""
Map Select
==========
Headless entry point for the map selection core: runs one rectangle selection over
the configured ODOT infrastructure layers and logs what a map UI would display.

A StaticMapView stands in for the browser map. It reports a fixed zoom and
projects coordinates to Web Mercator pixels so the draw-select tool sees the same
pixel spans it would on screen.
"""

import asyncio
import math
import time
from pathlib import Path
from typing import Optional, Tuple, Union

import httpx

from config.config_loader import load_config
from core.draw_select import DrawSelect
from core.layer_processor import SelectionResult
from core.session import MapSession
from geometry.types import BoundingBox, GeoPoint
from utils.logger import get_logger, setup_logging

TILE_SIZE = 256


class StaticMapView:
    """Map view with a fixed zoom and Web Mercator pixel projection."""

    def __init__(self, zoom: float):
        self._zoom = zoom
        self._dragging = True

    @property
    def zoom(self) -> float:
        return self._zoom

    def project(self, point: GeoPoint) -> Tuple[float, float]:
        scale = TILE_SIZE * 2 ** self._zoom
        lat = max(min(point.latitude, 85.05112878), -85.05112878)
        x = (point.longitude + 180.0) / 360.0 * scale
        sin_lat = math.sin(math.radians(lat))
        y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale
        return x, y

    def dragging_enabled(self) -> bool:
        return self._dragging

    def enable_dragging(self) -> None:
        self._dragging = True

    def disable_dragging(self) -> None:
        self._dragging = False


async def select_area(
    bbox: BoundingBox,
    zoom: float,
    config: dict,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Optional[SelectionResult]:
    """Drive the draw-select tool across `bbox` and return the selection."""
    async with httpx.AsyncClient(transport=transport) as client:
        session = MapSession.from_config(StaticMapView(zoom), config=config, client=client)

        tool = DrawSelect(session)
        tool.start()
        tool.pointer_down(GeoPoint(bbox.west, bbox.north))
        tool.pointer_move(GeoPoint(bbox.east, bbox.south))
        return await tool.pointer_up(GeoPoint(bbox.east, bbox.south))


def main(
    bbox: Tuple[float, float, float, float],
    zoom: float = 12.0,
    config_path: Optional[Union[str, Path]] = None,
    log_dir: Optional[Path] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Optional[SelectionResult]:
    """
    Main execution workflow for Map Select.

    Workflow Steps:
    1. Setup logging to console and file
    2. Load configuration
    3. Drag a rectangle over `bbox` with the draw-select tool
    4. Log the per-layer summary

    Parameters:
    -----------
    bbox : Tuple[float, float, float, float]
        (west, south, east, north) in degrees
    zoom : float
        Map zoom to select at (drives the query strategy and layer visibility)
    config_path : Optional[Union[str, Path]]
        Layer configuration (defaults to config/layers_config.json)
    log_dir : Optional[Path]
        Log directory (defaults to PROJECT_ROOT/logs)
    transport : Optional[httpx.AsyncBaseTransport]
        HTTP transport override

    Returns:
    --------
    Optional[SelectionResult]
        The selection, or None if the workflow failed or the drag was too small

    Example:
        >>> result = main((-83.0, 39.9, -82.9, 40.0), zoom=12)
        >>> print(f"Selected {result.feature_count} features")
    """
    workflow_start_time = time.time()

    log_file = setup_logging(log_dir)
    logger = get_logger(__name__)

    logger.info("=" * 80)
    logger.info("MAP SELECT - Infrastructure Feature Selection")
    logger.info("=" * 80)
    logger.info(f"Log file: {log_file}")
    logger.info("")

    try:
        config = load_config(config_path)
        logger.info(f"Configuration loaded: {len(config['layers'])} layers defined")
        logger.info("")

        selection_bbox = BoundingBox(*bbox).validate()
        result = asyncio.run(select_area(selection_bbox, zoom, config, transport))

        elapsed = time.time() - workflow_start_time
        logger.info("")
        if result is None:
            logger.warning("⚠ Selection too small, no query issued")
            return None

        for layer_id, features in result.features_by_layer().items():
            logger.info(f"  {layer_id}: {len(features)} features")
        logger.info(f"✓ SELECTION COMPLETE: {result.feature_count} features")
        logger.info(f"✓ Total execution time: {elapsed:.2f} seconds")
        logger.info(f"✓ Log file: {log_file}")
        logger.info("")

        return result

    except Exception as e:
        elapsed = time.time() - workflow_start_time

        logger.error("")
        logger.error("=" * 80)
        logger.error("✗ WORKFLOW FAILED")
        logger.error("=" * 80)
        logger.error(f"Error: {str(e)}", exc_info=True)
        logger.error(f"Workflow failed after {elapsed:.2f} seconds")
        logger.error(f"See log file for details: {log_file}")
        logger.error("=" * 80)
        return None


if __name__ == "__main__":
    # Downtown Columbus, Ohio
    result = main((-83.0, 39.9, -82.9, 40.0), zoom=12)

    if result is not None:
        print(f"\n✓ Selected {result.feature_count} features.")
    else:
        print("\n✗ Selection failed. Check log file for details.")
