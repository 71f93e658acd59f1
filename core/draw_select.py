"""
Draw-select tool: drag a rectangle on the map to select the features under it.

States:
    IDLE → start() → ARMING → pointer_down → DRAGGING → pointer_up → FINALIZING

FINALIZING resolves immediately: a drag shorter than the minimum pixel span on
either axis goes back to ARMING without querying; otherwise the tool returns to
IDLE and the session runs the selection. Map panning is suspended while dragging
and restored on every way out, stop() included.
"""

from enum import Enum
from typing import Optional

from core.layer_processor import SelectionResult
from core.session import MapSession
from geometry.types import BoundingBox, GeoPoint
from utils.logger import get_logger

logger = get_logger(__name__)


class DrawState(Enum):
    IDLE = 'idle'
    ARMING = 'arming'
    DRAGGING = 'dragging'
    FINALIZING = 'finalizing'


class DrawSelect:
    def __init__(self, session: MapSession, min_drag_pixels: Optional[float] = None):
        self.session = session
        self.min_drag_pixels = (
            min_drag_pixels if min_drag_pixels is not None
            else session.interaction_settings['min_drag_pixels']
        )
        self.state = DrawState.IDLE
        self.anchor: Optional[GeoPoint] = None
        self.current: Optional[GeoPoint] = None
        self._prior_panning: Optional[bool] = None

    @property
    def is_active(self) -> bool:
        return self.state is not DrawState.IDLE

    def current_bbox(self) -> Optional[BoundingBox]:
        if self.anchor is None or self.current is None:
            return None
        return BoundingBox.from_corners(self.anchor, self.current)

    def _restore_panning(self) -> None:
        if self._prior_panning is not None:
            self.session.restore_panning(self._prior_panning)
            self._prior_panning = None

    def _discard(self) -> None:
        self.anchor = None
        self.current = None

    def start(self) -> None:
        if self.state is not DrawState.IDLE:
            self._restore_panning()
            self._discard()
        self.session.acquire_tool(self)
        self.state = DrawState.ARMING
        self.session.display.show_message("Click and drag on the map to select features")

    def pointer_down(self, point: GeoPoint) -> None:
        if self.state is not DrawState.ARMING:
            return
        self.anchor = point
        self.current = point
        self._prior_panning = self.session.suspend_panning()
        self.state = DrawState.DRAGGING

    def pointer_move(self, point: GeoPoint) -> Optional[BoundingBox]:
        """Update the drag; returns the rectangle to draw as the overlay."""
        if self.state is not DrawState.DRAGGING:
            return None
        self.current = point
        return self.current_bbox()

    def _pixel_span(self):
        ax, ay = self.session.map_view.project(self.anchor)
        bx, by = self.session.map_view.project(self.current)
        return abs(bx - ax), abs(by - ay)

    async def pointer_up(self, point: GeoPoint) -> Optional[SelectionResult]:
        """
        Finish the drag.

        Returns:
        --------
        Optional[SelectionResult]
            The selection, or None when the drag was too short (tool stays armed)
            or no drag was in progress
        """
        if self.state is not DrawState.DRAGGING:
            return None

        self.state = DrawState.FINALIZING
        self.current = point
        dx, dy = self._pixel_span()

        if dx < self.min_drag_pixels or dy < self.min_drag_pixels:
            logger.debug(f"Drag of {dx:.0f}x{dy:.0f}px below {self.min_drag_pixels}px, staying armed")
            self._restore_panning()
            self._discard()
            self.state = DrawState.ARMING
            return None

        bbox = self.current_bbox()
        self._restore_panning()
        self._discard()
        self.state = DrawState.IDLE
        self.session.release_tool(self)

        return await self.session.run_selection(bbox)

    def stop(self) -> None:
        self._restore_panning()
        self._discard()
        self.state = DrawState.IDLE
        self.session.release_tool(self)
