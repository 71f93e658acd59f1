"""
Line and area measurement tool.

States:
    IDLE → start_measuring(mode) → COLLECTING → double_click() → FINALIZED

Every click while collecting appends a vertex and pushes the running reading to
the display. A double-click finalizes when there are enough vertices (2 for a
line, 3 for an area) and otherwise only reports what is missing. Browsers deliver
click, click, dblclick: the second click's duplicate vertex is dropped on
finalize, and clicks arriving within a short guard window afterwards are ignored.

Classes:
    MeasureMode, MeasureState: Enums
    MeasurementReading: Computed distance/area for a vertex list
    MeasurementEngine: The tool
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from core.session import MapSession
from geometry.measure import (
    meters_to_miles_feet,
    path_length_meters,
    polygon_area_sq_meters,
    sq_meters_to_acres_sq_miles
)
from geometry.types import GeoPoint, Geometry, LineString, Point, Polygon, ring_of
from utils.logger import get_logger

logger = get_logger(__name__)


class MeasureMode(Enum):
    LINE = 'line'
    AREA = 'area'

    @property
    def min_vertices(self) -> int:
        return 2 if self is MeasureMode.LINE else 3


class MeasureState(Enum):
    IDLE = 'idle'
    COLLECTING = 'collecting'
    FINALIZED = 'finalized'


@dataclass(frozen=True)
class MeasurementReading:
    mode: MeasureMode
    vertex_count: int
    meters: float = 0.0
    miles: float = 0.0
    feet: float = 0.0
    sq_meters: float = 0.0
    acres: float = 0.0
    sq_miles: float = 0.0

    @classmethod
    def compute(cls, mode: MeasureMode, vertices: Sequence[GeoPoint]) -> 'MeasurementReading':
        """Pure recomputation from a vertex list."""
        count = len(vertices)
        if mode is MeasureMode.LINE:
            meters = path_length_meters(vertices)
            miles, feet = meters_to_miles_feet(meters)
            return cls(mode, count, meters=meters, miles=miles, feet=feet)

        sq_meters = polygon_area_sq_meters(vertices)
        acres, sq_miles = sq_meters_to_acres_sq_miles(sq_meters)
        return cls(mode, count, sq_meters=sq_meters, acres=acres, sq_miles=sq_miles)

    @property
    def has_value(self) -> bool:
        return self.vertex_count >= self.mode.min_vertices

    def summary(self) -> str:
        if self.mode is MeasureMode.LINE:
            return f"{self.miles:.3f} miles ({self.feet:,.0f} feet) - {self.vertex_count} points"
        return f"{self.acres:.2f} acres ({self.sq_miles:.6f} sq miles) - {self.vertex_count} points"

    def running_message(self) -> str:
        label = 'Line' if self.mode is MeasureMode.LINE else 'Area'
        if self.has_value:
            return f"{label}: {self.summary()} - Double-click to finish"
        if self.mode is MeasureMode.AREA and self.vertex_count == 2:
            return "Area Measure: Need at least 3 points for area calculation"
        return f"{label} Measure: Click to add more vertices, double-click to finish"

    def final_message(self) -> str:
        label = 'LINE' if self.mode is MeasureMode.LINE else 'AREA'
        return f"{label} MEASUREMENT COMPLETE: {self.summary()}"


class MeasurementEngine:
    """
    Measurement tool bound to a session.

    Parameters:
    -----------
    session : MapSession
        Provides the display and the exclusive tool slot
    guard_seconds : Optional[float]
        Window after a double-click during which clicks are ignored
        (default from interaction settings, 0.1 s)
    clock : Callable[[], float]
        Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        session: MapSession,
        guard_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.session = session
        self.guard_seconds = (
            guard_seconds if guard_seconds is not None
            else session.interaction_settings['double_click_guard_seconds']
        )
        self._clock = clock
        self._guard_until = 0.0

        self.state = MeasureState.IDLE
        self.mode: Optional[MeasureMode] = None
        self.vertices: List[GeoPoint] = []

    @property
    def is_active(self) -> bool:
        return self.state is MeasureState.COLLECTING

    def reading(self) -> Optional[MeasurementReading]:
        if self.mode is None:
            return None
        return MeasurementReading.compute(self.mode, self.vertices)

    def geometry(self) -> Optional[Geometry]:
        """Overlay geometry for the current vertices."""
        if not self.vertices:
            return None
        if len(self.vertices) == 1:
            return Point(self.vertices[0])
        if self.mode is MeasureMode.AREA and len(self.vertices) >= 3:
            return Polygon((ring_of(self.vertices),))
        return LineString(tuple(self.vertices))

    def start_measuring(self, mode: MeasureMode) -> None:
        self.session.acquire_tool(self)
        self.mode = mode
        self.vertices = []
        self._guard_until = 0.0
        self.state = MeasureState.COLLECTING
        self.session.display.highlight(None)

        label = 'Line' if mode is MeasureMode.LINE else 'Area'
        self.session.display.show_message(
            f"{label} Measure: Click to add vertices, double-click to finish"
        )
        logger.debug(f"Measurement started ({mode.value})")

    def click(self, point: GeoPoint) -> Optional[MeasurementReading]:
        """Add a vertex; returns the running reading, or None if the click was ignored."""
        if self.state is not MeasureState.COLLECTING:
            return None
        if self._clock() < self._guard_until:
            logger.debug("Click ignored inside double-click guard")
            return None

        self.vertices.append(point)
        reading = self.reading()
        self.session.display.highlight(self.geometry())
        self.session.display.show_message(reading.running_message())
        return reading

    def double_click(self) -> Optional[MeasurementReading]:
        """
        Finish the measurement.

        Returns:
        --------
        Optional[MeasurementReading]
            The final reading, or None if not collecting or too few vertices
            (the tool then keeps collecting)
        """
        if self.state is not MeasureState.COLLECTING:
            return None

        self._guard_until = self._clock() + self.guard_seconds

        if len(self.vertices) >= 2 and self.vertices[-1] == self.vertices[-2]:
            self.vertices.pop()

        reading = self.reading()
        if not reading.has_value:
            label = 'Line' if self.mode is MeasureMode.LINE else 'Area'
            self.session.display.show_message(
                f"✗ {label} measurement requires at least {self.mode.min_vertices} points"
            )
            return None

        self.state = MeasureState.FINALIZED
        self.session.release_tool(self)
        self.session.display.highlight(self.geometry())
        self.session.display.show_message(reading.final_message())
        logger.debug(f"Measurement finished: {reading.summary()}")
        return reading

    def clear_measurements(self) -> None:
        self.vertices = []
        self.mode = None
        self.state = MeasureState.IDLE
        self.session.release_tool(self)
        self.session.display.highlight(None)
        self.session.display.show_message("Measurements cleared")

    def stop_measuring(self) -> None:
        if self.state is not MeasureState.COLLECTING:
            return
        self.vertices = []
        self.state = MeasureState.IDLE
        self.session.release_tool(self)
        self.session.display.highlight(None)

    def stop(self) -> None:
        self.stop_measuring()
