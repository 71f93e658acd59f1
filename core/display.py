"""
Display collaborator for the map selection core.

The core never renders anything itself. Everything a user would see (the selected
features, progress of multi-layer loads, status messages and the highlighted
geometry) is pushed to a DisplaySink. A map UI implements the protocol; headless
runs use LoggingDisplay, which writes to the project log.

Classes:
    DisplaySink: Protocol the core emits to
    LoggingDisplay: Sink that logs everything it receives
"""

from typing import Optional, Protocol, Sequence

from geometry.types import Feature, Geometry
from utils.logger import get_logger

logger = get_logger(__name__)


class DisplaySink(Protocol):
    def show_features(self, features: Sequence[Feature]) -> None: ...

    def show_progress(self, percent: int) -> None: ...

    def show_message(self, message: str) -> None: ...

    def highlight(self, geometry: Optional[Geometry]) -> None: ...


class LoggingDisplay:
    """
    DisplaySink that reports to the log.

    Keeps the last features, progress value, message and highlight so a headless
    caller can inspect what a UI would have shown.
    """

    def __init__(self):
        self.features: Sequence[Feature] = ()
        self.progress: int = 0
        self.message: Optional[str] = None
        self.highlighted: Optional[Geometry] = None

    def show_features(self, features: Sequence[Feature]) -> None:
        self.features = features

        counts = {}
        for feature in features:
            counts[feature.layer_id] = counts.get(feature.layer_id, 0) + 1

        logger.info(f"Displaying {len(features)} features")
        for layer_id, count in counts.items():
            logger.info(f"  - {layer_id}: {count}")

    def show_progress(self, percent: int) -> None:
        self.progress = percent
        logger.debug(f"Progress: {percent}%")

    def show_message(self, message: str) -> None:
        self.message = message
        logger.info(message)

    def highlight(self, geometry: Optional[Geometry]) -> None:
        self.highlighted = geometry
        if geometry is None:
            logger.debug("Highlight cleared")
        else:
            logger.debug(f"Highlighting {geometry.geom_type}")
