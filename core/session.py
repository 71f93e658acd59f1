"""
Map session: the one object that owns everything the interactive tools share.

A MapSession holds the map view, the configured layers and their enabled flags, the
query orchestrator, the field catalog, the display sink and the active-tool slot.
It is passed explicitly to DrawSelect and MeasurementEngine; nothing is reached
through module globals.

Classes:
    MapView: Protocol for the host map (zoom, projection, panning)
    MapSession: Session object
"""

from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from config.config_loader import (
    INTERACTION_SETTING_DEFAULTS,
    LayerDescriptor,
    load_config,
    load_interaction_settings,
    load_layer_descriptors,
    load_query_settings
)
from core.arcgis_query import ArcGISFeatureLayer
from core.display import DisplaySink, LoggingDisplay
from core.field_catalog import FieldCatalog
from core.layer_processor import FeatureLayer, SelectionResult, SpatialQueryOrchestrator
from geometry.types import BoundingBox, Feature, GeoPoint
from utils.logger import get_logger

logger = get_logger(__name__)


class MapView(Protocol):
    @property
    def zoom(self) -> float: ...

    def project(self, point: GeoPoint) -> Tuple[float, float]: ...

    def dragging_enabled(self) -> bool: ...

    def enable_dragging(self) -> None: ...

    def disable_dragging(self) -> None: ...


class MapSession:
    """
    Shared state for one map.

    Parameters:
    -----------
    map_view : MapView
        Host map
    layers : Sequence[FeatureLayer]
        Queryable layers, in display order
    descriptors : Optional[Sequence[LayerDescriptor]]
        Configuration for the layers (enabled flag, zoom visibility threshold).
        A layer without a descriptor is enabled and visible at every zoom.
    orchestrator : Optional[SpatialQueryOrchestrator]
        Defaults to one with default settings
    display : Optional[DisplaySink]
        Defaults to LoggingDisplay
    interaction_settings : Optional[Dict]
        min_drag_pixels / double_click_guard_seconds
    """

    def __init__(
        self,
        map_view: MapView,
        layers: Sequence[FeatureLayer],
        descriptors: Optional[Sequence[LayerDescriptor]] = None,
        orchestrator: Optional[SpatialQueryOrchestrator] = None,
        display: Optional[DisplaySink] = None,
        interaction_settings: Optional[Dict] = None
    ):
        self.map_view = map_view
        self.layers: List[FeatureLayer] = list(layers)
        self.descriptors: Dict[str, LayerDescriptor] = {d.id: d for d in (descriptors or [])}
        self.orchestrator = orchestrator or SpatialQueryOrchestrator()
        self.display = display or LoggingDisplay()
        self.interaction_settings = {**INTERACTION_SETTING_DEFAULTS, **(interaction_settings or {})}
        self.field_catalog = FieldCatalog(self.layers)

        self._enabled: Dict[str, bool] = {
            layer.id: self.descriptors[layer.id].enabled if layer.id in self.descriptors else True
            for layer in self.layers
        }
        self.active_tool = None
        self.current_selection: Optional[SelectionResult] = None

    @classmethod
    def from_config(
        cls,
        map_view: MapView,
        config: Optional[Dict] = None,
        display: Optional[DisplaySink] = None,
        client: Optional[httpx.AsyncClient] = None
    ) -> 'MapSession':
        """Build a session with one ArcGISFeatureLayer per configured layer."""
        if config is None:
            config = load_config()

        descriptors = load_layer_descriptors(config)
        settings = load_query_settings(config)
        layers = [
            ArcGISFeatureLayer(
                descriptor,
                client=client,
                timeout=settings['primary_timeout'],
                count_timeout=settings['count_timeout']
            )
            for descriptor in descriptors
        ]

        logger.info(f"Session created with {len(layers)} layers")
        return cls(
            map_view,
            layers,
            descriptors=descriptors,
            orchestrator=SpatialQueryOrchestrator(settings),
            display=display,
            interaction_settings=load_interaction_settings(config)
        )

    # Layers

    def layer(self, layer_id: str) -> FeatureLayer:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        raise KeyError(f"Unknown layer: {layer_id}")

    def is_enabled(self, layer_id: str) -> bool:
        return self._enabled.get(layer_id, False)

    def set_layer_enabled(self, layer_id: str, enabled: bool) -> None:
        self.layer(layer_id)
        self._enabled[layer_id] = enabled
        logger.info(f"Layer {layer_id} {'enabled' if enabled else 'disabled'}")

    def is_visible(self, layer_id: str, zoom: float) -> bool:
        descriptor = self.descriptors.get(layer_id)
        return descriptor is None or descriptor.visible_at(zoom)

    def active_layers(self, zoom: Optional[float] = None) -> List[FeatureLayer]:
        """Enabled layers visible at `zoom` (the map's current zoom by default)."""
        if zoom is None:
            zoom = self.map_view.zoom
        return [
            layer for layer in self.layers
            if self.is_enabled(layer.id) and self.is_visible(layer.id, zoom)
        ]

    # Tools

    def acquire_tool(self, tool) -> None:
        """Make `tool` the active tool, stopping whichever tool held the slot."""
        current = self.active_tool
        if current is not None and current is not tool:
            self.active_tool = None
            logger.debug(f"Stopping {type(current).__name__} for {type(tool).__name__}")
            current.stop()
        self.active_tool = tool

    def release_tool(self, tool) -> None:
        if self.active_tool is tool:
            self.active_tool = None

    def suspend_panning(self) -> bool:
        """Disable map panning; returns the prior state for restore_panning()."""
        prior = self.map_view.dragging_enabled()
        self.map_view.disable_dragging()
        return prior

    def restore_panning(self, prior: bool) -> None:
        if prior:
            self.map_view.enable_dragging()
        else:
            self.map_view.disable_dragging()

    # Selection

    def _show_selection(self, result: SelectionResult) -> None:
        self.current_selection = result
        self.display.show_features(result.features)

        layer_count = len(result.features_by_layer())
        message = f"Found {result.feature_count} features in {layer_count} layer(s)"
        if result.has_more:
            message += " - more available"
        if result.warnings:
            message += f" ({len(result.warnings)} layer(s) failed: {'; '.join(result.warnings)})"
        self.display.show_message(message)

    async def run_selection(self, bbox: BoundingBox) -> SelectionResult:
        """
        Select features in `bbox` across the active layers and display them.

        A result overtaken by a newer selection is returned but not displayed.

        Raises:
        -------
        InvalidBoundingBoxError
            If `bbox` is malformed
        """
        zoom = self.map_view.zoom
        layers = self.active_layers(zoom)
        if not layers:
            self.display.show_message(f"No layers are enabled and visible at zoom {zoom}")

        result = await self.orchestrator.select(bbox, layers, zoom, progress=self.display.show_progress)

        if result.stale:
            logger.info(f"Discarding stale selection #{result.generation}")
            return result

        self._show_selection(result)
        return result

    async def load_more(self) -> Optional[SelectionResult]:
        """Fetch the next page for the current selection and display the merged set."""
        if self.current_selection is None:
            self.display.show_message("No selection to load more features for")
            return None

        if not self.current_selection.has_more:
            self.display.show_message("All features already loaded")
            return self.current_selection

        result = await self.orchestrator.load_more(
            self.current_selection,
            self.layers,
            progress=self.display.show_progress
        )

        if result.stale:
            logger.info(f"Discarding stale page for selection #{result.generation}")
            return result

        self._show_selection(result)
        return result

    def highlight(self, feature: Optional[Feature]) -> None:
        """Forward a feature's geometry to the display (None clears the highlight)."""
        self.display.highlight(feature.geometry if feature is not None else None)

    async def filter_layer(self, layer_id: str, field: str, value, limit: int = 500) -> List[Feature]:
        """Show the features of one layer whose `field` equals `value`."""
        self.layer(layer_id)
        try:
            features = await self.field_catalog.filter_features(layer_id, field, value, limit)
        except Exception as e:
            logger.warning(f"  ⚠ Filter on {layer_id} failed: {e}")
            self.display.show_message(f"✗ Filter failed for {layer_id}: {e}")
            return []

        self.display.show_features(features)
        self.display.show_message(f"Found {len(features)} features where {field} = {value}")
        return features
