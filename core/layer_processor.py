"""
Multi-layer spatial query orchestration for the map selection core.

Given a user-drawn BoundingBox and the active layers, queries every layer concurrently
and returns the merged, client-filtered feature set.

Per layer, the query pipeline is an explicit sequence of attempts:

1. Cache lookup on (layer, bbox, page, limit); a live entry skips the network entirely
2. Strategy selection from the map zoom:
   - BROAD (very low zoom): no spatial filter, attribute fetch up to a hard cap
   - EXPANDED (low zoom): spatial query on the box grown by a fraction of its span
   - TIGHT (normal zoom): spatial query on the box grown by ~100 m
3. Primary attempt: native spatial query. An error, timeout or empty answer means
   FALLBACK_NEEDED
4. Fallback attempt: raw attribute fetch ('1=1')
5. Client-side filtering of every returned feature against the user's box, with the
   geometry.intersection predicates

A layer whose attempts all fail contributes zero features plus a warning; it never
fails the whole selection.

Classes:
    LayerResponse: Raw answer from a layer query
    FeatureLayer: Protocol for the remote layer collaborator
    QueryStrategy, AttemptStatus, QueryAttempt: Pipeline types
    SelectionResult: Merged output of a selection
    SpatialQueryOrchestrator: Runs selections and "load more" pages
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import geopandas as gpd

from config.config_loader import QUERY_SETTING_DEFAULTS
from core.query_cache import QueryCache, make_cache_key
from geometry.intersection import geometry_intersects_rectangle
from geometry.measure import expand_bbox_meters
from geometry.types import BoundingBox, Feature
from utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass
class LayerResponse:
    """Raw page of GeoJSON-shaped feature dicts returned by a layer."""

    features: List[Dict[str, Any]] = field(default_factory=list)
    total_count: Optional[int] = None
    exceeded_transfer_limit: bool = False


class FeatureLayer(Protocol):
    """Remote layer collaborator (see core.arcgis_query.ArcGISFeatureLayer)."""

    @property
    def id(self) -> str: ...

    async def query_within(self, bbox: BoundingBox, limit: int, offset: int = 0) -> LayerResponse: ...

    async def query_attributes(self, where: str = '1=1', limit: int = 500, offset: int = 0) -> LayerResponse: ...


class QueryStrategy(Enum):
    BROAD = 'broad'
    EXPANDED = 'expanded'
    TIGHT = 'tight'


class AttemptStatus(Enum):
    SUCCESS = 'success'
    FALLBACK_NEEDED = 'fallback_needed'
    FAILED = 'failed'


@dataclass
class QueryAttempt:
    """Outcome of one network attempt in the per-layer pipeline."""

    status: AttemptStatus
    method: str
    response: Optional[LayerResponse] = None
    reason: Optional[str] = None


@dataclass
class SelectionResult:
    """
    Merged features of one selection (plus any pages loaded since).

    `features` keeps layer order; each feature carries its layer_id. `stale` is set
    when a newer selection was issued before this one resolved.
    """

    bbox: BoundingBox
    zoom: float
    generation: int
    features: List[Feature] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    layer_metadata: Dict[str, Dict] = field(default_factory=dict)
    layer_pages: Dict[str, int] = field(default_factory=dict)
    layer_has_more: Dict[str, bool] = field(default_factory=dict)
    stale: bool = False

    @property
    def has_more(self) -> bool:
        return any(self.layer_has_more.values())

    @property
    def feature_count(self) -> int:
        return len(self.features)

    def features_by_layer(self) -> Dict[str, List[Feature]]:
        grouped: Dict[str, List[Feature]] = {}
        for feature in self.features:
            grouped.setdefault(feature.layer_id, []).append(feature)
        return grouped

    def to_geodataframe(self) -> gpd.GeoDataFrame:
        """Features as an EPSG:4326 GeoDataFrame with a `layer_id` column."""
        if not self.features:
            return gpd.GeoDataFrame({'layer_id': []}, geometry=[], crs='EPSG:4326')
        return gpd.GeoDataFrame.from_features(self.features, crs='EPSG:4326')


class SpatialQueryOrchestrator:
    """
    Runs selections across layers.

    Parameters:
    -----------
    settings : Optional[Dict]
        Query settings (see config.config_loader.QUERY_SETTING_DEFAULTS)
    cache : Optional[QueryCache]
        Shared result cache; built from the settings when omitted
    """

    def __init__(self, settings: Optional[Dict] = None, cache: Optional[QueryCache] = None):
        self.settings = {**QUERY_SETTING_DEFAULTS, **(settings or {})}
        self.cache = cache if cache is not None else QueryCache(
            ttl_seconds=self.settings['cache_ttl_seconds'],
            max_entries=self.settings['cache_max_entries']
        )
        self._generation = 0

    @property
    def latest_generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation >= self._generation

    def select_strategy(self, zoom: float) -> QueryStrategy:
        if zoom < self.settings['very_low_zoom']:
            return QueryStrategy.BROAD
        if zoom < self.settings['low_zoom']:
            return QueryStrategy.EXPANDED
        return QueryStrategy.TIGHT

    def query_bbox(self, bbox: BoundingBox, strategy: QueryStrategy) -> BoundingBox:
        """Box actually sent to the server for a strategy (BROAD sends none)."""
        if strategy is QueryStrategy.EXPANDED:
            return bbox.expand_fraction(self.settings['low_zoom_expansion_fraction'])
        if strategy is QueryStrategy.TIGHT:
            return expand_bbox_meters(bbox, self.settings['normal_zoom_margin_meters'])
        return bbox

    async def _attempt(self, call, method: str, timeout: float, empty_means_fallback: bool) -> QueryAttempt:
        try:
            response = await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            return QueryAttempt(AttemptStatus.FALLBACK_NEEDED, method, reason=f"timed out after {timeout:g}s")
        except Exception as e:
            # Any layer-side failure (HTTP, ESRI error payload, bad JSON) is recoverable
            return QueryAttempt(AttemptStatus.FALLBACK_NEEDED, method, reason=f"{type(e).__name__}: {e}")

        if response is None or not isinstance(response, LayerResponse):
            return QueryAttempt(AttemptStatus.FALLBACK_NEEDED, method, reason="malformed response")

        if empty_means_fallback and not response.features:
            return QueryAttempt(AttemptStatus.FALLBACK_NEEDED, method, response=response, reason="no features")

        return QueryAttempt(AttemptStatus.SUCCESS, method, response=response)

    def _filter_features(
        self,
        raw_features: Sequence[Any],
        layer_id: str,
        bbox: BoundingBox
    ) -> Tuple[List[Feature], int]:
        """Parse raw features and keep those intersecting `bbox`; returns (kept, skipped)."""
        kept = []
        skipped = 0
        for raw in raw_features:
            feature = Feature.from_raw(raw, layer_id)
            if feature is None:
                skipped += 1
                continue
            if geometry_intersects_rectangle(feature.geometry, bbox):
                kept.append(feature)
        return kept, skipped

    async def _query_layer(
        self,
        layer: FeatureLayer,
        bbox: BoundingBox,
        zoom: float,
        page: int
    ) -> Tuple[List[Feature], Dict]:
        """
        Run the cache → primary → fallback → filter pipeline for one layer page.

        Returns:
        --------
        Tuple[List[Feature], Dict]
            Filtered features and a metadata dict with keys:
            layer_name, page, feature_count, server_count, filtered_count, skipped_count,
            query_method ('cache' | 'spatial' | 'attribute_fallback' | 'broad'),
            total_count, has_more, query_time, warning, error
        """
        start_time = time.time()
        layer_id = layer.id
        limit = self.settings['page_size']
        offset = (page - 1) * limit

        metadata = {
            'layer_name': layer_id,
            'page': page,
            'feature_count': 0,
            'server_count': 0,
            'filtered_count': 0,
            'skipped_count': 0,
            'query_method': None,
            'total_count': None,
            'has_more': False,
            'query_time': 0.0,
            'warning': None,
            'error': None
        }

        key = make_cache_key(layer_id, bbox, page, limit)
        entry = self.cache.get(key)
        if entry is not None:
            logger.info(f"  {layer_id}: {len(entry.features)} features (cached)")
            metadata.update({
                'feature_count': len(entry.features),
                'query_method': 'cache',
                'total_count': entry.total_count,
                'has_more': entry.has_more
            })
            return list(entry.features), metadata

        strategy = self.select_strategy(zoom)
        query_bbox = self.query_bbox(bbox, strategy)
        logger.info(f"  Querying {layer_id} ({strategy.value} strategy, page {page})...")

        attempt = None
        if strategy is not QueryStrategy.BROAD:
            attempt = await self._attempt(
                lambda: layer.query_within(query_bbox, limit, offset),
                'spatial',
                self.settings['primary_timeout'],
                empty_means_fallback=(page == 1)
            )
            if attempt.status is AttemptStatus.FALLBACK_NEEDED:
                if page > 1:
                    # Later pages have nothing to fall back to
                    attempt.status = AttemptStatus.FAILED
                else:
                    logger.info(f"    - Spatial query {attempt.reason}, falling back to attribute fetch")

        if attempt is None or attempt.status is AttemptStatus.FALLBACK_NEEDED:
            primary_reason = attempt.reason if attempt is not None else None
            fetch_limit = (self.settings['broad_fetch_limit'] if strategy is QueryStrategy.BROAD
                           else self.settings['fallback_limit'])
            method = 'broad' if strategy is QueryStrategy.BROAD else 'attribute_fallback'
            attempt = await self._attempt(
                lambda: layer.query_attributes('1=1', fetch_limit, 0),
                method,
                self.settings['fallback_timeout'],
                empty_means_fallback=False
            )
            if attempt.status is not AttemptStatus.SUCCESS:
                attempt.status = AttemptStatus.FAILED
                if primary_reason:
                    attempt.reason = f"spatial query {primary_reason}; {method} {attempt.reason}"

        metadata['query_method'] = attempt.method
        metadata['query_time'] = time.time() - start_time

        if attempt.status is AttemptStatus.FAILED:
            error_msg = f"{layer_id}: query failed ({attempt.reason})"
            logger.warning(f"    ⚠ {error_msg}")
            metadata['error'] = attempt.reason
            metadata['warning'] = error_msg
            return [], metadata

        response = attempt.response
        raw_count = len(response.features)
        features, skipped = self._filter_features(response.features, layer_id, bbox)

        if attempt.method == 'spatial':
            if response.total_count is not None:
                has_more = offset + raw_count < response.total_count
            else:
                has_more = raw_count >= limit or response.exceeded_transfer_limit
        else:
            # Broad and fallback fetches are single-shot
            has_more = False
            if response.exceeded_transfer_limit:
                metadata['warning'] = (
                    f"{layer_id}: result exceeded server limit, showing features from the "
                    f"first {raw_count} records"
                )

        metadata.update({
            'feature_count': len(features),
            'server_count': raw_count,
            'filtered_count': raw_count - skipped - len(features),
            'skipped_count': skipped,
            'total_count': response.total_count,
            'has_more': has_more
        })

        if skipped:
            logger.warning(f"    ⚠ Skipped {skipped} feature(s) with unusable geometry")
        if raw_count != len(features):
            logger.info(
                f"    - Filtered to {len(features)} features "
                f"(removed {raw_count - len(features)} outside selection)"
            )
        logger.info(f"    ✓ {layer_id}: {len(features)} intersecting features")

        self.cache.put(key, features, response.total_count, has_more, attempt.method)
        return features, metadata

    async def _run_layers(
        self,
        jobs: Sequence[Tuple[FeatureLayer, int]],
        bbox: BoundingBox,
        zoom: float,
        progress: Optional[ProgressCallback]
    ) -> List[Tuple[List[Feature], Dict]]:
        total = len(jobs)
        completed = 0

        if progress:
            progress(0)

        async def run(layer: FeatureLayer, page: int):
            nonlocal completed
            outcome = await self._query_layer(layer, bbox, zoom, page)
            completed += 1
            if progress:
                progress(int(completed * 100 / total))
            return outcome

        return list(await asyncio.gather(*(run(layer, page) for layer, page in jobs)))

    def _log_summary(self, result: SelectionResult) -> None:
        logger.info("=" * 80)
        logger.info("Query Summary")
        logger.info("=" * 80)
        layers_with_data = sum(1 for m in result.layer_metadata.values() if m['feature_count'] > 0)
        logger.info(f"Total layers queried: {len(result.layer_metadata)}")
        logger.info(f"Layers with intersections: {layers_with_data}")
        logger.info(f"Total features found: {result.feature_count}")
        if result.has_more:
            more = [layer_id for layer_id, flag in result.layer_has_more.items() if flag]
            logger.info(f"More features available for: {', '.join(more)}")
        for warning in result.warnings:
            logger.warning(f"  ⚠ {warning}")

    async def select(
        self,
        bbox: BoundingBox,
        layers: Sequence[FeatureLayer],
        zoom: float,
        progress: Optional[ProgressCallback] = None
    ) -> SelectionResult:
        """
        Query every layer for features intersecting `bbox` and merge the first pages.

        Parameters:
        -----------
        bbox : BoundingBox
            User-drawn selection rectangle
        layers : Sequence[FeatureLayer]
            Active layers; queried concurrently
        zoom : float
            Current map zoom, drives the query strategy
        progress : Optional[Callable[[int], None]]
            Receives 0-100 as layers complete

        Returns:
        --------
        SelectionResult
            Always returned, possibly empty or partial, with per-layer warnings

        Raises:
        -------
        InvalidBoundingBoxError
            If `bbox` is malformed; raised before any layer is queried
        """
        bbox.validate()

        self._generation += 1
        generation = self._generation

        logger.info("=" * 80)
        logger.info(
            f"Selecting features in [{bbox.west:.5f}, {bbox.south:.5f}, {bbox.east:.5f}, "
            f"{bbox.north:.5f}] at zoom {zoom} (request #{generation})"
        )
        logger.info("=" * 80)

        result = SelectionResult(bbox=bbox, zoom=zoom, generation=generation)
        if not layers:
            logger.info("No active layers to query")
            return result

        outcomes = await self._run_layers([(layer, 1) for layer in layers], bbox, zoom, progress)

        for layer, (features, metadata) in zip(layers, outcomes):
            result.features.extend(features)
            result.layer_metadata[layer.id] = metadata
            result.layer_pages[layer.id] = 1
            result.layer_has_more[layer.id] = metadata['has_more']
            if metadata['warning']:
                result.warnings.append(metadata['warning'])

        result.stale = not self.is_current(generation)
        if result.stale:
            logger.info(f"Request #{generation} superseded by #{self._generation}, result is stale")

        self._log_summary(result)
        return result

    async def load_more(
        self,
        selection: SelectionResult,
        layers: Sequence[FeatureLayer],
        progress: Optional[ProgressCallback] = None
    ) -> SelectionResult:
        """
        Fetch the next page for every layer that still has more features.

        The new features are appended to the features already in `selection`; the
        previous list is never replaced. Returns a new SelectionResult for the same
        request; it is stale if another selection has been issued since.
        """
        by_id: Mapping[str, FeatureLayer] = {layer.id: layer for layer in layers}
        jobs = [
            (by_id[layer_id], selection.layer_pages.get(layer_id, 1) + 1)
            for layer_id, more in selection.layer_has_more.items()
            if more and layer_id in by_id
        ]

        result = SelectionResult(
            bbox=selection.bbox,
            zoom=selection.zoom,
            generation=selection.generation,
            features=list(selection.features),
            warnings=list(selection.warnings),
            layer_metadata=dict(selection.layer_metadata),
            layer_pages=dict(selection.layer_pages),
            layer_has_more=dict(selection.layer_has_more)
        )

        if not jobs:
            logger.info("No more features to load")
            result.stale = not self.is_current(selection.generation)
            return result

        logger.info(f"Loading more features for {len(jobs)} layer(s)...")
        outcomes = await self._run_layers(jobs, selection.bbox, selection.zoom, progress)

        added = 0
        for (layer, page), (features, metadata) in zip(jobs, outcomes):
            result.features.extend(features)
            added += len(features)
            result.layer_metadata[layer.id] = metadata
            if metadata['error']:
                # Keep the page counter so a retry asks for the same page again
                result.layer_has_more[layer.id] = True
            else:
                result.layer_pages[layer.id] = page
                result.layer_has_more[layer.id] = metadata['has_more']
            if metadata['warning']:
                result.warnings.append(metadata['warning'])

        result.stale = not self.is_current(selection.generation)
        logger.info(f"✓ Loaded {added} more features ({result.feature_count} total)")
        return result
