"""
ArcGIS REST layer client for the map selection core.

This module implements the remote "layer" collaborator the orchestrator queries:
an ArcGIS FeatureServer/MapServer layer exposing

1. query_within: native spatial query (envelope + esriSpatialRelIntersects). Paginated
   with resultOffset/resultRecordCount only when the layer metadata reports
   supportsPagination; the total comes from a returnCountOnly request
2. query_attributes: attribute-only query (where clause, no geometry filter), used as
   the fallback path and by the field catalog

Uses POST requests to avoid URI length limitations. ESRI JSON responses are converted
to GeoJSON-shaped feature dicts; ESRI error payloads raise LayerQueryError so the
orchestrator can fall back.

Classes:
    LayerQueryError: Error payload or malformed response from the service
    ArcGISFeatureLayer: Async client for one configured layer
"""

import asyncio
import json
from typing import Dict, List, Optional, Tuple

import httpx

from config.config_loader import LayerDescriptor
from core.layer_processor import LayerResponse
from geometry.types import BoundingBox
from utils.geometry_converters import bbox_to_esri_envelope, convert_esri_to_geojson
from utils.logger import get_logger

logger = get_logger(__name__)

COMMON_OID_NAMES = ['OBJECTID', 'FID', 'OID', 'objectid', 'fid', 'oid']


class LayerQueryError(Exception):
    """The layer service answered with an error payload or an unreadable body."""


class ArcGISFeatureLayer:
    """
    Async query client for one ArcGIS layer.

    Parameters:
    -----------
    descriptor : LayerDescriptor
        Configured layer (service URL, layer index, id, attribute fetch cap)
    client : Optional[httpx.AsyncClient]
        Shared client. When omitted each request opens its own short-lived client.
    timeout : float
        Per-request timeout in seconds (default: 15)
    count_timeout : float
        How long a page waits for the returnCountOnly answer once its features
        have arrived (default: 2). A slower count leaves the total unknown.
    """

    def __init__(
        self,
        descriptor: LayerDescriptor,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
        count_timeout: float = 2.0
    ):
        self.descriptor = descriptor
        self.timeout = timeout
        self.count_timeout = count_timeout
        self._client = client
        self._metadata: Optional[Dict] = None
        self._metadata_error: Optional[str] = None
        self._last_count: Optional[Tuple[Tuple[float, ...], int]] = None

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def query_url(self) -> str:
        return f"{self.descriptor.endpoint}/query"

    async def _request(self, method: str, url: str, params: Dict) -> Dict:
        if self._client is not None:
            if method == 'GET':
                response = await self._client.get(url, params=params, timeout=self.timeout)
            else:
                response = await self._client.post(url, data=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                if method == 'GET':
                    response = await client.get(url, params=params)
                else:
                    response = await client.post(url, data=params)

        response.raise_for_status()

        try:
            result = response.json()
        except ValueError as e:
            raise LayerQueryError(f"Unreadable response from {url}: {e}") from e

        if not isinstance(result, dict):
            raise LayerQueryError(f"Unexpected response shape from {url}")

        # Check for ESRI error in response (served with HTTP 200)
        if 'error' in result:
            error = result['error'] or {}
            raise LayerQueryError(f"ESRI error: {error.get('message', 'Unknown error')}")

        return result

    async def fetch_layer_metadata(self) -> Tuple[Optional[Dict], Optional[str]]:
        """
        Fetch layer metadata: field names, pagination support and ObjectID field.

        The result is cached on the instance, and so is a failure: a layer whose
        metadata could not be read is queried without pagination from then on.

        Returns:
        --------
        Tuple[Optional[Dict], Optional[str]]
            - metadata dict with keys:
              - fields: List[str] (field names in service order)
              - supports_pagination: bool
              - max_record_count: int
              - oid_field: Optional[str]
              - geometry_type: Optional[str] (esriGeometryPoint, ...)
            - error message if failed, None if successful
        """
        if self._metadata is not None:
            return self._metadata, None
        if self._metadata_error is not None:
            return None, self._metadata_error

        try:
            data = await self._request('GET', self.descriptor.endpoint, {'f': 'json'})
        except httpx.TimeoutException:
            self._metadata_error = "Metadata request timed out"
            return None, self._metadata_error
        except httpx.HTTPError as e:
            self._metadata_error = f"Metadata request failed: {e}"
            return None, self._metadata_error
        except LayerQueryError as e:
            self._metadata_error = f"Layer metadata error: {e}"
            return None, self._metadata_error

        fields = data.get('fields') or []
        field_names = [f.get('name', '') for f in fields if f.get('name')]

        # Find ObjectID field (look for esriFieldTypeOID type)
        oid_field = next(
            (f.get('name') for f in fields if f.get('type') == 'esriFieldTypeOID'),
            None
        )
        if not oid_field:
            oid_field = next((name for name in COMMON_OID_NAMES if name in field_names), None)

        self._metadata = {
            'fields': field_names,
            'supports_pagination': data.get('advancedQueryCapabilities', {}).get('supportsPagination', False),
            'max_record_count': data.get('maxRecordCount', 1000),
            'oid_field': oid_field,
            'geometry_type': data.get('geometryType')
        }
        return self._metadata, None

    async def describe_fields(self) -> List[str]:
        """Field names from the layer metadata; raises LayerQueryError when unavailable."""
        metadata, error = await self.fetch_layer_metadata()
        if error:
            raise LayerQueryError(error)
        return list(metadata['fields'])

    async def _paging_metadata(self) -> Tuple[Optional[Dict], bool]:
        metadata, error = await self.fetch_layer_metadata()
        if error:
            logger.debug(f"{self.id}: no metadata, querying without pagination ({error})")
            return None, False
        return metadata, bool(metadata.get('supports_pagination'))

    def _base_params(self, where: str, limit: int, offset: int, metadata: Optional[Dict], paginated: bool) -> Dict:
        params = {
            'where': where,
            'outFields': '*',
            'returnGeometry': 'true',
            'f': 'json',
            'outSR': '4326'
        }

        # Services without pagination reject resultOffset/resultRecordCount
        if paginated:
            params['resultOffset'] = offset
            params['resultRecordCount'] = limit

        # Stable ordering keeps pages from overlapping
        if metadata and metadata.get('oid_field'):
            params['orderByFields'] = metadata['oid_field']

        return params

    def _convert_features(self, result: Dict) -> List[Dict]:
        features = []
        for esri_feature in result.get('features') or []:
            try:
                geojson_feat = convert_esri_to_geojson(esri_feature)
            except (TypeError, ValueError, AttributeError, IndexError) as e:
                logger.debug(f"{self.id}: unreadable geometry ({type(e).__name__}: {e})")
                geojson_feat = None

            if geojson_feat is None:
                # Keep the record so the caller can count it as skipped
                attributes = esri_feature.get('attributes') if isinstance(esri_feature, dict) else None
                geojson_feat = {
                    'type': 'Feature',
                    'geometry': None,
                    'properties': attributes or {}
                }
            features.append(geojson_feat)
        return features

    async def count_within(self, bbox: BoundingBox) -> Optional[int]:
        """Total number of features intersecting `bbox`, or None if the service won't say."""
        params = {
            'where': '1=1',
            'geometry': json.dumps(bbox_to_esri_envelope(bbox)),
            'geometryType': 'esriGeometryEnvelope',
            'spatialRel': 'esriSpatialRelIntersects',
            'inSR': '4326',
            'returnCountOnly': 'true',
            'f': 'json'
        }
        try:
            result = await self._request('POST', self.query_url, params)
        except (httpx.HTTPError, LayerQueryError) as e:
            logger.debug(f"{self.id}: count request failed ({e})")
            return None

        count = result.get('count')
        return int(count) if isinstance(count, int) else None

    async def _await_count(self, count_task: Optional[asyncio.Future]) -> Optional[int]:
        if count_task is None:
            return None
        done, _ = await asyncio.wait({count_task}, timeout=self.count_timeout)
        if not done:
            logger.debug(f"{self.id}: count request exceeded {self.count_timeout:g}s, total unknown")
            return None
        return count_task.result()

    async def query_within(self, bbox: BoundingBox, limit: int, offset: int = 0) -> LayerResponse:
        """
        Native spatial query: features intersecting the envelope of `bbox`.

        On paginated services the total comes from a returnCountOnly request that
        runs alongside the first page and is reused for later pages of the same box.
        It is skipped when the first page is already short, and an answer slower
        than `count_timeout` leaves the total unknown. On services without
        pagination the first answer is all there is.

        Raises:
        -------
        httpx.HTTPError
            Transport failure, timeout or non-2xx status
        LayerQueryError
            ESRI error payload or unreadable body
        """
        metadata, paginated = await self._paging_metadata()
        if offset > 0 and not paginated:
            return LayerResponse(features=[], total_count=offset)

        params = self._base_params('1=1', limit, offset, metadata, paginated)
        params.update({
            'geometry': json.dumps(bbox_to_esri_envelope(bbox)),
            'geometryType': 'esriGeometryEnvelope',
            'spatialRel': 'esriSpatialRelIntersects',
            'inSR': '4326'
        })

        box_key = bbox.cache_key()
        known_total = None
        if self._last_count is not None and self._last_count[0] == box_key:
            known_total = self._last_count[1]

        count_task = None
        if paginated and offset == 0 and known_total is None:
            count_task = asyncio.ensure_future(self.count_within(bbox))

        logger.debug(f"Querying: {self.query_url} (envelope, offset={offset}, limit={limit})")
        try:
            result = await self._request('POST', self.query_url, params)
            features = self._convert_features(result)
            exceeded = bool(result.get('exceededTransferLimit', False))

            if not paginated:
                total_count = len(features)
            elif known_total is not None:
                total_count = known_total
            elif offset == 0 and len(features) < limit and not exceeded:
                total_count = len(features)
            else:
                total_count = await self._await_count(count_task)
        finally:
            if count_task is not None and not count_task.done():
                count_task.cancel()

        if paginated and total_count is not None:
            self._last_count = (box_key, total_count)

        return LayerResponse(
            features=features,
            total_count=total_count,
            exceeded_transfer_limit=exceeded
        )

    async def query_attributes(self, where: str = '1=1', limit: int = 500, offset: int = 0) -> LayerResponse:
        """
        Attribute-only query (no spatial filter).

        `limit` is capped at the layer's max_features_per_request. Raises the
        same errors as query_within.
        """
        limit = min(limit, self.descriptor.max_features_per_request)
        metadata, paginated = await self._paging_metadata()
        if offset > 0 and not paginated:
            return LayerResponse(features=[], total_count=None)

        params = self._base_params(where, limit, offset, metadata, paginated)

        logger.debug(f"Querying: {self.query_url} (where={where!r}, offset={offset}, limit={limit})")
        result = await self._request('POST', self.query_url, params)
        features = self._convert_features(result)

        if not paginated:
            # The service returns up to its own maxRecordCount; trim to the cap
            features = features[:limit]

        return LayerResponse(
            features=features,
            total_count=None,
            exceeded_transfer_limit=bool(result.get('exceededTransferLimit', False))
        )
