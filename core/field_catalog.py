"""
Field discovery and attribute filtering for remote layers.

Layers are queried without a fixed schema, so the fields a user can filter on are
discovered at runtime:

1. From the layer's metadata (`describe_fields()` on the layer, e.g. the ArcGIS
   `fields` list), when the layer exposes it
2. Otherwise by sampling one feature and reading its property names

Results are cached per layer until invalidate() is called.

Classes:
    FieldCatalog: Lazily populated field/value cache plus attribute filtering

Functions:
    build_where_clause: Equality where clause with quoted, escaped value
"""

from typing import Dict, List, Optional, Sequence, Tuple

from core.layer_processor import FeatureLayer
from geometry.types import Feature
from utils.logger import get_logger

logger = get_logger(__name__)

FIELD_VALUE_SAMPLE_SIZE = 2000


def build_where_clause(field: str, value) -> str:
    """
    Build `field = 'value'` with single quotes in the value doubled.

    Example:
        >>> build_where_clause('ROUTE_NAME', "O'Neil Rd")
        "ROUTE_NAME = 'O''Neil Rd'"
    """
    escaped = str(value).replace("'", "''")
    return f"{field} = '{escaped}'"


class FieldCatalog:
    """
    Per-layer field names and distinct values, discovered lazily.

    Parameters:
    -----------
    layers : Sequence[FeatureLayer]
        Layers the catalog can describe, looked up by id
    """

    def __init__(self, layers: Sequence[FeatureLayer]):
        self._layers: Dict[str, FeatureLayer] = {layer.id: layer for layer in layers}
        self._fields: Dict[str, List[str]] = {}
        self._values: Dict[Tuple[str, str], List[str]] = {}

    def _layer(self, layer_id: str) -> FeatureLayer:
        try:
            return self._layers[layer_id]
        except KeyError:
            raise KeyError(f"Unknown layer: {layer_id}") from None

    async def describe_fields(self, layer_id: str) -> List[str]:
        """
        Field names available for filtering on a layer.

        Returns an empty list when neither metadata nor a sample is available; that
        result is not cached so a later call can retry.
        """
        if layer_id in self._fields:
            return list(self._fields[layer_id])

        layer = self._layer(layer_id)
        fields: List[str] = []

        describe = getattr(layer, 'describe_fields', None)
        if describe is not None:
            try:
                fields = list(await describe())
            except Exception as e:
                logger.warning(f"  ⚠ {layer_id}: field metadata unavailable ({e}), sampling instead")

        if not fields:
            try:
                response = await layer.query_attributes('1=1', 1, 0)
            except Exception as e:
                logger.warning(f"  ⚠ {layer_id}: could not sample fields ({e})")
                return []
            if response.features:
                properties = response.features[0].get('properties') or {}
                fields = list(properties.keys())

        if fields:
            self._fields[layer_id] = fields
            logger.debug(f"{layer_id}: {len(fields)} fields discovered")

        return list(fields)

    async def field_values(self, layer_id: str, field: str) -> List[str]:
        """Sorted distinct non-empty values of `field`, from a sample of the layer."""
        key = (layer_id, field)
        if key in self._values:
            return list(self._values[key])

        layer = self._layer(layer_id)
        try:
            response = await layer.query_attributes('1=1', FIELD_VALUE_SAMPLE_SIZE, 0)
        except Exception as e:
            logger.warning(f"  ⚠ {layer_id}: could not sample values of {field} ({e})")
            return []

        values = set()
        for raw in response.features:
            value = (raw.get('properties') or {}).get(field)
            if value is None:
                continue
            text = str(value).strip()
            if text:
                values.add(text)

        self._values[key] = sorted(values)
        logger.debug(f"{layer_id}.{field}: {len(values)} distinct values")
        return list(self._values[key])

    async def filter_features(
        self,
        layer_id: str,
        field: str,
        value,
        limit: int = 500
    ) -> List[Feature]:
        """
        Features of a layer whose `field` equals `value`.

        Raises:
        -------
        KeyError
            If the layer is unknown
        Exception
            Whatever the layer raises; the session turns it into a status message
        """
        where = build_where_clause(field, value)
        logger.info(f"Filtering {layer_id} where {where}")

        response = await self._layer(layer_id).query_attributes(where, limit, 0)

        features = []
        skipped = 0
        for raw in response.features:
            feature = Feature.from_raw(raw, layer_id)
            if feature is None:
                skipped += 1
            else:
                features.append(feature)

        if skipped:
            logger.warning(f"    ⚠ Skipped {skipped} feature(s) with unusable geometry")
        logger.info(f"    ✓ {len(features)} matching features")
        return features

    def invalidate(self, layer_id: Optional[str] = None) -> None:
        """Forget discovered fields and values for one layer, or for all layers."""
        if layer_id is None:
            self._fields.clear()
            self._values.clear()
            return

        self._fields.pop(layer_id, None)
        for key in [k for k in self._values if k[0] == layer_id]:
            del self._values[key]
