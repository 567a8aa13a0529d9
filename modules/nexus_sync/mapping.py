"""
Mapping Builder - nested field definitions for every relationship field key.
"""

import copy
import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

from .config import ExtensionPoints
from .exceptions import FieldKeyCollisionError
from .models import RelationshipDefinition
from .naming import FieldNamer

logger = logging.getLogger(__name__)

# Sub-fields of every relationship projection
RELATED_ENTITY_MAPPING = {
    "type": "nested",
    "properties": {
        "entity_id": {"type": "integer"},
        "title": {
            "type": "text",
            "fields": {
                "raw": {"type": "keyword"},
            },
        },
        "slug": {"type": "keyword"},
        "type": {"type": "keyword"},
    },
}


class MappingBuilder:
    """
    Derives the index schema fragment for relationship fields.

    The global default override runs first, then the per-field override for
    each key, so a per-field override always wins.
    """

    def __init__(
        self,
        namer: Optional[FieldNamer] = None,
        extensions: Optional[ExtensionPoints] = None,
        index_name: Optional[str] = None,
    ):
        self.namer = namer or FieldNamer()
        self.extensions = extensions or ExtensionPoints()
        self.index_name = index_name

    def default_field_mapping(self) -> Dict[str, Any]:
        mapping = copy.deepcopy(RELATED_ENTITY_MAPPING)
        if self.extensions.default_field_mapping:
            mapping = self.extensions.default_field_mapping(mapping)
        return mapping

    def relationship_fields(self, definitions: Iterable[Any]) -> List[str]:
        definitions = [RelationshipDefinition.coerce(d) for d in definitions]
        for definition in definitions:
            if not definition.is_valid:
                logger.warning(f"Skipping relationship {definition.name or '<unnamed>'!r} in mapping")

        valid = [d for d in definitions if d.is_valid]
        collisions = self.namer.detect_collisions(valid)
        if collisions:
            raise FieldKeyCollisionError(collisions)

        fields = self.namer.field_keys(valid)
        if self.extensions.mapping_fields:
            fields = list(self.extensions.mapping_fields(fields, valid) or [])
        return list(OrderedDict.fromkeys(fields))

    def build_mapping(self, definitions: Iterable[Any]) -> Dict[str, Any]:
        """
        {"properties": {field_key: nested mapping, ...}} for all definitions.

        Deterministic: identical definitions give an identical fragment.
        """
        properties: Dict[str, Any] = {}
        default_mapping = self.default_field_mapping()

        for field_key in self.relationship_fields(definitions):
            field_mapping = copy.deepcopy(default_mapping)
            override = self.extensions.field_mappings.get(field_key)
            if override:
                field_mapping = override(field_mapping, field_key)
            properties[field_key] = field_mapping

        return {"properties": properties}

    def apply_to(self, index_mapping: Dict[str, Any], index_name: str, definitions: Iterable[Any]) -> Dict[str, Any]:
        """
        Merge relationship fields into a full create-index body.

        Bodies for other indices are returned untouched.
        """
        if self.index_name and index_name != self.index_name:
            return index_mapping

        fragment = self.build_mapping(definitions)
        if not fragment["properties"]:
            return index_mapping

        merged = copy.deepcopy(index_mapping)
        properties = merged.setdefault("mappings", {}).setdefault("properties", {})
        properties.update(fragment["properties"])
        return merged

    def put_mapping(self, es, definitions: Iterable[Any], index_name: Optional[str] = None):
        """Send the fragment to the index's put-mapping endpoint."""
        target = index_name or self.index_name
        if not target:
            raise ValueError("index_name required for put_mapping")

        fragment = self.build_mapping(definitions)
        if not fragment["properties"]:
            logger.info(f"No relationship fields to map on {target}")
            return None

        logger.info(f"Putting {len(fragment['properties'])} relationship fields on {target}")
        return es.indices.put_mapping(index=target, properties=fragment["properties"])
