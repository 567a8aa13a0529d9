"""
Document Projector - builds the relationship fields of one entity's document.

For each relationship the entity's type takes part in, related entities of
every opposing type are fetched from the entity store (one bounded page per
field) and embedded as projections under the field key.

Fan-out beyond the page size is truncated to the first page. The bound is
configurable per relationship/type through ExtensionPoints.page_size.
"""

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from .config import DEFAULT_PAGE_SIZE, ExtensionPoints
from .models import EntityRef, project_entity
from .naming import FieldNamer
from .registry import RelationshipRegistry

logger = logging.getLogger(__name__)


class EntityStore(ABC):
    """Read access to live entities, supplied by the host."""

    @abstractmethod
    def get_entity(self, entity_id: int) -> Optional[EntityRef]:
        """Return the entity, or None when it does not exist."""
        pass

    @abstractmethod
    def find_related(
        self,
        source_entity_id: int,
        relationship_name: str,
        target_type: str,
        page_size: int,
    ) -> List[EntityRef]:
        """First page of entities of `target_type` related to the source."""
        pass


class DocumentProjector:
    """Produces {field_key: [projection, ...]} for a single entity."""

    def __init__(
        self,
        registry: RelationshipRegistry,
        store: EntityStore,
        namer: Optional[FieldNamer] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        extensions: Optional[ExtensionPoints] = None,
    ):
        self.registry = registry
        self.store = store
        self.namer = namer or FieldNamer()
        self.page_size = page_size
        self.extensions = extensions or ExtensionPoints()

    def page_size_for(self, relationship_name: str, target_type: str) -> int:
        size = self.page_size
        if self.extensions.page_size:
            size = int(self.extensions.page_size(relationship_name, target_type, size))
        return max(size, 1)

    def build_projection(self, entity: EntityRef) -> Dict[str, Any]:
        """Projection of one related entity, after the host transform."""
        projection = project_entity(entity)
        if self.extensions.projection:
            projection = self.extensions.projection(projection, entity)
        return projection

    def project(self, entity: EntityRef) -> "OrderedDict[str, List[Dict[str, Any]]]":
        """Relationship fields for `entity`. Empty fields are left out."""
        fields: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()

        for relationship_name, target_types in self.registry.related_types(entity.type).items():
            for target_type in target_types:
                page_size = self.page_size_for(relationship_name, target_type)
                related = self.store.find_related(entity.id, relationship_name, target_type, page_size)
                if not related:
                    continue
                if len(related) >= page_size:
                    logger.debug(
                        f"{relationship_name}/{target_type} for entity {entity.id} filled a page "
                        f"of {page_size}; projection may be truncated"
                    )

                projections = []
                seen = set()
                for related_entity in related[:page_size]:
                    if related_entity is None or related_entity.id in seen:
                        continue
                    seen.add(related_entity.id)
                    projections.append(self.build_projection(related_entity))

                if projections:
                    key = self.namer.derive_field_key(relationship_name, target_type)
                    fields[key] = projections

        return fields

    def field_keys_for(self, entity_type: str) -> List[str]:
        """Every field key a document of `entity_type` can carry."""
        keys = []
        for relationship_name, target_types in self.registry.related_types(entity_type).items():
            for target_type in target_types:
                key = self.namer.derive_field_key(relationship_name, target_type)
                if key not in keys:
                    keys.append(key)
        return keys
