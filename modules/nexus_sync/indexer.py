"""
Relationship Indexer - wires host events to the sync engine and Elasticsearch.

Usage:
    from nexus_sync import RelationshipIndexer, SyncConfig

    config = SyncConfig.from_env()
    indexer = RelationshipIndexer(
        config=config,
        relationships=lambda: registry.get_relationships(),
        store=my_entity_store,
    )
    indexer.put_mapping()

    # Host events
    document = indexer.entity_about_to_be_indexed(entity, document)
    indexer.relationship_added(10, 20, "sponsors")
    indexer.relationship_removed(10, 20, "sponsors")

    # Read path
    body = indexer.filter_search(body, "event", request.args)
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .bulk import BulkRequestBuilder, BulkResult
from .config import ExtensionPoints, SyncConfig
from .filters import ActiveFilterResolver, FilterCompiler
from .mapping import MappingBuilder
from .models import EntityRef, SyncOperation
from .naming import FieldNamer
from .projector import DocumentProjector, EntityStore
from .registry import RelationshipRegistry
from .sync import IndexSyncEngine

logger = logging.getLogger(__name__)


class RelationshipIndexer:
    """Facade over registry, projector, sync engine, bulk builder and filters."""

    def __init__(
        self,
        relationships: Callable[[], Iterable[Any]],
        store: EntityStore,
        config: Optional[SyncConfig] = None,
        es=None,
        extensions: Optional[ExtensionPoints] = None,
    ):
        self.config = config or SyncConfig()
        self.extensions = extensions or ExtensionPoints()
        self._es = es

        self.namer = FieldNamer(prefix=self.config.field_prefix)
        self.registry = RelationshipRegistry(relationships, extensions=self.extensions)
        self.projector = DocumentProjector(
            self.registry,
            store,
            namer=self.namer,
            page_size=self.config.page_size,
            extensions=self.extensions,
        )
        self.engine = IndexSyncEngine(
            self.registry,
            store,
            namer=self.namer,
            projector=self.projector,
            extensions=self.extensions,
        )
        self.mapping = MappingBuilder(
            namer=self.namer,
            extensions=self.extensions,
            index_name=self.config.index_name,
        )
        self.bulk = BulkRequestBuilder(
            self.config.index_name,
            retry_on_conflict=self.config.retry_on_conflict,
            refresh=self.config.refresh,
        )
        self.compiler = FilterCompiler(extensions=self.extensions)
        self.filters = ActiveFilterResolver(self.registry, namer=self.namer, extensions=self.extensions)

    @property
    def es(self):
        """Elasticsearch client, created from config on first use."""
        if self._es is None:
            self._es = self.config.create_client()
        return self._es

    # === Write path ===

    def entity_about_to_be_indexed(self, entity: EntityRef, document: Dict[str, Any]) -> Dict[str, Any]:
        """Document augmented with the entity's relationship fields."""
        fields = self.engine.on_full_index(entity)
        if not fields:
            return document
        augmented = dict(document)
        augmented.update(fields)
        return augmented

    def relationship_added(self, a, b, relationship_name: str, kind=None) -> Optional[BulkResult]:
        operations = self.engine.on_relationship_added(a, b, relationship_name, kind=kind)
        return self.dispatch(operations)

    def relationship_removed(self, a, b, relationship_name: str, kind=None) -> Optional[BulkResult]:
        operations = self.engine.on_relationship_removed(a, b, relationship_name, kind=kind)
        return self.dispatch(operations)

    def resync(self, entities: Iterable[EntityRef]) -> Optional[BulkResult]:
        """Rewrite the relationship fields of existing documents in one batch."""
        operations: List[SyncOperation] = []
        for entity in entities:
            operations.extend(self.engine.reproject(entity))
        return self.dispatch(operations)

    def dispatch(self, operations: List[SyncOperation]) -> Optional[BulkResult]:
        """Send operations as one bulk request; None when there is nothing to send."""
        if not operations:
            return None
        return self.bulk.dispatch(self.es, operations)

    # === Schema ===

    def build_mapping(self) -> Dict[str, Any]:
        return self.mapping.build_mapping(self.registry.definitions())

    def apply_mapping(self, index_mapping: Dict[str, Any], index_name: str) -> Dict[str, Any]:
        """Add relationship fields to a create-index body for the target index."""
        return self.mapping.apply_to(index_mapping, index_name, self.registry.definitions())

    def put_mapping(self):
        return self.mapping.put_mapping(self.es, self.registry.definitions())

    # === Read path ===

    def active_filters(self, entity_type: str, params: Optional[Mapping[str, Any]], page_context: Any = None):
        return self.filters.resolve(entity_type, params, page_context=page_context)

    def filter_search(
        self,
        body: Optional[Dict[str, Any]],
        entity_type: str,
        params: Optional[Mapping[str, Any]],
        page_context: Any = None,
    ):
        """Search body with the request's relationship filters AND-ed in."""
        active = self.active_filters(entity_type, params, page_context=page_context)
        return self.compiler.compile(active, body)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "relationships": len(self.registry.definitions()),
            "engine": self.engine.get_stats(),
        }
