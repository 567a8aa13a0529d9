"""
NEXUS SYNC - Relationship fields for Elasticsearch documents

Keeps each document's nested relationship fields consistent with the
relationship graph, and turns relationship filters into nested queries.

Components:
- naming.py: FieldNamer (relationship + type -> field key)
- registry.py: RelationshipRegistry (cached relationship definitions)
- projector.py: DocumentProjector, EntityStore (full-reindex projections)
- mapping.py: MappingBuilder (nested field mappings)
- sync.py: IndexSyncEngine, VersionedFieldWriter (incremental updates)
- bulk.py: BulkRequestBuilder (scripted _bulk updates, per-item results)
- filters.py: FilterCompiler, ActiveFilterResolver (read path)
- indexer.py: RelationshipIndexer (facade for host events)

Document shape:
    {
        "title": "Launch Party",
        "related_sponsors_company": [
            {"entity_id": 20, "title": "Acme", "slug": "acme", "type": "company"}
        ]
    }
"""

from .config import ExtensionPoints, SyncConfig
from .exceptions import (
    NexusSyncError,
    FieldKeyCollisionError,
    InvalidOperationError,
    BulkDispatchError,
)
from .models import (
    RelationshipDefinition,
    RelationshipKind,
    EntityRef,
    SyncAction,
    SyncOperation,
    FilterClause,
    project_entity,
)
from .naming import FieldNamer, sanitize
from .registry import RelationshipRegistry
from .projector import DocumentProjector, EntityStore
from .mapping import MappingBuilder, RELATED_ENTITY_MAPPING
from .sync import IndexSyncEngine, VersionedFieldWriter, apply_operation
from .bulk import BulkRequestBuilder, BulkPayload, BulkResult, BulkItemResult
from .filters import FilterCompiler, ActiveFilterResolver, merge_must
from .indexer import RelationshipIndexer

__all__ = [
    "ExtensionPoints",
    "SyncConfig",
    "NexusSyncError",
    "FieldKeyCollisionError",
    "InvalidOperationError",
    "BulkDispatchError",
    "RelationshipDefinition",
    "RelationshipKind",
    "EntityRef",
    "SyncAction",
    "SyncOperation",
    "FilterClause",
    "project_entity",
    "FieldNamer",
    "sanitize",
    "RelationshipRegistry",
    "DocumentProjector",
    "EntityStore",
    "MappingBuilder",
    "RELATED_ENTITY_MAPPING",
    "IndexSyncEngine",
    "VersionedFieldWriter",
    "apply_operation",
    "BulkRequestBuilder",
    "BulkPayload",
    "BulkResult",
    "BulkItemResult",
    "FilterCompiler",
    "ActiveFilterResolver",
    "merge_must",
    "RelationshipIndexer",
]
