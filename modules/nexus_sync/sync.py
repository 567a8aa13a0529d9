"""
Index Sync Engine - keeps relationship fields consistent under edge events.

Every relationship edge is denormalized into both endpoints' documents:
adding "event 10 sponsors company 20" appends company 20 to event 10's
`related_sponsors_company` field and event 10 to company 20's
`related_sponsors_event` field.

Each SyncOperation runs as a server-side scripted update on the owning
document (see SCRIPTS), retried by Elasticsearch on version conflicts, so
concurrent writers never lose each other's entries. Operations are
idempotent: re-applying one leaves the document unchanged.

apply_operation() states the same semantics in Python; VersionedFieldWriter
uses it for single-document writes guarded by if_seq_no/if_primary_term.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Union

from elasticsearch import ConflictError, NotFoundError

from .config import ExtensionPoints
from .models import EntityRef, RelationshipKind, SyncAction, SyncOperation
from .naming import FieldNamer
from .projector import DocumentProjector, EntityStore
from .registry import RelationshipRegistry

logger = logging.getLogger(__name__)

UPSERT_SCRIPT = """
if (!ctx._source.containsKey(params.field) || ctx._source[params.field] == null) {
    ctx._source[params.field] = [params.value];
} else {
    boolean exists = false;
    for (item in ctx._source[params.field]) {
        if (item.entity_id == params.value.entity_id) { exists = true; break; }
    }
    if (exists) { ctx.op = 'noop'; } else { ctx._source[params.field].add(params.value); }
}
""".strip()

REMOVE_SCRIPT = """
if (!ctx._source.containsKey(params.field) || ctx._source[params.field] == null) {
    ctx.op = 'noop';
    return;
}
boolean removed = ctx._source[params.field].removeIf(item -> item.entity_id == params.value.entity_id);
if (ctx._source[params.field].isEmpty()) {
    ctx._source.remove(params.field);
} else if (!removed) {
    ctx.op = 'noop';
}
""".strip()

REPLACE_SCRIPT = """
if (params.values.isEmpty()) {
    if (ctx._source.containsKey(params.field)) { ctx._source.remove(params.field); } else { ctx.op = 'noop'; }
} else {
    ctx._source[params.field] = params.values;
}
""".strip()

SCRIPTS = {
    SyncAction.UPSERT: UPSERT_SCRIPT,
    SyncAction.REMOVE: REMOVE_SCRIPT,
    SyncAction.REPLACE: REPLACE_SCRIPT,
}


def apply_operation(source: Dict[str, Any], op: SyncOperation) -> bool:
    """
    Apply `op` to a document source in place.

    Returns False when the document is left unchanged (the script's noop).
    """
    field_key = op.field_key
    current = source.get(field_key)

    if op.action == SyncAction.UPSERT:
        if current is None:
            source[field_key] = [dict(op.projection)]
            return True
        if any(item.get("entity_id") == op.entity_id for item in current):
            return False
        current.append(dict(op.projection))
        return True

    if op.action == SyncAction.REMOVE:
        if current is None:
            return False
        kept = [item for item in current if item.get("entity_id") != op.entity_id]
        removed = len(kept) != len(current)
        if not kept:
            del source[field_key]
            return True
        if removed:
            source[field_key] = kept
        return removed

    if op.action == SyncAction.REPLACE:
        if not op.projections:
            if field_key in source:
                del source[field_key]
                return True
            return False
        values = [dict(p) for p in op.projections]
        if current == values:
            return False
        source[field_key] = values
        return True

    raise ValueError(f"Unsupported sync action: {op.action!r}")


def _kind(value: Union[str, RelationshipKind, None]) -> RelationshipKind:
    if value is None:
        return RelationshipKind.ENTITY_TO_ENTITY
    if isinstance(value, RelationshipKind):
        return value
    return RelationshipKind(value)


class IndexSyncEngine:
    """Turns relationship events into per-document SyncOperations."""

    def __init__(
        self,
        registry: RelationshipRegistry,
        store: EntityStore,
        namer: Optional[FieldNamer] = None,
        projector: Optional[DocumentProjector] = None,
        extensions: Optional[ExtensionPoints] = None,
    ):
        self.registry = registry
        self.store = store
        self.namer = namer or FieldNamer()
        self.extensions = extensions or ExtensionPoints()
        self.projector = projector or DocumentProjector(
            registry, store, namer=self.namer, extensions=self.extensions
        )
        self._stats = {
            "events": 0,
            "operations": 0,
            "aborted": 0,
            "ignored": 0,
        }

    def _resolve(self, entity: Union[int, EntityRef]) -> Optional[EntityRef]:
        entity_id = entity.id if isinstance(entity, EntityRef) else entity
        try:
            return self.store.get_entity(int(entity_id))
        except (TypeError, ValueError):
            return None

    def _edge_operations(
        self,
        a: Union[int, EntityRef],
        b: Union[int, EntityRef],
        relationship_name: str,
        action: SyncAction,
        kind: Union[str, RelationshipKind, None],
    ) -> List[SyncOperation]:
        self._stats["events"] += 1

        if _kind(kind) is not RelationshipKind.ENTITY_TO_ENTITY:
            self._stats["ignored"] += 1
            return []

        if relationship_name not in self.registry:
            logger.warning(f"Ignoring {action.value} for unregistered relationship {relationship_name!r}")
            self._stats["ignored"] += 1
            return []

        first = self._resolve(a)
        second = self._resolve(b)
        if first is None or second is None:
            logger.debug(
                f"Aborting {action.value} {relationship_name}: "
                f"unresolvable endpoint ({a!r} -> {first is not None}, {b!r} -> {second is not None})"
            )
            self._stats["aborted"] += 1
            return []

        operations = [
            SyncOperation(
                owner_entity_id=first.id,
                field_key=self.namer.derive_field_key(relationship_name, second.type),
                action=action,
                projection=self.projector.build_projection(second),
            )
        ]
        if second.id != first.id or second.type != first.type:
            operations.append(
                SyncOperation(
                    owner_entity_id=second.id,
                    field_key=self.namer.derive_field_key(relationship_name, first.type),
                    action=action,
                    projection=self.projector.build_projection(first),
                )
            )

        if self.extensions.relationship_data:
            operations = list(self.extensions.relationship_data(operations, first, second) or [])

        self._stats["operations"] += len(operations)
        return operations

    def on_relationship_added(self, a, b, relationship_name: str, kind=None) -> List[SyncOperation]:
        """Upsert each endpoint into the other's field."""
        return self._edge_operations(a, b, relationship_name, SyncAction.UPSERT, kind)

    def on_relationship_removed(self, a, b, relationship_name: str, kind=None) -> List[SyncOperation]:
        """Remove each endpoint from the other's field."""
        return self._edge_operations(a, b, relationship_name, SyncAction.REMOVE, kind)

    def on_full_index(self, entity: EntityRef) -> Dict[str, List[Dict[str, Any]]]:
        """Complete relationship field set, for a wholesale document write."""
        return dict(self.projector.project(entity))

    def reproject(self, entity: EntityRef) -> List[SyncOperation]:
        """
        REPLACE operations for every field the entity's type can carry.

        Fields with no related entities get an empty REPLACE, which drops
        them from the document.
        """
        fields = self.projector.project(entity)
        operations = [
            SyncOperation(
                owner_entity_id=entity.id,
                field_key=field_key,
                action=SyncAction.REPLACE,
                projections=tuple(fields.get(field_key, ())),
            )
            for field_key in self.projector.field_keys_for(entity.type)
        ]
        self._stats["operations"] += len(operations)
        return operations

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)


class VersionedFieldWriter:
    """
    Writes single operations with optimistic concurrency control.

    Reads the document with its sequence number, applies the operation
    locally and writes back conditioned on that sequence number. A 409 means
    another writer got there first; the loop re-reads and tries again.
    """

    def __init__(self, es, index_name: str, max_attempts: int = 5, refresh: Optional[str] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.es = es
        self.index_name = index_name
        self.max_attempts = max_attempts
        self.refresh = refresh

    def write(self, op: SyncOperation) -> str:
        """Returns "updated", "noop" or "not_found"."""
        doc_id = str(op.owner_entity_id)

        for attempt in range(1, self.max_attempts + 1):
            try:
                doc = self.es.get(index=self.index_name, id=doc_id)
            except NotFoundError:
                logger.debug(f"Document {doc_id} not found in {self.index_name}")
                return "not_found"

            source = copy.deepcopy(doc["_source"])
            if not apply_operation(source, op):
                return "noop"

            kwargs = {}
            if self.refresh:
                kwargs["refresh"] = self.refresh
            try:
                self.es.index(
                    index=self.index_name,
                    id=doc_id,
                    document=source,
                    if_seq_no=doc["_seq_no"],
                    if_primary_term=doc["_primary_term"],
                    **kwargs,
                )
                return "updated"
            except ConflictError:
                if attempt == self.max_attempts:
                    logger.warning(
                        f"Giving up on {op.action.value} {op.field_key} for {doc_id} "
                        f"after {attempt} version conflicts"
                    )
                    raise
                logger.debug(f"Version conflict on {doc_id} (attempt {attempt}), retrying")

        return "noop"
