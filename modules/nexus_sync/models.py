"""
Data models for relationship indexing.

RelationshipDefinition - a named edge kind between entity types
EntityRef              - handle to a live entity (from the entity store)
SyncOperation          - one atomic update against one document's one field
FilterClause           - active filter values for one field key
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SyncAction(Enum):
    """Partial-update actions understood by the bulk builder."""
    UPSERT = "upsert"      # Append projection unless entity_id already present
    REMOVE = "remove"      # Drop projection by entity_id, drop field when empty
    REPLACE = "replace"    # Overwrite the whole field list (full projection)


class RelationshipKind(Enum):
    """Kinds of relationship events delivered by the host."""
    ENTITY_TO_ENTITY = "entity-to-entity"
    ENTITY_TO_USER = "entity-to-user"


def _as_types(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    types = []
    for item in value:
        if item and item not in types:
            types.append(item)
    return tuple(types)


@dataclass(frozen=True)
class RelationshipDefinition:
    """A named, typed edge kind."""
    name: str
    from_types: Tuple[str, ...]
    to_types: Tuple[str, ...]

    @property
    def is_valid(self) -> bool:
        return bool(self.name and self.from_types and self.to_types)

    def involves(self, entity_type: str) -> bool:
        return entity_type in self.from_types or entity_type in self.to_types

    def opposing_types(self, entity_type: str) -> Tuple[str, ...]:
        """
        Types on the other side of this relationship from `entity_type`.

        A type present on both sides gets the union of both, so a
        self-referencing relationship covers every type it can link to.
        """
        in_from = entity_type in self.from_types
        in_to = entity_type in self.to_types
        if in_from and in_to:
            return _as_types(self.to_types + self.from_types)
        if in_from:
            return self.to_types
        if in_to:
            return self.from_types
        return ()

    def all_types(self) -> Tuple[str, ...]:
        return _as_types(self.from_types + self.to_types)

    @classmethod
    def coerce(cls, raw: Any) -> "RelationshipDefinition":
        """Build from a dict or any object exposing name/from/to."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, dict):
            name = raw.get("name")
            from_value = raw.get("from", raw.get("from_types"))
            to_value = raw.get("to", raw.get("to_types"))
        else:
            name = getattr(raw, "name", None)
            from_value = getattr(raw, "from_types", getattr(raw, "from_", None))
            to_value = getattr(raw, "to_types", getattr(raw, "to", None))
        return cls(
            name=name or "",
            from_types=_as_types(from_value),
            to_types=_as_types(to_value),
        )


@dataclass(frozen=True)
class EntityRef:
    """Live attributes of an entity, as returned by the entity store."""
    id: int
    type: str
    title: str = ""
    slug: str = ""

    def __post_init__(self):
        object.__setattr__(self, "id", int(self.id))


def project_entity(entity: EntityRef) -> Dict[str, Any]:
    """Embedded summary of an entity stored inside a relationship field."""
    return {
        "entity_id": int(entity.id),
        "title": entity.title or "",
        "slug": entity.slug or "",
        "type": entity.type,
    }


@dataclass(frozen=True)
class SyncOperation:
    """
    One atomic partial update: `action` applied to `field_key` of the
    document owned by `owner_entity_id`.

    UPSERT/REMOVE carry a single `projection`; REPLACE carries the full
    list in `projections`.
    """
    owner_entity_id: int
    field_key: str
    action: Any
    projection: Optional[Dict[str, Any]] = None
    projections: Tuple[Dict[str, Any], ...] = ()

    @property
    def entity_id(self) -> Optional[int]:
        if self.projection is None:
            return None
        return self.projection.get("entity_id")

    def params(self) -> Dict[str, Any]:
        """Script parameters sent alongside the painless source."""
        if self.action == SyncAction.REPLACE:
            return {"field": self.field_key, "values": [dict(p) for p in self.projections]}
        return {"field": self.field_key, "value": dict(self.projection or {})}

    def to_dict(self) -> Dict[str, Any]:
        action = self.action.value if isinstance(self.action, SyncAction) else self.action
        return {
            "owner_entity_id": self.owner_entity_id,
            "field_key": self.field_key,
            "action": action,
            **({"projections": list(self.projections)} if self.action == SyncAction.REPLACE
               else {"projection": self.projection}),
        }


@dataclass
class FilterClause:
    """Raw filter values for one relationship field key."""
    field_key: str
    values: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.values
