"""
Relationship Registry - read-through cache over the host's relationship source.

The source is any zero-argument callable returning definitions (dicts or
objects with name/from/to). It is queried once per registry instance;
afterwards the cache is only read.
"""

import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import ExtensionPoints
from .models import RelationshipDefinition
from .naming import FieldNamer

logger = logging.getLogger(__name__)


class RelationshipRegistry:
    """
    Loads relationship definitions once and answers type lookups.

    Invalid definitions (no name, empty from/to) are skipped with a warning
    instead of failing the whole load. A definition whose field keys would
    collide with an earlier one is skipped with an error, so no two
    (relationship, type) pairs ever share a field.
    """

    def __init__(
        self,
        source: Callable[[], Iterable[Any]],
        extensions: Optional[ExtensionPoints] = None,
    ):
        self._source = source
        self._extensions = extensions or ExtensionPoints()
        self._namer = FieldNamer()
        self._definitions: Optional[List[RelationshipDefinition]] = None
        self._related_types: Dict[str, "OrderedDict[str, Tuple[str, ...]]"] = {}

    @classmethod
    def from_definitions(cls, definitions: Iterable[Any], **kwargs) -> "RelationshipRegistry":
        items = list(definitions)
        return cls(lambda: items, **kwargs)

    def definitions(self) -> List[RelationshipDefinition]:
        """All valid definitions, in source order."""
        if self._definitions is None:
            self._definitions = self._load()
        return self._definitions

    def _load(self) -> List[RelationshipDefinition]:
        raw = list(self._source() or [])
        if self._extensions.relationships:
            raw = list(self._extensions.relationships(raw) or [])

        loaded: List[RelationshipDefinition] = []
        seen_names = set()
        for item in raw:
            definition = RelationshipDefinition.coerce(item)
            if not definition.is_valid:
                logger.warning(
                    f"Skipping relationship {definition.name or '<unnamed>'!r}: "
                    f"from={list(definition.from_types)} to={list(definition.to_types)}"
                )
                continue
            collisions = self._namer.detect_collisions(loaded + [definition])
            if collisions:
                logger.error(
                    f"Skipping relationship {definition.name!r}: field key collision on "
                    f"{sorted(collisions)}"
                )
                continue
            if definition.name in seen_names:
                logger.warning(f"Duplicate relationship name {definition.name!r}, keeping both")
            seen_names.add(definition.name)
            loaded.append(definition)

        logger.debug(f"Loaded {len(loaded)} relationship definitions")
        return loaded

    def get(self, name: str) -> Optional[RelationshipDefinition]:
        for definition in self.definitions():
            if definition.name == name:
                return definition
        return None

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def related_types(self, entity_type: str) -> "OrderedDict[str, Tuple[str, ...]]":
        """
        Opposing entity types per relationship name for `entity_type`.

            {"sponsors": ("company",), "speaks-at": ("person",)}
        """
        cached = self._related_types.get(entity_type)
        if cached is not None:
            return cached

        related: "OrderedDict[str, Tuple[str, ...]]" = OrderedDict()
        for definition in self.definitions():
            if not definition.involves(entity_type):
                continue
            merged = list(related.get(definition.name, ()))
            for target_type in definition.opposing_types(entity_type):
                if target_type not in merged:
                    merged.append(target_type)
            related[definition.name] = tuple(merged)

        self._related_types[entity_type] = related
        return related

    def reset(self):
        """Drop cached definitions so the next lookup reloads the source."""
        self._definitions = None
        self._related_types.clear()
