"""
Field naming - maps a (relationship, target type) pair to a document field.

Both the full-reindex path and the incremental path go through
FieldNamer.derive_field_key, so the two always agree on the key.
"""

import re
from collections import OrderedDict
from typing import Dict, Iterable, List, Tuple

from .config import DEFAULT_FIELD_PREFIX
from .models import RelationshipDefinition

_NON_IDENTIFIER = re.compile(r"[^0-9A-Za-z_]")


def sanitize(value: str) -> str:
    """Replace every non-identifier character with an underscore."""
    return _NON_IDENTIFIER.sub("_", value or "")


class FieldNamer:
    """Derives document field keys for relationship projections."""

    def __init__(self, prefix: str = DEFAULT_FIELD_PREFIX):
        self.prefix = prefix

    def derive_field_key(self, relationship_name: str, target_type: str) -> str:
        """
        Field key for entities of `target_type` related via `relationship_name`.

            >>> FieldNamer().derive_field_key("sponsors", "company")
            'related_sponsors_company'
        """
        return f"{self.prefix}{sanitize(relationship_name)}_{sanitize(target_type)}"

    def field_keys(self, definitions: Iterable[RelationshipDefinition]) -> List[str]:
        """Distinct field keys for every valid definition, in definition order."""
        return list(self._pairs_by_key(definitions).keys())

    def detect_collisions(
        self, definitions: Iterable[RelationshipDefinition]
    ) -> Dict[str, List[Tuple[str, str]]]:
        """Field keys shared by more than one distinct (relationship, type) pair."""
        return {
            key: pairs
            for key, pairs in self._pairs_by_key(definitions).items()
            if len(pairs) > 1
        }

    def _pairs_by_key(self, definitions) -> "OrderedDict[str, List[Tuple[str, str]]]":
        by_key: "OrderedDict[str, List[Tuple[str, str]]]" = OrderedDict()
        for definition in definitions:
            if not definition.is_valid:
                continue
            # Both endpoints carry a field, so both sides' types need a key.
            for target_type in definition.all_types():
                key = self.derive_field_key(definition.name, target_type)
                pair = (definition.name, target_type)
                pairs = by_key.setdefault(key, [])
                if pair not in pairs:
                    pairs.append(pair)
        return by_key
