"""
Relationship filters - request parameters to nested Elasticsearch clauses.

ActiveFilterResolver reads the filter parameters a request carries for an
entity type; FilterCompiler turns the resulting {field_key: [values]} map
into nested bool clauses and merges them into a search body:

    {"related_sponsors_company": ["42", "acme"]}

    {"nested": {"path": "related_sponsors_company",
                "query": {"bool": {"minimum_should_match": 1, "should": [
                    {"term": {"related_sponsors_company.entity_id": 42}},
                    {"term": {"related_sponsors_company.slug": "acme"}},
                    {"term": {"related_sponsors_company.title.raw": "acme"}},
                    {"match": {"related_sponsors_company.title": "acme"}}]}}}}

Values within one field are OR-ed; fields are AND-ed.
"""

import copy
import logging
import re
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .config import ExtensionPoints
from .models import FilterClause
from .naming import FieldNamer
from .registry import RelationshipRegistry

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"^[+-]?[0-9]+$")
_TAGS = re.compile(r"<[^>]*>")
_CONTROL = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")

# entity_id is mapped as a 32-bit integer
ENTITY_ID_MIN = -(2 ** 31)
ENTITY_ID_MAX = 2 ** 31 - 1


def is_numeric(value: str) -> bool:
    """True for ASCII integer strings within the entity_id range."""
    text = value.strip()
    if not _INTEGER.match(text):
        return False
    return ENTITY_ID_MIN <= int(text) <= ENTITY_ID_MAX


def sanitize_text(value: Any) -> str:
    """Strip tags and control characters, collapse whitespace."""
    if value is None:
        return ""
    text = _TAGS.sub("", str(value))
    text = _CONTROL.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def _as_values(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, (str, int)):
        raw = [raw]
    values = []
    for item in raw:
        if item is None:
            continue
        text = str(item).strip()
        if text and text not in values:
            values.append(text)
    return values


class FilterCompiler:
    """Compiles active relationship filters into nested bool clauses."""

    def __init__(self, extensions: Optional[ExtensionPoints] = None):
        self.extensions = extensions or ExtensionPoints()

    def value_clauses(self, field_key: str, value: str) -> List[Dict[str, Any]]:
        if is_numeric(value):
            return [{"term": {f"{field_key}.entity_id": int(value.strip())}}]
        return [
            {"term": {f"{field_key}.slug": value}},
            {"term": {f"{field_key}.title.raw": value}},
            {"match": {f"{field_key}.title": value}},
        ]

    def clause_for(self, clause: FilterClause) -> Optional[Dict[str, Any]]:
        if clause.is_empty:
            return None
        should = []
        for value in clause.values:
            should.extend(self.value_clauses(clause.field_key, value))
        return {
            "nested": {
                "path": clause.field_key,
                "query": {
                    "bool": {
                        "should": should,
                        "minimum_should_match": 1,
                    }
                },
            }
        }

    def build_clauses(self, active_filters: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """One nested clause per field key with at least one value."""
        clauses = []
        for field_key, raw_values in (active_filters or {}).items():
            compiled = self.clause_for(FilterClause(field_key=field_key, values=_as_values(raw_values)))
            if compiled is not None:
                clauses.append(compiled)

        if clauses and self.extensions.filter_queries:
            clauses = list(self.extensions.filter_queries(clauses, dict(active_filters)) or [])
        return clauses

    def compile(self, active_filters: Mapping[str, Any], base_query: Optional[Dict[str, Any]] = None):
        """
        Merge the filter clauses into a search body's `query.bool.must`.

        With no usable filters `base_query` is returned as is. Otherwise a
        new body is returned; the input is not modified.
        """
        clauses = self.build_clauses(active_filters)
        if not clauses:
            return base_query

        body = copy.deepcopy(base_query) if base_query else {}
        body["query"] = merge_must(body.get("query"), clauses)
        return body


def merge_must(query: Optional[Dict[str, Any]], clauses: List[Dict[str, Any]]) -> Dict[str, Any]:
    """AND `clauses` into a query, extending an existing bool.must."""
    if not query:
        return {"bool": {"must": list(clauses)}}

    if "bool" in query and len(query) == 1:
        merged = dict(query)
        merged["bool"] = dict(query["bool"])
        must = merged["bool"].get("must", [])
        if isinstance(must, dict):
            must = [must]
        merged["bool"]["must"] = list(must) + list(clauses)
        return merged

    # Any other query stays as one of the required clauses.
    return {"bool": {"must": [query] + list(clauses)}}


class ActiveFilterResolver:
    """
    Reads relationship filter values from request parameters.

    Each related (relationship, type) pair of an entity type is exposed under
    a filter name, the target type by default.
    """

    def __init__(
        self,
        registry: RelationshipRegistry,
        namer: Optional[FieldNamer] = None,
        extensions: Optional[ExtensionPoints] = None,
    ):
        self.registry = registry
        self.namer = namer or FieldNamer()
        self.extensions = extensions or ExtensionPoints()

    def is_filterable(self, page_context: Any = None) -> bool:
        filterable = True
        if self.extensions.is_filterable_page:
            filterable = bool(self.extensions.is_filterable_page(filterable, page_context))
        return filterable

    def supported_filters(self, entity_type: str, page_context: Any = None) -> "OrderedDict[str, List[str]]":
        """{filter_name: [field_key, ...]} for an entity type."""
        supported: "OrderedDict[str, List[str]]" = OrderedDict()
        for relationship_name, target_types in self.registry.related_types(entity_type).items():
            for target_type in target_types:
                filter_name = target_type
                if self.extensions.filter_name:
                    filter_name = self.extensions.filter_name(target_type, relationship_name, entity_type)
                if not filter_name:
                    continue
                field_key = self.namer.derive_field_key(relationship_name, target_type)
                keys = supported.setdefault(filter_name, [])
                if field_key not in keys:
                    keys.append(field_key)

        if self.extensions.supported_filters:
            supported = OrderedDict(self.extensions.supported_filters(supported, entity_type, page_context) or {})
        return supported

    def resolve(
        self,
        entity_type: str,
        params: Optional[Mapping[str, Any]],
        page_context: Any = None,
    ) -> "OrderedDict[str, List[str]]":
        """Active filters as {field_key: [values]}; empty when nothing applies."""
        active: "OrderedDict[str, List[str]]" = OrderedDict()
        if not params or not entity_type or not self.is_filterable(page_context):
            return active

        for filter_name, field_keys in self.supported_filters(entity_type, page_context).items():
            raw = params.get(filter_name)
            if not raw:
                continue
            if isinstance(field_keys, str):
                field_keys = [field_keys]

            if isinstance(raw, (list, tuple)):
                sanitized: Any = [sanitize_text(item) for item in raw]
            else:
                sanitized = sanitize_text(raw)
            if self.extensions.filter_value:
                sanitized = self.extensions.filter_value(sanitized, raw)

            values = _as_values(sanitized)
            if not values:
                continue
            for field_key in field_keys:
                merged = active.setdefault(field_key, [])
                merged.extend(v for v in values if v not in merged)

        if self.extensions.active_filters:
            active = OrderedDict(self.extensions.active_filters(active, entity_type, page_context) or {})

        if active:
            logger.debug(f"Active relationship filters for {entity_type}: {dict(active)}")
        return active
