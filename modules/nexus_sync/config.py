"""
Configuration and host extension points for nexus_sync.

Connection and indexing settings come from the environment (a .env file is
honoured through python-dotenv). Extension points are plain callables the
host hands in once, at construction time.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from elasticsearch import Elasticsearch

logger = logging.getLogger(__name__)

DEFAULT_FIELD_PREFIX = "related_"
DEFAULT_PAGE_SIZE = 100
DEFAULT_RETRY_ON_CONFLICT = 3


@dataclass
class ExtensionPoints:
    """
    Optional host callbacks. Each one receives the computed default and
    returns the value to use.

    relationships(definitions) -> definitions
    page_size(relationship_name, target_type, default) -> int
    projection(projection, entity) -> projection
    relationship_data(operations, first, second) -> operations
    default_field_mapping(mapping) -> mapping
    field_mappings[field_key](mapping, field_key) -> mapping
    mapping_fields(field_keys, definitions) -> field_keys
    is_filterable_page(default, page_context) -> bool
    filter_name(target_type, relationship_name, entity_type) -> str
    supported_filters(supported, entity_type, page_context) -> supported
    filter_value(sanitized, raw) -> str | list
    active_filters(active, entity_type, page_context) -> active
    filter_queries(clauses, active_filters) -> clauses
    """
    relationships: Optional[Callable[[List[Any]], List[Any]]] = None
    page_size: Optional[Callable[[str, str, int], int]] = None
    projection: Optional[Callable[[Dict[str, Any], Any], Dict[str, Any]]] = None
    relationship_data: Optional[Callable[[list, Any, Any], list]] = None
    default_field_mapping: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None
    field_mappings: Dict[str, Callable[[Dict[str, Any], str], Dict[str, Any]]] = field(default_factory=dict)
    mapping_fields: Optional[Callable[[List[str], list], List[str]]] = None
    is_filterable_page: Optional[Callable[[bool, Any], bool]] = None
    filter_name: Optional[Callable[[str, str, str], str]] = None
    supported_filters: Optional[Callable[[dict, str, Any], dict]] = None
    filter_value: Optional[Callable[[Any, Any], Any]] = None
    active_filters: Optional[Callable[[dict, str, Any], dict]] = None
    filter_queries: Optional[Callable[[list, dict], list]] = None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


@dataclass
class SyncConfig:
    """Settings for relationship indexing."""
    elastic_url: str = "http://localhost:9200"
    elastic_user: Optional[str] = None
    elastic_password: Optional[str] = None
    index_name: str = "content"
    field_prefix: str = DEFAULT_FIELD_PREFIX
    page_size: int = DEFAULT_PAGE_SIZE
    retry_on_conflict: int = DEFAULT_RETRY_ON_CONFLICT
    refresh: Optional[str] = None  # None, "true", "wait_for"
    request_timeout: int = 30

    def __post_init__(self):
        if self.page_size < 1:
            raise ValueError(f"page_size must be positive, got {self.page_size}")
        if self.retry_on_conflict < 0:
            raise ValueError(f"retry_on_conflict must be >= 0, got {self.retry_on_conflict}")

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "SyncConfig":
        """Load settings from environment variables (and .env if present)."""
        load_dotenv(dotenv_path)
        return cls(
            elastic_url=os.getenv("ELASTIC_URL", os.getenv("ELASTICSEARCH_URL", "http://localhost:9200")),
            elastic_user=os.getenv("ELASTIC_USER", os.getenv("ELASTICSEARCH_USER")),
            elastic_password=os.getenv("ELASTIC_PASSWORD", os.getenv("ELASTICSEARCH_PASSWORD")),
            index_name=os.getenv("NEXUS_INDEX", "content"),
            field_prefix=os.getenv("NEXUS_FIELD_PREFIX", DEFAULT_FIELD_PREFIX),
            page_size=_env_int("NEXUS_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            retry_on_conflict=_env_int("NEXUS_RETRY_ON_CONFLICT", DEFAULT_RETRY_ON_CONFLICT),
            refresh=os.getenv("NEXUS_REFRESH") or None,
            request_timeout=_env_int("NEXUS_REQUEST_TIMEOUT", 30),
        )

    def create_client(self) -> Elasticsearch:
        """Build an Elasticsearch client for these settings."""
        auth = None
        if self.elastic_user and self.elastic_password:
            auth = (self.elastic_user, self.elastic_password)
        return Elasticsearch(
            self.elastic_url,
            basic_auth=auth,
            request_timeout=self.request_timeout,
        )
