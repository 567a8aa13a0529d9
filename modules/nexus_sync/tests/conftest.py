"""Shared fixtures for nexus_sync tests."""

import pytest
from unittest.mock import MagicMock

from nexus_sync.models import EntityRef, SyncAction, SyncOperation
from nexus_sync.projector import EntityStore
from nexus_sync.registry import RelationshipRegistry
from nexus_sync.sync import SCRIPTS, apply_operation


class InMemoryEntityStore(EntityStore):
    """Entity store backed by dicts, with edges keyed by relationship name."""

    def __init__(self):
        self.entities = {}
        self.edges = []  # (a_id, b_id, relationship_name)
        self.calls = []

    def add(self, entity_id, entity_type, title="", slug=""):
        entity = EntityRef(id=entity_id, type=entity_type, title=title, slug=slug)
        self.entities[entity.id] = entity
        return entity

    def link(self, a_id, b_id, relationship_name):
        self.edges.append((a_id, b_id, relationship_name))

    def get_entity(self, entity_id):
        return self.entities.get(entity_id)

    def find_related(self, source_entity_id, relationship_name, target_type, page_size):
        self.calls.append((source_entity_id, relationship_name, target_type, page_size))
        related = []
        for a_id, b_id, name in self.edges:
            if name != relationship_name:
                continue
            other = None
            if a_id == source_entity_id:
                other = b_id
            elif b_id == source_entity_id:
                other = a_id
            entity = self.entities.get(other)
            if entity is not None and entity.type == target_type:
                related.append(entity)
        return related[:page_size]


class FakeElasticsearch:
    """
    Applies scripted bulk updates to in-memory documents the way the
    painless scripts do, one item at a time.

    The painless sources themselves never run here; apply_operation stands
    in for them. test_sync.TestScripts pins the script structure.
    """

    def __init__(self):
        self.documents = {}
        self.bulk_calls = []
        self.indices = MagicMock()

    def bulk(self, operations, **kwargs):
        self.bulk_calls.append((operations, kwargs))
        items = []
        for header, body in zip(operations[0::2], operations[1::2]):
            doc_id = header["update"]["_id"]
            if doc_id not in self.documents:
                items.append({"update": {"_id": doc_id, "status": 404, "error": {"type": "document_missing_exception"}}})
                continue
            params = body["script"]["params"]
            action = _action_for(body["script"]["source"])
            if action is SyncAction.REPLACE:
                op = SyncOperation(int(doc_id), params["field"], action, projections=tuple(params["values"]))
            else:
                op = SyncOperation(int(doc_id), params["field"], action, projection=params["value"])
            changed = apply_operation(self.documents[doc_id], op)
            items.append({"update": {"_id": doc_id, "status": 200, "result": "updated" if changed else "noop"}})
        return {"took": 1, "errors": any("error" in i["update"] for i in items), "items": items}


def _action_for(source):
    for action, script in SCRIPTS.items():
        if script == source:
            return action
    raise AssertionError("unknown script")


SPONSORS = {"name": "sponsors", "from": "event", "to": "company"}
SPEAKERS = {"name": "speaks-at", "from": ["person"], "to": ["event"]}
RELATED = {"name": "related", "from": ["post", "page"], "to": ["post"]}


@pytest.fixture
def definitions():
    return [SPONSORS, SPEAKERS, RELATED]


@pytest.fixture
def registry(definitions):
    return RelationshipRegistry.from_definitions(definitions)


@pytest.fixture
def store():
    s = InMemoryEntityStore()
    s.add(10, "event", "Launch Party", "launch-party")
    s.add(20, "company", "Acme", "acme")
    s.add(21, "company", "Globex", "globex")
    s.add(30, "person", "Ada Lovelace", "ada-lovelace")
    return s


@pytest.fixture
def fake_es():
    return FakeElasticsearch()
