"""Tests for field key derivation."""

import pytest

from nexus_sync.models import RelationshipDefinition
from nexus_sync.naming import FieldNamer, sanitize


class TestSanitize:
    """Tests for sanitize()."""

    def test_replaces_separators(self):
        assert sanitize("speaks-at") == "speaks_at"
        assert sanitize("co.host by") == "co_host_by"

    def test_idempotent(self):
        """Sanitizing a sanitized string changes nothing."""
        for raw in ["speaks-at", "a b-c.d", "already_clean", "ünïcode"]:
            once = sanitize(raw)
            assert sanitize(once) == once

    def test_none_is_empty(self):
        assert sanitize(None) == ""


class TestDeriveFieldKey:
    """Tests for FieldNamer.derive_field_key."""

    def test_default_prefix(self):
        assert FieldNamer().derive_field_key("sponsors", "company") == "related_sponsors_company"

    def test_custom_prefix(self):
        assert FieldNamer(prefix="rel__").derive_field_key("sponsors", "company") == "rel__sponsors_company"

    def test_sanitizes_both_parts(self):
        assert FieldNamer().derive_field_key("speaks-at", "tribe-event") == "related_speaks_at_tribe_event"

    def test_pure(self):
        """Identical inputs always give identical output."""
        a = FieldNamer().derive_field_key("sponsors", "company")
        b = FieldNamer().derive_field_key("sponsors", "company")
        assert a == b

    def test_distinct_relationships_same_type(self):
        """Two relationships targeting one type get separate fields."""
        namer = FieldNamer()
        assert namer.derive_field_key("sponsors", "company") != namer.derive_field_key("hosts", "company")


class TestFieldKeys:
    """Tests for field key enumeration and collision detection."""

    def test_includes_both_sides(self):
        definitions = [RelationshipDefinition.coerce({"name": "sponsors", "from": "event", "to": "company"})]
        assert FieldNamer().field_keys(definitions) == [
            "related_sponsors_event",
            "related_sponsors_company",
        ]

    def test_skips_invalid(self):
        definitions = [
            RelationshipDefinition.coerce({"name": "broken", "from": "event"}),
            RelationshipDefinition.coerce({"name": "sponsors", "from": "event", "to": "company"}),
        ]
        keys = FieldNamer().field_keys(definitions)
        assert all("broken" not in key for key in keys)

    def test_detects_collision(self):
        definitions = [
            RelationshipDefinition.coerce({"name": "a_b", "from": "x", "to": "c"}),
            RelationshipDefinition.coerce({"name": "a", "from": "x", "to": "b_c"}),
        ]
        collisions = FieldNamer().detect_collisions(definitions)
        assert "related_a_b_c" in collisions
        assert set(collisions["related_a_b_c"]) == {("a_b", "c"), ("a", "b_c")}

    def test_no_collision_for_repeated_pair(self):
        definitions = [RelationshipDefinition.coerce({"name": "related", "from": "post", "to": "post"})]
        assert FieldNamer().detect_collisions(definitions) == {}
