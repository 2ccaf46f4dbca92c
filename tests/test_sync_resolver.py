"""Tests for sync/resolver.py -- the cycle-scoped identity cache.

Covers:
- resolve_batch() performs one request for uncached titles only
- Trivial titles are cached
- relocate() / evict() keep the index in line with current titles
- Ownership: an entity seen once cannot be claimed by another title
"""

import pytest
from fakes import FakeRepository

from sitelink_sync.sync.resolver import IdentityResolver


@pytest.fixture
def source():
    return FakeRepository(
        {
            ("enwiki", "Alpha"): "Q1",
            ("enwiki", "Beta"): "Q2",
        }
    )


class TestResolveBatch:
    """Tests for IdentityResolver.resolve_batch()."""

    def test_one_request_per_batch(self, source):
        resolver = IdentityResolver(source, "enwiki")

        resolver.resolve_batch(["Alpha", "Beta", "Gamma"])

        assert source.lookup_calls == [("enwiki", ["Alpha", "Beta", "Gamma"])]
        assert resolver.lookup("Alpha").entity_id == "Q1"
        assert resolver.lookup("Beta").entity_id == "Q2"
        assert resolver.lookup("Gamma").is_trivial

    def test_cached_titles_not_requested_again(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Alpha", "Gamma"])

        resolver.resolve_batch(["Alpha", "Gamma", "Beta"])

        assert source.lookup_calls[-1] == ("enwiki", ["Beta"])
        assert resolver.requests == 2
        assert resolver.lookups == 3

    def test_fully_cached_batch_makes_no_request(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Alpha"])

        resolver.resolve_batch(["Alpha", "Alpha"])

        assert len(source.lookup_calls) == 1

    def test_duplicates_requested_once(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Alpha", "Beta", "Alpha"])
        assert source.lookup_calls == [("enwiki", ["Alpha", "Beta"])]

    def test_mismatched_result_length(self):
        class Broken:
            def entity_ids_for_titles(self, site, titles):
                return []

        resolver = IdentityResolver(Broken(), "enwiki")
        with pytest.raises(ValueError, match="0 results for 1 titles"):
            resolver.resolve_batch(["Alpha"])

    def test_unknown_title_lookup_is_none(self, source):
        resolver = IdentityResolver(source, "enwiki")
        assert resolver.lookup("Alpha") is None
        assert "Alpha" not in resolver


class TestRelocateEvict:
    """Tests for relocate() and evict()."""

    def test_relocate_moves_entry(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Alpha"])

        displaced = resolver.relocate("Alpha", "Alpha (new)")

        assert displaced is None
        assert resolver.lookup("Alpha") is None
        assert resolver.lookup("Alpha (new)").entity_id == "Q1"
        assert resolver.title_of("Q1") == "Alpha (new)"

    def test_relocate_unknown_is_noop(self, source):
        resolver = IdentityResolver(source, "enwiki")
        assert resolver.relocate("Nowhere", "Elsewhere") is None
        assert len(resolver) == 0

    def test_relocate_onto_linked_title_reports_displaced(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Alpha", "Beta"])

        displaced = resolver.relocate("Alpha", "Beta")

        assert displaced is not None
        assert displaced.entity_id == "Q2"
        assert resolver.lookup("Beta").entity_id == "Q1"
        assert resolver.title_of("Q2") is None

    def test_trivial_relocation_displaces_silently(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Gamma", "Beta"])

        assert resolver.relocate("Gamma", "Beta") is None
        assert resolver.lookup("Beta").is_trivial

    def test_evict_returns_entry(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Alpha"])

        entry = resolver.evict("Alpha")

        assert entry.entity_id == "Q1"
        assert resolver.lookup("Alpha") is None
        assert resolver.evict("Alpha") is None


class TestOwnership:
    """An entity id owns at most one live entry per cycle."""

    def test_stale_title_of_moved_entity_is_trivial(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Alpha"])
        resolver.relocate("Alpha", "Alpha (new)")

        # Repository still links Q1 to "Alpha"; a new page there is
        # not Q1 any more.
        resolver.resolve_batch(["Alpha"])

        assert resolver.lookup("Alpha").is_trivial
        assert resolver.title_of("Q1") == "Alpha (new)"

    def test_evicted_entity_not_revived(self, source):
        resolver = IdentityResolver(source, "enwiki")
        resolver.resolve_batch(["Alpha"])
        resolver.evict("Alpha")

        resolver.resolve_batch(["Alpha"])

        assert resolver.lookup("Alpha").is_trivial
        assert resolver.owns_entity("Q1")
