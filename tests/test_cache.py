"""Tests for TreeCache."""

import pytest

from nodefactory.tree.cache import TreeCache


class TestTreeCacheBasic:
    """Tests for get, set, delete and size."""

    def test_empty(self):
        cache = TreeCache()
        assert len(cache) == 0
        assert cache.get("missing") is None
        assert cache.get("missing", "default") == "default"

    def test_set_and_get(self):
        cache = TreeCache()
        entry = {"id": "a", "children": []}
        cache.set("a", entry)
        assert cache.get("a") is entry
        assert "a" in cache
        assert cache.has("a")
        assert len(cache) == 1

    def test_set_overwrites(self):
        cache = TreeCache()
        cache.set("a", {"v": 1})
        cache.set("a", {"v": 2})
        assert cache.get("a") == {"v": 2}
        assert len(cache) == 1

    def test_delete(self):
        cache = TreeCache()
        cache.set("a", {})
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert "a" not in cache

    def test_clear(self):
        cache = TreeCache()
        cache.set("a", {})
        cache.set("b", {})
        cache.clear()
        assert len(cache) == 0

    def test_invalid_bound(self):
        with pytest.raises(ValueError):
            TreeCache(max_items=0)


class TestTreeCacheEviction:
    """Tests for least-recently-used eviction."""

    def test_evicts_oldest(self):
        cache = TreeCache(max_items=2)
        cache.set("a", {})
        cache.set("b", {})
        cache.set("c", {})
        assert cache.keys() == ["b", "c"]
        assert cache.get("a") is None

    def test_get_refreshes_recency(self):
        cache = TreeCache(max_items=2)
        cache.set("a", {})
        cache.set("b", {})
        cache.get("a")
        cache.set("c", {})
        assert "a" in cache
        assert "b" not in cache

    def test_peek_does_not_refresh_recency(self):
        cache = TreeCache(max_items=2)
        cache.set("a", {})
        cache.set("b", {})
        cache.peek("a")
        cache.set("c", {})
        assert "a" not in cache

    def test_overwrite_refreshes_recency(self):
        cache = TreeCache(max_items=2)
        cache.set("a", {})
        cache.set("b", {})
        cache.set("a", {"v": 2})
        cache.set("c", {})
        assert cache.keys() == ["a", "c"]

    def test_eviction_drops_cached_ancestors(self):
        """An expansion never outlives a descendant that left the cache."""
        cache = TreeCache(max_items=3)
        child = {"id": "child", "parent": "parent", "children": []}
        parent = {"id": "parent", "parent": "grandparent", "children": [child]}
        grandparent = {"id": "grandparent", "parent": "root", "children": [parent]}
        cache.set("child", child)
        cache.set("parent", parent)
        cache.set("grandparent", grandparent)

        cache.set("other", {"id": "other", "parent": "root", "children": []})

        assert cache.keys() == ["other"]

    def test_eviction_leaves_unrelated_entries(self):
        cache = TreeCache(max_items=2)
        cache.set("a", {"id": "a", "parent": "root"})
        cache.set("b", {"id": "b", "parent": "root"})
        cache.set("c", {"id": "c", "parent": "b"})

        assert cache.keys() == ["b", "c"]


class TestTreeCacheDelete:
    """Tests for explicit removal."""

    def test_delete_drops_cached_ancestors(self):
        cache = TreeCache()
        cache.set("parent", {"id": "parent", "parent": "root", "children": []})
        cache.set("child", {"id": "child", "parent": "parent", "children": []})
        cache.set("sibling", {"id": "sibling", "parent": "root", "children": []})

        assert cache.delete("child") is True
        assert cache.keys() == ["sibling"]

    def test_delete_can_keep_ancestors(self):
        cache = TreeCache()
        cache.set("parent", {"id": "parent", "parent": "root", "children": []})
        cache.set("child", {"id": "child", "parent": "parent", "children": []})

        cache.delete("child", keep_ancestors=True)

        assert cache.keys() == ["parent"]
