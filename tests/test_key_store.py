#!/usr/bin/env python3
"""Tests for the shared key store"""

import threading

from core.key_store import KeyStore


class TestKeyStore:
    def test_set_then_get_returns_deduplicated_values(self):
        store = KeyStore()
        store.set("invitations.emails", ["a@x.com", "b@x.com", "a@x.com"])
        assert store.get("invitations.emails") == {"a@x.com", "b@x.com"}

    def test_absent_name_is_empty_set(self):
        store = KeyStore()
        assert store.get("missing") == frozenset()
        assert not store.has("missing")

    def test_set_overwrites_previous_value(self):
        store = KeyStore()
        store.set("k", ["1", "2"])
        store.set("k", ["3"])
        assert store.get("k") == {"3"}

    def test_empty_set_is_stored(self):
        store = KeyStore()
        store.set("k", [])
        assert store.has("k")
        assert store.get("k") == frozenset()

    def test_stored_set_is_immutable_copy(self):
        store = KeyStore()
        values = ["a"]
        stored = store.set("k", values)
        values.append("b")
        assert isinstance(stored, frozenset)
        assert store.get("k") == {"a"}

    def test_names_and_snapshot(self):
        store = KeyStore()
        store.set("principals.ids", ["u1", "g1"])
        store.set("invitations.emails", ["a@x.com"])
        assert store.names() == ["invitations.emails", "principals.ids"]
        assert store.snapshot() == {"invitations.emails": 1, "principals.ids": 2}
        assert len(store) == 2

    def test_concurrent_writers(self):
        store = KeyStore()

        def writer(prefix):
            for i in range(200):
                store.set(f"{prefix}.{i % 10}", [f"{prefix}{i}"])

        threads = [threading.Thread(target=writer, args=(p,)) for p in ("a", "b", "c")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 30
