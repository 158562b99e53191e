#!/usr/bin/env python3
"""
Shared Key Store
================

Named key sets collected while a migration run copies its tables. A stage
that discovers identifiers stores them here; later stages in the same chain
read them back as the values of their ``IN (...)`` filter.

One store is created per run and handed to every stage through the run
context. Chains that run concurrently share the store, so every access is
guarded by a lock.
"""

import threading
from typing import Dict, FrozenSet, Iterable, List


class KeyStore:
    """Lock-guarded mapping of key-set name to a deduplicated set of values"""

    def __init__(self):
        self._sets: Dict[str, FrozenSet[str]] = {}
        self._lock = threading.RLock()

    def set(self, name: str, values: Iterable[str]) -> FrozenSet[str]:
        """Store ``values`` (deduplicated) under ``name``, replacing any prior set"""
        key_set = frozenset(values)
        with self._lock:
            self._sets[name] = key_set
        return key_set

    def get(self, name: str) -> FrozenSet[str]:
        """Return the set stored under ``name``; an absent name is an empty set"""
        with self._lock:
            return self._sets.get(name, frozenset())

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._sets

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._sets)

    def snapshot(self) -> Dict[str, int]:
        """Sizes of every stored key set, for the run summary"""
        with self._lock:
            return {name: len(values) for name, values in sorted(self._sets.items())}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sets)
