#!/usr/bin/env python3
"""
Row-count verification between source and target.

Equality is the only success criterion. A mismatch is reported for manual
follow-up; nothing here retries or reconciles individual rows.
"""

from enum import Enum


class Verdict(Enum):
    """Outcome of a source/target row-count comparison"""
    MATCH = "match"
    MISMATCH = "mismatch"


def verify(source_count: int, target_count: int) -> Verdict:
    """Compare the filtered source and target row counts of one table"""
    if source_count == target_count:
        return Verdict.MATCH
    return Verdict.MISMATCH
