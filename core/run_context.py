#!/usr/bin/env python3
"""
Run Context and Results
=======================

State handed to every stage of one chain invocation, and the result
records the orchestrator accumulates for the run summary.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from core.database_manager import DatabaseAdapter, QueryOptions
from core.errors import ChainTimeoutError
from core.key_store import KeyStore
from core.table_spec import DEFAULT_ROW_LIMIT
from core.verification import Verdict


class StageStatus(Enum):
    """How a stage ended"""
    COPIED = "copied"
    EMPTY = "empty"      # filter ran, source returned no rows
    SKIPPED = "skipped"  # filter key set was empty, nothing issued


class ChainStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"


class InsertMode(Enum):
    """How copied rows are written to the target"""
    BATCH = "batch"
    SINGLE = "single"


@dataclass
class CopyResult:
    """Outcome of one table copy"""
    table: str
    source_count: int
    target_count: int
    status: StageStatus
    verdict: Optional[Verdict] = None

    @property
    def is_mismatch(self) -> bool:
        return self.verdict == Verdict.MISMATCH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "status": self.status.value,
            "source_count": self.source_count,
            "target_count": self.target_count,
            "verdict": self.verdict.value if self.verdict else None,
        }


@dataclass
class ChainResult:
    """Outcome of one chain invocation"""
    chain: str
    status: ChainStatus
    results: List[CopyResult] = field(default_factory=list)
    error: Optional[str] = None
    failed_table: Optional[str] = None
    duration: float = 0.0

    @property
    def mismatches(self) -> List[CopyResult]:
        return [r for r in self.results if r.is_mismatch]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain,
            "status": self.status.value,
            "duration": round(self.duration, 3),
            "error": self.error,
            "failed_table": self.failed_table,
            "tables": [r.to_dict() for r in self.results],
        }


@dataclass
class RunContext:
    """Connections, shared key sets and settings for one chain invocation.

    ``deadline`` is a ``time.monotonic()`` instant; None disables it.
    """
    source: DatabaseAdapter
    target: DatabaseAdapter
    key_store: KeyStore
    params: Dict[str, str] = field(default_factory=dict)
    options: QueryOptions = field(default_factory=QueryOptions)
    row_limit: int = DEFAULT_ROW_LIMIT
    insert_mode: InsertMode = InsertMode.BATCH
    batch_size: int = 100
    deadline: Optional[float] = None
    results: List[CopyResult] = field(default_factory=list)

    def remaining_time(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def check_deadline(self, table: str) -> None:
        """Raise ChainTimeoutError once the deadline has passed"""
        remaining = self.remaining_time()
        if remaining is not None and remaining <= 0:
            raise ChainTimeoutError(f"Chain deadline expired before copying {table}", table=table)

    def query_options(self) -> QueryOptions:
        """Driver options, with the request timeout capped by the time left"""
        remaining = self.remaining_time()
        if remaining is None:
            return self.options
        timeout = remaining if self.options.timeout is None else min(remaining, self.options.timeout)
        return replace(self.options, timeout=max(timeout, 0.001))

    def record(self, result: CopyResult) -> CopyResult:
        self.results.append(result)
        return result


@dataclass
class MigrationReport:
    """Migration progress and results"""
    source: str
    target: str
    start_time: datetime
    end_time: Optional[datetime] = None
    chains: List[ChainResult] = field(default_factory=list)
    key_sets: Dict[str, int] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(c.status == ChainStatus.COMPLETED for c in self.chains)

    @property
    def mismatches(self) -> List[CopyResult]:
        return [m for c in self.chains for m in c.mismatches]

    def to_dict(self) -> Dict[str, Any]:
        rows_copied = sum(r.source_count for c in self.chains for r in c.results
                          if r.status == StageStatus.COPIED)
        return {
            "source": self.source,
            "target": self.target,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": (self.end_time - self.start_time).total_seconds() if self.end_time else None,
            "chains": [c.to_dict() for c in self.chains],
            "rows_copied": rows_copied,
            "mismatches": [m.table for m in self.mismatches],
            "key_sets": self.key_sets,
            "success": self.success,
        }
