#!/usr/bin/env python3
"""
Pipeline Orchestrator
=====================

Runs dependency chains of table copies. Stages of one chain run strictly in
order inside a fresh RunContext; a connectivity, query, configuration or
deadline failure aborts the remaining stages of that chain only. Row-count
mismatches are recorded and never stop a chain.

Independent chains can run on a thread pool. They share the run's KeyStore,
which is why chain key-set names carry the chain prefix.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from core.database_manager import DatabaseAdapter, QueryOptions
from core.errors import ChainConfigurationError, ChainTimeoutError, MigrationError
from core.key_store import KeyStore
from core.run_context import ChainResult, ChainStatus, InsertMode, MigrationReport, RunContext
from core.table_copier import copy_table
from core.table_spec import DEFAULT_ROW_LIMIT, ChainSpec

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_TIMEOUT = 3600.0


class Pipeline:
    """Copies chains of tables from ``source`` to ``target``"""

    def __init__(self, source: DatabaseAdapter, target: DatabaseAdapter,
                 key_store: Optional[KeyStore] = None,
                 params: Optional[Dict[str, str]] = None,
                 options: Optional[QueryOptions] = None,
                 row_limit: int = DEFAULT_ROW_LIMIT,
                 insert_mode: InsertMode = InsertMode.BATCH,
                 batch_size: int = 100,
                 chain_timeout: Optional[float] = DEFAULT_CHAIN_TIMEOUT,
                 source_name: str = "source",
                 target_name: str = "target"):
        if batch_size < 1:
            raise ChainConfigurationError(f"batch_size must be positive, got {batch_size}")
        if row_limit < 1:
            raise ChainConfigurationError(f"row_limit must be positive, got {row_limit}")

        self.source = source
        self.target = target
        self.key_store = key_store if key_store is not None else KeyStore()
        self.params = dict(params or {})
        self.options = options or QueryOptions(fetch_size=row_limit)
        self.row_limit = row_limit
        self.insert_mode = insert_mode
        self.batch_size = batch_size
        self.chain_timeout = chain_timeout
        self.source_name = source_name
        self.target_name = target_name

    def seed(self, name: str, values) -> None:
        """Store a chain input key set before the run starts"""
        stored = self.key_store.set(name, values)
        logger.info(f"Seeded '{name}' with {len(stored)} values")

    def build_context(self) -> RunContext:
        """Fresh per-invocation context; only the key store is shared"""
        deadline = None
        if self.chain_timeout:
            deadline = time.monotonic() + self.chain_timeout
        return RunContext(
            source=self.source,
            target=self.target,
            key_store=self.key_store,
            params=dict(self.params),
            options=self.options,
            row_limit=self.row_limit,
            insert_mode=self.insert_mode,
            batch_size=self.batch_size,
            deadline=deadline,
        )

    def _check_inputs(self, chain: ChainSpec) -> None:
        missing = [name for name in chain.inputs if not self.key_store.has(name)]
        if missing:
            raise ChainConfigurationError(
                f"Chain {chain.name} is missing input key sets: {', '.join(missing)}",
                {'chain': chain.name, 'missing_inputs': missing})

        missing = [name for name in chain.params if not self.params.get(name)]
        if missing:
            raise ChainConfigurationError(
                f"Chain {chain.name} is missing run parameters: {', '.join(missing)}",
                {'chain': chain.name, 'missing_params': missing})

    def run_chain(self, chain: ChainSpec) -> ChainResult:
        """Copy every table of ``chain`` in order"""
        start = time.time()
        ctx = self.build_context()
        result = ChainResult(chain=chain.name, status=ChainStatus.COMPLETED, results=ctx.results)

        logger.info(f"Starting chain {chain.name} ({len(chain.stages)} tables)")
        try:
            self._check_inputs(chain)
            for stage in chain.stages:
                copy_table(ctx, stage)
        except MigrationError as e:
            result.error = e.message
            result.failed_table = e.details.get('table')
            remaining = ctx.remaining_time()
            if isinstance(e, ChainTimeoutError) or (remaining is not None and remaining <= 0):
                result.status = ChainStatus.TIMED_OUT
                logger.error(f"Chain {chain.name} timed out after {self.chain_timeout}s: {e.message}")
            else:
                result.status = ChainStatus.ABORTED
                logger.error(f"Chain {chain.name} aborted: {e.message}")

        result.duration = time.time() - start
        if result.status == ChainStatus.COMPLETED:
            logger.info(f"Chain {chain.name} completed in {result.duration:.2f}s "
                        f"({len(result.mismatches)} mismatches)")
        return result

    def run(self, chains: Sequence[ChainSpec], concurrent: bool = False,
            max_workers: Optional[int] = None) -> MigrationReport:
        """Run ``chains`` sequentially or on a thread pool and summarise the run"""
        report = MigrationReport(source=self.source_name, target=self.target_name,
                                 start_time=datetime.now())

        if concurrent and len(chains) > 1:
            ordered: Dict[int, ChainResult] = {}
            with ThreadPoolExecutor(max_workers=max_workers or len(chains),
                                    thread_name_prefix="chain") as executor:
                futures = {executor.submit(self.run_chain, chain): index
                           for index, chain in enumerate(chains)}
                for future in as_completed(futures):
                    ordered[futures[future]] = future.result()
            report.chains = [ordered[index] for index in range(len(chains))]
        else:
            report.chains = [self.run_chain(chain) for chain in chains]

        report.end_time = datetime.now()
        report.key_sets = self.key_store.snapshot()
        log_summary(report)
        return report


def log_summary(report: MigrationReport) -> None:
    """Log the end-of-run summary"""
    logger.info("=" * 60)
    logger.info("Migration summary")
    for chain in report.chains:
        logger.info(f"  {chain.chain}: {chain.status.value} ({chain.duration:.2f}s)")
        for copy in chain.results:
            verdict = copy.verdict.value if copy.verdict else "-"
            logger.info(f"    {copy.table}: {copy.status.value}, "
                        f"{copy.source_count} source / {copy.target_count} target, {verdict}")
        if chain.error:
            logger.info(f"    error at {chain.failed_table or 'start'}: {chain.error}")

    mismatches: List[str] = [m.table for m in report.mismatches]
    if mismatches:
        logger.warning(f"Row-count mismatches: {', '.join(mismatches)}")
    logger.info(f"Overall: {'SUCCESS' if report.success else 'FAILED'}")
    logger.info("=" * 60)
