#!/usr/bin/env python3
"""
Table Copier
============

Copies one table from the source cluster to the target cluster:

1. skip when the filter key set is empty (and mark the stage outputs empty)
2. bounded select on the source
3. harvest the stage's output key sets from the source rows
4. insert every row into the target, batched or one statement per row
5. re-run the same select on the target and compare row counts

Key sets are harvested before the insert is issued, so later stages see the
identifiers the source holds even if writing to the target fails.
"""

import logging
from typing import Any, Dict, List, Optional

from core.database_manager import DatabaseAdapter, DatabaseResult
from core.errors import ChainConfigurationError, error_from_code
from core.run_context import CopyResult, InsertMode, RunContext, StageStatus
from core.table_spec import TableSpec
from core.verification import Verdict, verify

logger = logging.getLogger(__name__)


def _check(result: DatabaseResult, spec: TableSpec, sql: str, side: str) -> DatabaseResult:
    """Turn a failed adapter result into the matching MigrationError"""
    if not result.success:
        raise error_from_code(
            result.error_code,
            f"{side} query on {spec.table} failed: {result.error_message} [{sql}]",
            table=spec.table,
            query=sql,
        )
    return result


def filter_values(ctx: RunContext, spec: TableSpec) -> Optional[List[Any]]:
    """Bind parameters for the stage's select, or None for an unfiltered root"""
    if spec.filter_key_set:
        return [sorted(ctx.key_store.get(spec.filter_key_set), key=str)]
    if spec.filter_param:
        value = ctx.params.get(spec.filter_param)
        if value is None:
            raise ChainConfigurationError(
                f"Run parameter '{spec.filter_param}' is required to copy {spec.table}",
                {'table': spec.table, 'param': spec.filter_param})
        return [value]
    return None


def _store_empty_outputs(ctx: RunContext, spec: TableSpec) -> None:
    for output in spec.outputs:
        ctx.key_store.set(output, ())


def _extract_key_sets(ctx: RunContext, spec: TableSpec, rows: List[Dict[str, Any]]) -> None:
    for extractor in spec.extractors:
        stored = ctx.key_store.set(extractor.output, extractor.extract(rows))
        logger.debug(f"Collected {len(stored)} values into '{extractor.output}' from {spec.table}")


def _insert_rows(ctx: RunContext, spec: TableSpec, rows: List[Dict[str, Any]]) -> None:
    insert_sql = spec.insert_query()
    total = len(rows)

    if ctx.insert_mode == InsertMode.SINGLE:
        for index, row in enumerate(rows, start=1):
            result = ctx.target.execute_query(insert_sql, spec.insert_params(row), ctx.query_options())
            _check(result, spec, insert_sql, "Target insert")
            if index % ctx.batch_size == 0 or index == total:
                logger.info(f"  Inserted {index}/{total} {spec.table} rows...")
        return

    for offset in range(0, total, ctx.batch_size):
        chunk = rows[offset:offset + ctx.batch_size]
        operations = [{'sql': insert_sql, 'params': spec.insert_params(row)} for row in chunk]
        result = ctx.target.execute_batch(operations, ctx.query_options())
        _check(result, spec, insert_sql, "Target batch")
        logger.info(f"  Inserted {offset + len(chunk)}/{total} {spec.table} rows...")


def _select(adapter: DatabaseAdapter, ctx: RunContext, spec: TableSpec, sql: str,
            params: Optional[List[Any]], side: str) -> List[Dict[str, Any]]:
    result = adapter.execute_query(sql, params, ctx.query_options())
    return _check(result, spec, sql, side).data


def copy_table(ctx: RunContext, spec: TableSpec) -> CopyResult:
    """Copy one table and verify its row count; see the module docstring"""
    ctx.check_deadline(spec.table)

    if spec.filter_key_set and not ctx.key_store.get(spec.filter_key_set):
        logger.info(f"✗  Skipped fetching {spec.table} rows ('{spec.filter_key_set}' is empty)")
        _store_empty_outputs(ctx, spec)
        return ctx.record(CopyResult(spec.table, 0, 0, StageStatus.SKIPPED))

    sql = spec.select_query(ctx.row_limit)
    params = filter_values(ctx, spec)

    rows = _select(ctx.source, ctx, spec, sql, params, "Source")
    logger.info(f"✓  Fetched {len(rows)} {spec.table} rows found...")

    if len(rows) >= ctx.row_limit:
        logger.warning(f"{spec.table}: result reached the row limit ({ctx.row_limit}); "
                       f"rows beyond it are not copied")

    if not rows:
        logger.info(f"✓  No {spec.table} rows found...")
        _store_empty_outputs(ctx, spec)
        return ctx.record(CopyResult(spec.table, 0, 0, StageStatus.EMPTY, Verdict.MATCH))

    _extract_key_sets(ctx, spec, rows)

    logger.info(f"✓  Inserting {spec.table}...")
    _insert_rows(ctx, spec, rows)

    target_rows = _select(ctx.target, ctx, spec, sql, params, "Target")
    verdict = verify(len(rows), len(target_rows))
    if verdict == Verdict.MATCH:
        logger.info(f"✓  {spec.table}: {len(rows)} rows on source, {len(target_rows)} on target (match)")
    else:
        logger.warning(f"✗  {spec.table}: {len(rows)} rows on source, {len(target_rows)} on target (mismatch)")

    return ctx.record(CopyResult(spec.table, len(rows), len(target_rows), StageStatus.COPIED, verdict))
