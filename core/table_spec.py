#!/usr/bin/env python3
"""
Table and Chain Declarations
============================

A ``TableSpec`` describes one source/target table pair: what it is filtered
by, which columns are copied and in which order, and which identifiers are
harvested from its rows for later stages. A ``ChainSpec`` is an ordered list
of table specs whose dependencies are checked when the chain is declared,
so a stage can only filter by a key set that an earlier stage (or the
chain's declared inputs) produces.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from core.errors import ChainConfigurationError

# Safety ceiling for a single select. Results are not paginated beyond it.
DEFAULT_ROW_LIMIT = 999999


def quote_ident(identifier: str) -> str:
    """Quote a CQL identifier, preserving case and characters such as ':'"""
    return '"' + identifier.replace('"', '""') + '"'


@dataclass(frozen=True)
class KeyExtractor:
    """Maps a source row to a value collected into the ``output`` key set.

    ``fn`` may return None to leave a row out of the set.
    """
    output: str
    fn: Callable[[Dict[str, Any]], Optional[str]]

    def extract(self, rows: Sequence[Dict[str, Any]]) -> set:
        values = set()
        for row in rows:
            value = self.fn(row)
            if value is not None:
                values.add(value)
        return values


def column(name: str) -> Callable[[Dict[str, Any]], Optional[str]]:
    """Extractor function returning one column of a row"""
    def _get(row: Dict[str, Any]) -> Optional[str]:
        return row.get(name)
    return _get


def column_with_prefix(name: str, prefix: str) -> Callable[[Dict[str, Any]], Optional[str]]:
    """Extractor function returning a column only when it starts with ``prefix``"""
    def _get(row: Dict[str, Any]) -> Optional[str]:
        value = row.get(name)
        if isinstance(value, str) and value.startswith(prefix):
            return value
        return None
    return _get


@dataclass(frozen=True)
class TableSpec:
    """One stage of a chain.

    Attributes:
        table: Table name, identical on source and target.
        columns: Insert columns in the exact order of the insert parameters.
        filter_column: Column the select is restricted on.
        filter_key_set: Key set whose values feed ``filter_column IN ?``.
        filter_param: Run parameter bound as ``filter_column = ?`` (root stages).
        extractors: Key sets harvested from the source rows.
        allow_filtering: Append ``ALLOW FILTERING`` to the select.
    """
    table: str
    columns: Tuple[str, ...]
    filter_column: Optional[str] = None
    filter_key_set: Optional[str] = None
    filter_param: Optional[str] = None
    extractors: Tuple[KeyExtractor, ...] = ()
    allow_filtering: bool = False

    def __post_init__(self):
        if not self.columns:
            raise ChainConfigurationError(f"Table {self.table} declares no columns")
        if len(set(self.columns)) != len(self.columns):
            raise ChainConfigurationError(f"Table {self.table} declares a column twice",
                                          {'columns': list(self.columns)})
        if self.filter_key_set and self.filter_param:
            raise ChainConfigurationError(
                f"Table {self.table} cannot filter by both a key set and a run parameter")
        if (self.filter_key_set or self.filter_param) and not self.filter_column:
            raise ChainConfigurationError(f"Table {self.table} has a filter but no filter column")

    @property
    def is_root(self) -> bool:
        return self.filter_key_set is None

    @property
    def outputs(self) -> List[str]:
        return [extractor.output for extractor in self.extractors]

    def select_query(self, row_limit: int = DEFAULT_ROW_LIMIT) -> str:
        """Bounded select used on the source and again on the target"""
        sql = f"SELECT * FROM {quote_ident(self.table)}"
        if self.filter_key_set:
            sql += f" WHERE {quote_ident(self.filter_column)} IN ?"
        elif self.filter_param:
            sql += f" WHERE {quote_ident(self.filter_column)} = ?"
        sql += f" LIMIT {int(row_limit)}"
        if self.allow_filtering:
            sql += " ALLOW FILTERING"
        return sql

    def insert_query(self) -> str:
        cols = ", ".join(quote_ident(c) for c in self.columns)
        placeholders = ", ".join(["?"] * len(self.columns))
        return f"INSERT INTO {quote_ident(self.table)} ({cols}) VALUES ({placeholders})"

    def insert_params(self, row: Dict[str, Any]) -> List[Any]:
        """Insert parameters for a source row, in declared column order"""
        return [row.get(c) for c in self.columns]


@dataclass(frozen=True)
class ChainSpec:
    """An ordered dependency chain of table copies.

    ``inputs`` names the key sets that must be seeded into the run before
    the chain starts; ``params`` names the run parameters root stages bind.
    """
    name: str
    stages: Tuple[TableSpec, ...]
    inputs: Tuple[str, ...] = ()
    params: Tuple[str, ...] = ()

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check that every filter dependency is produced before it is consumed"""
        if not self.stages:
            raise ChainConfigurationError(f"Chain {self.name} has no stages")

        available = set(self.inputs)
        seen_tables = set()
        for position, stage in enumerate(self.stages):
            if stage.table in seen_tables:
                raise ChainConfigurationError(
                    f"Chain {self.name} copies table {stage.table} twice",
                    {'chain': self.name, 'table': stage.table})
            seen_tables.add(stage.table)

            if stage.filter_key_set and stage.filter_key_set not in available:
                raise ChainConfigurationError(
                    f"Chain {self.name}: stage {position} ({stage.table}) filters by "
                    f"'{stage.filter_key_set}', which no earlier stage or chain input produces",
                    {'chain': self.name, 'table': stage.table, 'key_set': stage.filter_key_set})

            if stage.filter_param and stage.filter_param not in self.params:
                raise ChainConfigurationError(
                    f"Chain {self.name}: stage {stage.table} binds undeclared parameter "
                    f"'{stage.filter_param}'",
                    {'chain': self.name, 'table': stage.table, 'param': stage.filter_param})

            available.update(stage.outputs)

    @property
    def tables(self) -> List[str]:
        return [stage.table for stage in self.stages]
