#!/usr/bin/env python3
"""
Migrator Cassandra Adapter - Cluster Access via cassandra-driver

This module provides the Cassandra adapter used for both ends of a
migration with:
- Lazy cluster/session setup with an execution profile
- Rows returned as dicts, so quoted columns such as "admin:global" are addressable
- Prepared statement caching
- Logged batches for all-or-nothing writes
- Driver errors classified as connectivity or query failures

Usage:
    adapter = CassandraAdapter(ConnectionConfig(contact_points=['10.0.0.5'], keyspace='oae'))
    result = adapter.execute_query('SELECT * FROM "Principals" WHERE "tenantAlias" = ?', ['cam'])
"""

import logging
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from cassandra import ConsistencyLevel, OperationTimedOut, ReadTimeout, Unavailable, WriteTimeout
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, NoHostAvailable
from cassandra.policies import DCAwareRoundRobinPolicy
from cassandra.query import BatchStatement, BatchType, SimpleStatement, ValueSequence, dict_factory

# Configure logging
logger = logging.getLogger(__name__)

# Failures that mean a node could not be reached or did not answer in time
CONNECTIVITY_ERRORS = (NoHostAvailable, OperationTimedOut, Unavailable, ReadTimeout, WriteTimeout)

_IN_PLACEHOLDER = re.compile(r'\bIN\s*$', re.IGNORECASE)

class ConnectionState(Enum):
    """Connection states"""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"

@dataclass
class ConnectionConfig:
    """Cassandra connection configuration"""
    contact_points: List[str] = field(default_factory=lambda: ['127.0.0.1'])
    port: int = 9042
    keyspace: str = "oae"

    # Authentication
    username: Optional[str] = None
    password: Optional[str] = None

    # Routing
    local_dc: Optional[str] = None
    protocol_version: Optional[int] = None

    # Request settings
    consistency: str = "LOCAL_QUORUM"
    connect_timeout: float = 10.0
    request_timeout: float = 60.0  # seconds

    prepared_cache_size: int = 100

    def to_cluster_params(self) -> Dict[str, Any]:
        """Convert to cassandra.cluster.Cluster keyword arguments"""
        profile_params = {
            'row_factory': dict_factory,
            'request_timeout': self.request_timeout,
            'consistency_level': ConsistencyLevel.name_to_value[self.consistency.upper()],
        }
        if self.local_dc:
            profile_params['load_balancing_policy'] = DCAwareRoundRobinPolicy(local_dc=self.local_dc)

        params = {
            'contact_points': list(self.contact_points),
            'port': self.port,
            'connect_timeout': self.connect_timeout,
            'execution_profiles': {EXEC_PROFILE_DEFAULT: ExecutionProfile(**profile_params)},
        }
        if self.protocol_version:
            params['protocol_version'] = int(self.protocol_version)
        if self.username:
            params['auth_provider'] = PlainTextAuthProvider(username=self.username,
                                                            password=self.password or '')
        return params

class PreparedStatementCache:
    """LRU cache of prepared statements keyed by CQL text"""

    def __init__(self, max_size: int = 100):
        self.max_size = max_size
        self.cache: "OrderedDict[str, Any]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, sql: str):
        with self._lock:
            statement = self.cache.get(sql)
            if statement is not None:
                self.cache.move_to_end(sql)
            return statement

    def put(self, sql: str, statement) -> None:
        with self._lock:
            self.cache[sql] = statement
            self.cache.move_to_end(sql)
            while len(self.cache) > self.max_size:
                self.cache.popitem(last=False)

    def __len__(self) -> int:
        return len(self.cache)

def to_simple_statement(sql: str, params: Optional[List[Any]]) -> Tuple[str, Optional[List[Any]]]:
    """Rewrite a '?' statement for unprepared execution.

    The driver formats unprepared statements with '%s' markers, and a value
    bound to ``IN`` has to be wrapped in a ValueSequence to render as a
    parenthesised list.
    """
    pieces = sql.split('?')
    if params is None or len(pieces) == 1:
        return sql, params

    converted = []
    for index, value in enumerate(params):
        if _IN_PLACEHOLDER.search(pieces[index]) and isinstance(value, (list, tuple, set, frozenset)):
            value = ValueSequence(list(value))
        converted.append(value)
    return '%s'.join(pieces), converted

class CassandraAdapter:
    """
    Cassandra adapter for the keyspace migrator

    Every public method returns a plain dict (``success``, ``data``,
    ``rows_affected``, ``execution_time``, ``error``, ``error_kind``)
    instead of raising, so callers decide how a failure is surfaced.
    """

    def __init__(self, config: Optional[ConnectionConfig] = None, **kwargs):
        self.config = config or ConnectionConfig(**kwargs)
        self.cluster = None
        self.session = None
        self.state = ConnectionState.DISCONNECTED
        self._lock = threading.RLock()
        self.statement_cache = PreparedStatementCache(self.config.prepared_cache_size)

        # Statistics
        self.stats = {
            'queries_executed': 0,
            'batches_executed': 0,
            'failed_queries': 0,
            'rows_returned': 0,
            'total_execution_time': 0.0,
            'start_time': time.time()
        }

    def connect(self):
        """Open the cluster connection and session on first use"""
        with self._lock:
            if self.session is not None:
                return self.session
            hosts = ','.join(self.config.contact_points)
            logger.info(f"Connecting to Cassandra at {hosts}:{self.config.port} (keyspace {self.config.keyspace})")
            try:
                self.cluster = Cluster(**self.config.to_cluster_params())
                self.session = self.cluster.connect(self.config.keyspace)
                self.state = ConnectionState.CONNECTED
            except Exception:
                self.state = ConnectionState.ERROR
                if self.cluster is not None:
                    self.cluster.shutdown()
                self.cluster = None
                raise
            return self.session

    def _prepare(self, session, sql: str):
        statement = self.statement_cache.get(sql)
        if statement is None:
            statement = session.prepare(sql)
            self.statement_cache.put(sql, statement)
        return statement

    def _failure(self, error: Exception, start_time: float) -> Dict[str, Any]:
        self.stats['failed_queries'] += 1
        kind = 'connectivity' if isinstance(error, CONNECTIVITY_ERRORS) else 'query'
        if kind == 'connectivity':
            self.state = ConnectionState.ERROR
        return {
            'success': False,
            'data': [],
            'rows_affected': 0,
            'execution_time': time.time() - start_time,
            'error': f"{type(error).__name__}: {error}",
            'error_kind': kind,
        }

    def execute_query(self, sql: str, params: Optional[List[Any]] = None, fetch_size: Optional[int] = None,
                      prepare: bool = True, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Execute a statement and return every row (following driver paging)"""
        start_time = time.time()
        try:
            session = self.connect()
            if prepare:
                statement = self._prepare(session, sql).bind(params or [])
                bound_params = None
            else:
                cql, bound_params = to_simple_statement(sql, params)
                statement = SimpleStatement(cql)
            if fetch_size:
                statement.fetch_size = fetch_size

            kwargs = {}
            if timeout is not None:
                kwargs['timeout'] = timeout
            result_set = session.execute(statement, bound_params, **kwargs)
            data = [dict(row) for row in result_set] if result_set is not None else []
        except Exception as e:
            logger.debug(f"Query failed: {sql} ({e})")
            return self._failure(e, start_time)

        execution_time = time.time() - start_time
        self.stats['queries_executed'] += 1
        self.stats['rows_returned'] += len(data)
        self.stats['total_execution_time'] += execution_time
        return {
            'success': True,
            'data': data,
            'rows_affected': len(data),
            'execution_time': execution_time,
            'prepared': prepare,
        }

    def execute_batch(self, operations: List[Dict[str, Any]], prepare: bool = True,
                      timeout: Optional[float] = None) -> Dict[str, Any]:
        """Apply ``[{'sql': ..., 'params': [...]}, ...]`` as one logged batch"""
        start_time = time.time()
        try:
            session = self.connect()
            batch = BatchStatement(batch_type=BatchType.LOGGED)
            for operation in operations:
                sql = operation['sql']
                params = operation.get('params')
                if prepare:
                    batch.add(self._prepare(session, sql), params)
                else:
                    cql, simple_params = to_simple_statement(sql, params)
                    batch.add(SimpleStatement(cql), simple_params)

            kwargs = {}
            if timeout is not None:
                kwargs['timeout'] = timeout
            session.execute(batch, **kwargs)
        except Exception as e:
            logger.debug(f"Batch of {len(operations)} operations failed: {e}")
            return self._failure(e, start_time)

        execution_time = time.time() - start_time
        self.stats['batches_executed'] += 1
        self.stats['queries_executed'] += len(operations)
        self.stats['total_execution_time'] += execution_time
        return {
            'success': True,
            'data': [],
            'rows_affected': len(operations),
            'execution_time': execution_time,
            'prepared': prepare,
        }

    def get_statistics(self) -> Dict[str, Any]:
        """Get adapter statistics"""
        total_queries = self.stats['queries_executed']
        return {
            'backend': 'cassandra',
            'contact_points': list(self.config.contact_points),
            'keyspace': self.config.keyspace,
            'state': self.state.value,
            'uptime_seconds': time.time() - self.stats['start_time'],
            'queries_executed': total_queries,
            'batches_executed': self.stats['batches_executed'],
            'failed_queries': self.stats['failed_queries'],
            'rows_returned': self.stats['rows_returned'],
            'prepared_statements': len(self.statement_cache),
            'avg_execution_time': self.stats['total_execution_time'] / max(total_queries, 1),
        }

    def close(self):
        """Shut down the session and cluster"""
        with self._lock:
            if self.cluster is not None:
                self.cluster.shutdown()
                logger.info(f"Cassandra connection to {','.join(self.config.contact_points)} closed")
            self.cluster = None
            self.session = None
            self.state = ConnectionState.DISCONNECTED
