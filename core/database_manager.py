#!/usr/bin/env python3
"""
Migrator Database Manager - Source/Target Cluster Access

This module provides the database client capability the migration core is
written against: a small adapter interface (``execute_query`` and
``execute_batch``) returning a unified ``DatabaseResult``, and a manager
that builds the named ``source`` and ``target`` backends from configuration.

Supported backends:
- Cassandra (cassandra-driver)

Usage:
    manager = DatabaseManager(config_path="migrator.json")
    result = manager.execute_query('SELECT * FROM "Principals" LIMIT 10', backend="source")
"""

import json
import logging
import os
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Any, Optional

from core.errors import ChainConfigurationError, ErrorCode

# Configure logging
logger = logging.getLogger(__name__)

class BackendType(Enum):
    """Supported database backend types"""
    CASSANDRA = "cassandra"

@dataclass
class QueryOptions:
    """Pass-through driver options for one statement.

    ``timeout`` is the per-request timeout in seconds; None keeps the
    driver default.
    """
    fetch_size: int = 999999
    prepare: bool = True
    timeout: Optional[float] = None

@dataclass
class DatabaseResult:
    """Unified database result object"""
    success: bool
    data: List[Dict[str, Any]]
    rows_affected: int
    execution_time: float
    backend: str
    sql_executed: str
    error_message: Optional[str] = None
    error_code: ErrorCode = ErrorCode.UNKNOWN
    metadata: Dict[str, Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'success': self.success,
            'data': self.data,
            'rows_affected': self.rows_affected,
            'execution_time': self.execution_time,
            'backend': self.backend,
            'sql_executed': self.sql_executed,
            'error_message': self.error_message,
            'error_code': self.error_code.value if not self.success else None,
            'metadata': self.metadata or {}
        }

class DatabaseAdapter:
    """Base class for database adapters"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.backend_type = config.get('type', 'unknown')

    def execute_query(self, sql: str, params: Optional[List[Any]] = None,
                      options: Optional[QueryOptions] = None) -> DatabaseResult:
        """Execute a query - to be implemented by subclasses"""
        raise NotImplementedError("Subclasses must implement execute_query")

    def execute_batch(self, operations: List[Dict[str, Any]],
                      options: Optional[QueryOptions] = None) -> DatabaseResult:
        """Execute a batch of writes - to be implemented by subclasses"""
        raise NotImplementedError("Subclasses must implement execute_batch")

    def close(self):
        """Close connections - to be implemented by subclasses"""
        pass

    def get_statistics(self) -> Dict[str, Any]:
        """Get adapter statistics - to be implemented by subclasses"""
        return {}

_ERROR_KINDS = {
    'connectivity': ErrorCode.CONNECTIVITY_ERROR,
    'query': ErrorCode.QUERY_ERROR,
}

class CassandraAdapterWrapper(DatabaseAdapter):
    """Wrapper for Cassandra adapter to match DatabaseAdapter interface"""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)

        # Import Cassandra adapter
        try:
            from extensions.plugins.cassandra_adapter import CassandraAdapter, ConnectionConfig

            hosts = config.get('hosts', ['127.0.0.1'])
            if isinstance(hosts, str):
                hosts = [h.strip() for h in hosts.split(',') if h.strip()]

            cassandra_config = ConnectionConfig(
                contact_points=hosts,
                port=int(config.get('port', 9042)),
                keyspace=config.get('keyspace', 'oae'),
                username=config.get('username') or None,
                password=config.get('password') or None,
                local_dc=config.get('local_dc') or None,
                protocol_version=config.get('protocol_version'),
                consistency=config.get('consistency', 'LOCAL_QUORUM'),
                connect_timeout=float(config.get('connect_timeout', 10)),
                request_timeout=float(config.get('request_timeout', 60)),
                prepared_cache_size=int(config.get('prepared_cache_size', 100)),
            )

            self.adapter = CassandraAdapter(cassandra_config)

        except ImportError as e:
            logger.error(f"Cassandra adapter not available: {e}")
            raise RuntimeError("Cassandra adapter not available. Install cassandra-driver: pip install cassandra-driver")
        except Exception as e:
            logger.error(f"Failed to initialize Cassandra adapter: {e}")
            raise

    def _to_result(self, result: Dict[str, Any], sql: str) -> DatabaseResult:
        return DatabaseResult(
            success=result['success'],
            data=result['data'],
            rows_affected=result['rows_affected'],
            execution_time=result['execution_time'],
            backend="cassandra",
            sql_executed=sql,
            error_message=result.get('error'),
            error_code=_ERROR_KINDS.get(result.get('error_kind'), ErrorCode.UNKNOWN),
            metadata={
                'prepared_statement': result.get('prepared', False),
                'keyspace': self.adapter.config.keyspace,
            }
        )

    def execute_query(self, sql: str, params: Optional[List[Any]] = None,
                      options: Optional[QueryOptions] = None) -> DatabaseResult:
        """Execute CQL query"""
        options = options or QueryOptions()
        result = self.adapter.execute_query(sql, params, fetch_size=options.fetch_size,
                                            prepare=options.prepare, timeout=options.timeout)
        return self._to_result(result, sql)

    def execute_batch(self, operations: List[Dict[str, Any]],
                      options: Optional[QueryOptions] = None) -> DatabaseResult:
        """Execute CQL batch"""
        options = options or QueryOptions()
        result = self.adapter.execute_batch(operations, prepare=options.prepare,
                                            timeout=options.timeout)
        return self._to_result(result, f"Batch with {len(operations)} operations")

    def close(self):
        """Close Cassandra connections"""
        self.adapter.close()

    def get_statistics(self) -> Dict[str, Any]:
        """Get Cassandra adapter statistics"""
        return self.adapter.get_statistics()

class DatabaseManager:
    """
    Source/target database manager for the migrator

    Provides:
    - Configuration-driven setup (JSON file with ${VAR:default} expansion)
    - Lazy backend initialization
    - Credential redaction for diagnostics
    """

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        """Initialize database manager"""
        if config:
            self.config = config
        else:
            self.config = self._load_config(config_path)
        self.adapters: Dict[str, DatabaseAdapter] = {}
        self._lock = threading.RLock()

        logger.info(f"Database manager configured with backends: {', '.join(self.get_available_backends())}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_all()
        return False

    def _load_config(self, config_path: Optional[str]) -> Dict[str, Any]:
        """Load database configuration"""
        if config_path is None:
            return self._get_default_config()

        if not os.path.exists(config_path):
            raise ChainConfigurationError(f"Config file not found: {config_path}")

        with open(config_path, 'r') as f:
            try:
                config = json.load(f)
            except json.JSONDecodeError as e:
                raise ChainConfigurationError(f"Invalid config file {config_path}: {e}")

        # Resolve environment variables
        return self._resolve_environment_variables(config)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration"""
        return {
            'backends': {
                'source': {
                    'type': 'cassandra',
                    'hosts': ['127.0.0.1'],
                    'keyspace': 'oae',
                },
                'target': {
                    'type': 'cassandra',
                    'hosts': ['127.0.0.1'],
                    'keyspace': 'oae_target',
                }
            }
        }

    def _resolve_environment_variables(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve environment variables in configuration"""
        def resolve_value(value):
            if isinstance(value, str):
                # Handle ${VAR} and ${VAR:default} patterns
                pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

                def replace_env_var(match):
                    var_name = match.group(1)
                    default_value = match.group(2) if match.group(2) is not None else ''
                    return os.environ.get(var_name, default_value)

                return re.sub(pattern, replace_env_var, value)
            elif isinstance(value, dict):
                return {k: resolve_value(v) for k, v in value.items()}
            elif isinstance(value, list):
                return [resolve_value(item) for item in value]
            else:
                return value

        return resolve_value(config)

    def _initialize_backend(self, backend_name: str):
        """Initialize a database backend"""
        with self._lock:
            if backend_name in self.adapters:
                return  # Already initialized

            backend_config = self.config.get('backends', {}).get(backend_name)
            if not backend_config:
                raise ChainConfigurationError(f"No configuration found for backend: {backend_name}")

            backend_type = backend_config.get('type', BackendType.CASSANDRA.value)

            try:
                if backend_type == BackendType.CASSANDRA.value:
                    self.adapters[backend_name] = CassandraAdapterWrapper(backend_config)
                else:
                    raise ChainConfigurationError(f"Unsupported backend type: {backend_type}")

                logger.info(f"Initialized backend: {backend_name} ({backend_type})")

            except Exception as e:
                logger.error(f"Failed to initialize backend {backend_name}: {e}")
                raise

    def get_adapter(self, backend: str) -> DatabaseAdapter:
        """Return the adapter for ``backend``, initializing it on first use"""
        if backend not in self.adapters:
            self._initialize_backend(backend)
        return self.adapters[backend]

    def execute_query(self, sql: str, params: Optional[List[Any]] = None,
                      backend: str = "source", options: Optional[QueryOptions] = None) -> DatabaseResult:
        """
        Execute CQL query on specified backend

        Args:
            sql: CQL query string
            params: Query parameters (optional)
            backend: Backend name ("source" or "target")
            options: Driver options (fetch size, prepared statements, timeout)

        Returns:
            DatabaseResult with execution details
        """
        return self.get_adapter(backend).execute_query(sql, params, options)

    def execute_batch(self, operations: List[Dict[str, Any]], backend: str = "target",
                      options: Optional[QueryOptions] = None) -> DatabaseResult:
        """Execute a batch of writes on specified backend"""
        return self.get_adapter(backend).execute_batch(operations, options)

    def get_available_backends(self) -> List[str]:
        """Get list of configured backends"""
        return list(self.config.get('backends', {}).keys())

    # Keys to redact from backend config to prevent credential leakage
    _SECRET_KEYS = {'password', 'passwd', 'pwd', 'secret', 'token', 'api_key',
                    'apikey', 'auth', 'credential', 'credentials', 'key', 'private_key'}

    def get_backend_info(self, backend: str) -> Dict[str, Any]:
        """Get information about a backend (secrets redacted)"""
        backend_config = self.config.get('backends', {}).get(backend, {})

        safe_config = {}
        for k, v in backend_config.items():
            if k.lower() in self._SECRET_KEYS or any(s in k.lower() for s in ('secret', 'credential', 'token', 'password')):
                safe_config[k] = '***REDACTED***'
            else:
                safe_config[k] = v

        info = {
            'name': backend,
            'type': backend_config.get('type', 'unknown'),
            'initialized': backend in self.adapters,
            'config': safe_config
        }

        if backend in self.adapters:
            info['statistics'] = self.adapters[backend].get_statistics()

        return info

    def get_statistics(self) -> Dict[str, Any]:
        """Get statistics for all backends"""
        return {
            'available_backends': self.get_available_backends(),
            'initialized_backends': list(self.adapters.keys()),
            'backend_stats': {name: adapter.get_statistics() for name, adapter in self.adapters.items()}
        }

    def close_all(self):
        """Close all database connections"""
        logger.info("Closing all database connections")

        with self._lock:
            for backend_name, adapter in self.adapters.items():
                try:
                    adapter.close()
                    logger.info(f"Closed backend: {backend_name}")
                except Exception as e:
                    logger.error(f"Error closing backend {backend_name}: {e}")

            self.adapters.clear()
