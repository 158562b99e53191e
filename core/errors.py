#!/usr/bin/env python3
"""
Migrator Error Hierarchy
Canonical exception classes for the keyspace migrator.

Only connectivity, query, configuration and deadline failures are errors.
An empty dependency key set and a row-count mismatch are normal outcomes
and are reported through CopyResult, never raised.
"""

from enum import Enum

class ErrorCode(Enum):
    UNKNOWN = "UNKNOWN_ERROR"
    CONNECTIVITY_ERROR = "CONNECTIVITY_ERROR"
    QUERY_ERROR = "QUERY_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    TIMEOUT = "TIMEOUT"

class MigrationError(Exception):
    """Base class for all migrator exceptions"""
    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

class ConnectivityError(MigrationError):
    """Raised when the source or target cluster cannot be reached"""
    def __init__(self, message: str, table: str = None, query: str = None):
        details = {'table': table, 'query': query}
        super().__init__(message, ErrorCode.CONNECTIVITY_ERROR, details)

class QueryError(MigrationError):
    """Raised when a statement is rejected (malformed CQL, schema mismatch, failed batch)"""
    def __init__(self, message: str, table: str = None, query: str = None):
        details = {'table': table, 'query': query}
        super().__init__(message, ErrorCode.QUERY_ERROR, details)

class ChainConfigurationError(MigrationError):
    """Raised when a chain declaration is invalid or its inputs are missing"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)

class ChainTimeoutError(MigrationError):
    """Raised when a chain exceeds its deadline"""
    def __init__(self, message: str, table: str = None):
        super().__init__(message, ErrorCode.TIMEOUT, {'table': table})


def error_from_code(code: ErrorCode, message: str, table: str = None, query: str = None) -> MigrationError:
    """Build the exception matching an adapter failure code"""
    if code == ErrorCode.CONNECTIVITY_ERROR:
        return ConnectivityError(message, table=table, query=query)
    if code == ErrorCode.TIMEOUT:
        return ChainTimeoutError(message, table=table)
    return QueryError(message, table=table, query=query)
