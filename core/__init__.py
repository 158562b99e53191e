#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Migrator Core Package Initialization
Exports all main components for clean imports

Version: 1.0.0
"""

from core.errors import (
    ErrorCode,
    MigrationError,
    ConnectivityError,
    QueryError,
    ChainConfigurationError,
    ChainTimeoutError,
)
from core.key_store import KeyStore
from core.table_spec import ChainSpec, KeyExtractor, TableSpec, DEFAULT_ROW_LIMIT
from core.verification import Verdict, verify
from core.run_context import (
    ChainResult,
    ChainStatus,
    CopyResult,
    InsertMode,
    MigrationReport,
    RunContext,
    StageStatus,
)
from core.table_copier import copy_table
from core.pipeline import Pipeline
from core.chains import CHAINS, INVITATIONS, PRINCIPALS, get_chain

__version__ = "1.0.0"

__all__ = [
    'ErrorCode', 'MigrationError', 'ConnectivityError', 'QueryError',
    'ChainConfigurationError', 'ChainTimeoutError',
    'KeyStore',
    'ChainSpec', 'KeyExtractor', 'TableSpec', 'DEFAULT_ROW_LIMIT',
    'Verdict', 'verify',
    'ChainResult', 'ChainStatus', 'CopyResult', 'InsertMode', 'MigrationReport',
    'RunContext', 'StageStatus',
    'copy_table',
    'Pipeline',
    'CHAINS', 'INVITATIONS', 'PRINCIPALS', 'get_chain',
]
