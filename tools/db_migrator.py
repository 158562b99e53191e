#!/usr/bin/env python3
"""
Cassandra Keyspace Migrator
===========================

Copies dependency chains of tables from a source Cassandra cluster to a
target cluster, feeding the identifiers found in each table forward as the
filter of the tables that depend on it, and verifying row counts on the
target afterwards.

Chains:
-------
invitations: AuthzInvitations -> ...ResourceIdByEmail -> ...TokenByEmail -> ...EmailByToken
             (scoped by --resource-ids / --resource-ids-file)
principals:  Principals -> PrincipalsByEmail
             (scoped by --tenant)

Secrets are never taken from the command line; set MIGRATOR_SOURCE_PASSWORD
and MIGRATOR_TARGET_PASSWORD in the environment or in .env.

Usage:
    cassandra-migrator --source-hosts 10.0.0.5 --target-hosts 10.0.1.5 --tenant cam
    cassandra-migrator --config migrator.json --resource-ids-file ids.txt --report report.json

Version: 1.0.0
"""

import argparse
import json
import logging
import sys
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

# Add parent directory to path to import the migrator core
sys.path.insert(0, str(Path(__file__).parent.parent.resolve()))

from config.secure_config import MigratorConfig, get_config
from core.chains import CHAINS, INVITATION_RESOURCE_IDS, TENANT_ALIAS, get_chains
from core.database_manager import DatabaseManager, QueryOptions
from core.errors import ChainConfigurationError, MigrationError
from core.pipeline import Pipeline
from core.run_context import InsertMode, MigrationReport
from core.table_spec import ChainSpec

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)

class DBMigrator:
    """Keyspace migration tool"""

    def __init__(self, manager: DatabaseManager, chains: List[ChainSpec],
                 config: Optional[MigratorConfig] = None,
                 tenant: Optional[str] = None,
                 resource_ids: Optional[List[str]] = None,
                 concurrent: bool = False,
                 report_path: Optional[str] = None,
                 log_file: Optional[str] = None):
        self.manager = manager
        self.chains = chains
        self.config = config or get_config()
        self.tenant = tenant
        self.resource_ids = resource_ids
        self.concurrent = concurrent
        self.report_path = Path(report_path) if report_path else None
        self.log_file = log_file
        self.run_id = f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"

        try:
            self.insert_mode = InsertMode(self.config.insert_mode)
        except ValueError:
            raise ChainConfigurationError(f"Unknown insert mode: {self.config.insert_mode}")

    def _attach_log_file(self) -> Optional[logging.Handler]:
        if not self.log_file:
            return None
        log_path = Path(self.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)
        return file_handler

    def build_pipeline(self) -> Pipeline:
        params: Dict[str, str] = {}
        if self.tenant:
            params[TENANT_ALIAS] = self.tenant

        pipeline = Pipeline(
            source=self.manager.get_adapter("source"),
            target=self.manager.get_adapter("target"),
            params=params,
            options=QueryOptions(fetch_size=self.config.row_limit),
            row_limit=self.config.row_limit,
            insert_mode=self.insert_mode,
            batch_size=self.config.batch_size,
            chain_timeout=self.config.chain_timeout,
            source_name=self._describe("source"),
            target_name=self._describe("target"),
        )
        if self.resource_ids is not None:
            pipeline.seed(INVITATION_RESOURCE_IDS, self.resource_ids)
        return pipeline

    def _describe(self, backend: str) -> str:
        info = self.manager.get_backend_info(backend)['config']
        hosts = info.get('hosts', [])
        if isinstance(hosts, list):
            hosts = ','.join(hosts)
        return f"{hosts}/{info.get('keyspace', '')}"

    def run(self) -> MigrationReport:
        """Run the migration"""
        file_handler = self._attach_log_file()
        try:
            logger.info(f"Starting Run: {self.run_id}")
            logger.info(f"Chains: {', '.join(chain.name for chain in self.chains)} "
                        f"({'concurrent' if self.concurrent else 'sequential'}, "
                        f"{self.insert_mode.value} inserts)")

            report = self.build_pipeline().run(self.chains, concurrent=self.concurrent)

            if self.report_path:
                self.write_report(report)
            return report
        finally:
            if file_handler is not None:
                logging.getLogger().removeHandler(file_handler)
                file_handler.close()

    def write_report(self, report: MigrationReport):
        self.report_path.parent.mkdir(parents=True, exist_ok=True)
        payload = dict(report.to_dict(), run_id=self.run_id)
        with open(self.report_path, 'w') as f:
            json.dump(payload, f, indent=2)
        logger.info(f"Report written to {self.report_path}")

def read_resource_ids(values: Optional[List[str]], file_path: Optional[str]) -> Optional[List[str]]:
    """Collect resource ids from the command line (comma or space separated) and a file"""
    if not values and not file_path:
        return None

    ids: List[str] = []
    for value in values or []:
        ids.extend(part.strip() for part in value.split(',') if part.strip())

    if file_path:
        with open(file_path, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    ids.append(line)
    return ids

def apply_overrides(config: MigratorConfig, args: argparse.Namespace) -> MigratorConfig:
    """Command line flags take precedence over the environment"""
    if args.source_hosts:
        config.source_hosts = [h.strip() for h in args.source_hosts.split(',') if h.strip()]
    if args.target_hosts:
        config.target_hosts = [h.strip() for h in args.target_hosts.split(',') if h.strip()]
    if args.source_keyspace:
        config.source_keyspace = args.source_keyspace
    if args.target_keyspace:
        config.target_keyspace = args.target_keyspace
    if args.insert_mode:
        config.insert_mode = args.insert_mode
    if args.batch_size is not None:
        config.batch_size = args.batch_size
    if args.row_limit is not None:
        config.row_limit = args.row_limit
    if args.chain_timeout is not None:
        config.chain_timeout = args.chain_timeout
    return config

def build_manager(config: MigratorConfig, args: argparse.Namespace) -> DatabaseManager:
    """DatabaseManager from --config (with flag overrides) or from MigratorConfig"""
    if not args.config:
        return DatabaseManager(config=config.database_config())

    manager = DatabaseManager(config_path=args.config)
    backends = manager.config.setdefault('backends', {})
    for side in ('source', 'target'):
        backend = backends.setdefault(side, config.backend_config(side))
        if getattr(args, f'{side}_hosts'):
            backend['hosts'] = list(getattr(config, f'{side}_hosts'))
        if getattr(args, f'{side}_keyspace'):
            backend['keyspace'] = getattr(config, f'{side}_keyspace')
        if not backend.get('password') and getattr(config, f'{side}_password'):
            backend['password'] = getattr(config, f'{side}_password')
    return manager

def select_chains(args: argparse.Namespace, resource_ids: Optional[List[str]]) -> List[ChainSpec]:
    if args.chains:
        return get_chains([name.strip() for name in args.chains.split(',') if name.strip()])

    names = []
    if resource_ids is not None:
        names.append('invitations')
    if args.tenant:
        names.append('principals')
    if not names:
        raise ChainConfigurationError(
            "Nothing to migrate: pass --resource-ids/--resource-ids-file, --tenant or --chains")
    return get_chains(names)

def configure_logging(verbose: bool, level: str = 'INFO'):
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    logging.getLogger().setLevel(log_level)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cassandra Keyspace Migrator")
    parser.add_argument("--config", help="JSON backend configuration (supports ${VAR:default})")
    parser.add_argument("--source-hosts", help="Comma separated source contact points")
    parser.add_argument("--target-hosts", help="Comma separated target contact points")
    parser.add_argument("--source-keyspace", help="Source keyspace")
    parser.add_argument("--target-keyspace", help="Target keyspace")
    parser.add_argument("--tenant", help="Tenant alias that scopes the principals chain")
    parser.add_argument("--resource-ids", nargs='+', help="Resource ids that scope the invitations chain")
    parser.add_argument("--resource-ids-file", help="File with one resource id per line")
    parser.add_argument("--chains", help=f"Comma separated chains to run ({', '.join(sorted(CHAINS))})")
    parser.add_argument("--concurrent", action="store_true", help="Run independent chains in parallel")
    parser.add_argument("--insert-mode", choices=[mode.value for mode in InsertMode],
                        help="Write rows as logged batches or one statement per row")
    parser.add_argument("--batch-size", type=int, help="Rows per logged batch")
    parser.add_argument("--row-limit", type=int, help="Maximum rows selected per table")
    parser.add_argument("--chain-timeout", type=float, help="Seconds before a chain is abandoned")
    parser.add_argument("--report", help="Write the JSON run report to this path")
    parser.add_argument("--log-file", help="Also write the run log to this file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--list-chains", action="store_true", help="List the available chains and exit")
    return parser

def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_chains:
        for name in sorted(CHAINS):
            chain = CHAINS[name]
            scope = ', '.join(chain.inputs + chain.params)
            print(f"{name}: {' -> '.join(chain.tables)} (requires {scope})")
        return 0

    config = apply_overrides(get_config(), args)
    configure_logging(args.verbose, config.log_level)

    if not config.validate_secrets():
        logger.warning("A username is configured without its password "
                       "(MIGRATOR_SOURCE_PASSWORD / MIGRATOR_TARGET_PASSWORD)")

    try:
        resource_ids = read_resource_ids(args.resource_ids, args.resource_ids_file)
        chains = select_chains(args, resource_ids)

        with build_manager(config, args) as manager:
            migrator = DBMigrator(manager, chains, config=config, tenant=args.tenant,
                                  resource_ids=resource_ids, concurrent=args.concurrent,
                                  report_path=args.report, log_file=args.log_file)
            report = migrator.run()

    except (MigrationError, OSError) as e:
        logger.error(f"Migration failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        traceback.print_exc()
        return 1

    return 0 if report.success else 1

if __name__ == "__main__":
    sys.exit(main())
