#!/usr/bin/env python3
"""
End-to-end tests for the cassandra-migrator command line, with the source
and target clusters replaced by in-memory keyspaces.
"""

import json

import pytest

from core.database_manager import DatabaseManager
from core.errors import ErrorCode
from tools import db_migrator
from tools.db_migrator import build_manager, build_parser, main, read_resource_ids

from tests.fakes import FakeCassandra


def _source_keyspace():
    return FakeCassandra({
        "AuthzInvitations": [
            {"resourceId": "r1", "email": "a@x.com", "inviterUserId": "u:cam:1", "role": "member"},
            {"resourceId": "r1", "email": "b@x.com", "inviterUserId": "u:cam:1", "role": "manager"},
            {"resourceId": "r2", "email": "a@x.com", "inviterUserId": "u:cam:2", "role": "member"},
            {"resourceId": "r9", "email": "z@x.com", "inviterUserId": "u:cam:9", "role": "member"},
        ],
        "AuthzInvitationsResourceIdByEmail": [
            {"email": "a@x.com", "resourceId": "r1"},
            {"email": "a@x.com", "resourceId": "r2"},
            {"email": "b@x.com", "resourceId": "r1"},
            {"email": "z@x.com", "resourceId": "r9"},
        ],
        "AuthzInvitationsTokenByEmail": [
            {"email": "a@x.com", "token": "t-a"},
            {"email": "b@x.com", "token": "t-b"},
            {"email": "z@x.com", "token": "t-z"},
        ],
        "AuthzInvitationsEmailByToken": [
            {"token": "t-a", "email": "a@x.com"},
            {"token": "t-b", "email": "b@x.com"},
            {"token": "t-z", "email": "z@x.com"},
        ],
        "Principals": [
            {"principalId": "u:cam:1", "tenantAlias": "cam", "email": "a@x.com", "admin:global": False},
            {"principalId": "g:cam:team", "tenantAlias": "cam", "displayName": "Team"},
            {"principalId": "u:gt:7", "tenantAlias": "gt", "email": "q@x.com"},
        ],
        "PrincipalsByEmail": [
            {"email": "a@x.com", "principalId": "u:cam:1"},
            {"email": "q@x.com", "principalId": "u:gt:7"},
        ],
    })


@pytest.fixture
def clusters(monkeypatch):
    """Route the manager's source/target backends to in-memory keyspaces"""
    adapters = {"source": _source_keyspace(), "target": FakeCassandra()}
    monkeypatch.setattr(DatabaseManager, "get_adapter", lambda self, backend: adapters[backend])
    return adapters


class TestMigrationCli:
    def test_list_chains(self, capsys):
        assert main(["--list-chains"]) == 0
        out = capsys.readouterr().out
        assert "invitations: AuthzInvitations -> AuthzInvitationsResourceIdByEmail" in out
        assert "principals: Principals -> PrincipalsByEmail (requires tenant_alias)" in out

    def test_full_run(self, clusters, tmp_path):
        report_path = tmp_path / "report.json"

        code = main(["--resource-ids", "r1,r2", "--tenant", "cam",
                     "--report", str(report_path), "--batch-size", "2"])

        assert code == 0
        target = clusters["target"]
        assert {r["email"] for r in target.rows("AuthzInvitations")} == {"a@x.com", "b@x.com"}
        assert len(target.rows("AuthzInvitationsResourceIdByEmail")) == 3
        assert {r["token"] for r in target.rows("AuthzInvitationsEmailByToken")} == {"t-a", "t-b"}
        assert {r["principalId"] for r in target.rows("Principals")} == {"u:cam:1", "g:cam:team"}
        assert target.rows("PrincipalsByEmail") == [{"email": "a@x.com", "principalId": "u:cam:1"}]

        report = json.loads(report_path.read_text())
        assert report["success"] is True
        assert report["run_id"].startswith("run_")
        assert [c["chain"] for c in report["chains"]] == ["invitations", "principals"]
        assert report["key_sets"]["invitations.emails"] == 2
        assert report["key_sets"]["principals.group_ids"] == 1
        assert report["mismatches"] == []

    def test_principal_row_keeps_every_column(self, clusters):
        assert main(["--tenant", "cam", "--insert-mode", "single"]) == 0

        [row] = [r for r in clusters["target"].rows("Principals") if r["principalId"] == "u:cam:1"]
        assert len(row) == 22
        assert row["admin:global"] is False
        assert row["visibility"] is None

    def test_mismatch_is_listed_but_exit_code_stays_zero(self, clusters, tmp_path):
        clusters["target"].drop_writes_to("PrincipalsByEmail")
        report_path = tmp_path / "report.json"

        code = main(["--tenant", "cam", "--report", str(report_path)])

        assert code == 0
        assert json.loads(report_path.read_text())["mismatches"] == ["PrincipalsByEmail"]

    def test_aborted_chain_sets_exit_code(self, clusters):
        clusters["source"].fail("AuthzInvitationsTokenByEmail", code=ErrorCode.CONNECTIVITY_ERROR)

        code = main(["--resource-ids", "r1", "--tenant", "cam", "--concurrent"])

        assert code == 1
        assert clusters["target"].rows("Principals")
        assert clusters["target"].rows("AuthzInvitationsEmailByToken") == []

    def test_nothing_to_migrate(self, clusters):
        assert main([]) == 1
        assert clusters["source"].statements == []

    def test_explicit_chain_without_its_input(self, clusters):
        assert main(["--chains", "invitations"]) == 1
        assert clusters["source"].statements == []

    def test_invalid_insert_mode_from_environment(self, clusters, monkeypatch):
        monkeypatch.setenv("MIGRATOR_INSERT_MODE", "bulk")
        assert main(["--tenant", "cam"]) == 1

    def test_log_file(self, clusters, tmp_path):
        log_file = tmp_path / "logs" / "run.log"

        assert main(["--tenant", "cam", "--log-file", str(log_file)]) == 0

        content = log_file.read_text()
        assert "Starting Run: run_" in content
        assert "Principals" in content


class TestCliHelpers:
    def test_resource_ids_from_arguments_and_file(self, tmp_path):
        ids_file = tmp_path / "ids.txt"
        ids_file.write_text("# exported resources\nr3\n\nr4\n")

        assert read_resource_ids(["r1,r2", "r5"], str(ids_file)) == ["r1", "r2", "r5", "r3", "r4"]
        assert read_resource_ids(None, None) is None

    def test_config_file_with_flag_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MIGRATOR_TARGET_PASSWORD", "s3cret")
        config_path = tmp_path / "migrator.json"
        config_path.write_text(json.dumps({"backends": {
            "source": {"type": "cassandra", "hosts": ["${SRC_HOST:10.0.0.5}"], "keyspace": "oae"},
            "target": {"type": "cassandra", "hosts": ["10.0.1.5"], "keyspace": "oae",
                       "username": "oae"},
        }}))
        args = build_parser().parse_args(["--config", str(config_path), "--target-keyspace", "oae_v2"])
        config = db_migrator.apply_overrides(db_migrator.get_config(), args)

        manager = build_manager(config, args)

        backends = manager.config["backends"]
        assert backends["source"]["hosts"] == ["10.0.0.5"]
        assert backends["target"]["keyspace"] == "oae_v2"
        assert backends["target"]["password"] == "s3cret"
