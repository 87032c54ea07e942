"""
CLI tests using CliRunner against the in-memory pod.
"""
import json

import pytest

from podshare.cli.main import app
from podshare.config import settings

from conftest import ALICE, BOB, RESOURCE

ACR = RESOURCE + ".acr"


@pytest.fixture
def session(monkeypatch, pod):
    monkeypatch.setattr(settings, "WEBID", ALICE)
    monkeypatch.setattr(settings, "ACCESS_TOKEN", "cli-token")
    monkeypatch.setattr(settings, "DPOP_PROOF", "cli-proof")
    pod.add_profile(BOB, inbox="https://bob.example/inbox/")
    return pod


class TestShareCommands:

    def test_share(self, cli_runner, session):
        result = cli_runner.invoke(app, ["share", RESOURCE, BOB, "-p", "read"])

        assert result.exit_code == 0, result.output
        assert "Resource shared successfully!" in result.output
        assert "Share Outcome" in result.output
        assert f"<{BOB}>" in session.resources[ACR]
        assert session.requests[0].headers["authorization"] == "DPoP cli-token"

    def test_share_requires_webid(self, cli_runner, session, monkeypatch):
        monkeypatch.setattr(settings, "WEBID", None)
        result = cli_runner.invoke(app, ["share", RESOURCE, BOB])

        assert result.exit_code == 2
        assert "PODSHARE_WEBID" in result.output

    def test_share_policy_failure(self, cli_runner, session):
        session.fail("PUT", ACR, 500)
        result = cli_runner.invoke(app, ["share", RESOURCE, BOB])

        assert result.exit_code == 1
        assert "Share failed" in result.output
        assert session.calls("PATCH") == []

    def test_share_valid_for(self, cli_runner, session):
        result = cli_runner.invoke(app, ["share", RESOURCE, BOB, "--valid-for", "24h"])

        assert result.exit_code == 0, result.output
        assert "dct:valid" in session.resources[ACR]

    def test_share_bad_duration(self, cli_runner, session):
        result = cli_runner.invoke(app, ["share", RESOURCE, BOB, "--valid-for", "tomorrow"])
        assert result.exit_code == 2
        assert session.requests == []

    def test_share_zero_duration(self, cli_runner, session):
        result = cli_runner.invoke(app, ["share", RESOURCE, BOB, "--valid-for", "0h"])
        assert result.exit_code == 2
        assert "positive" in result.output

    def test_share_unknown_pattern(self, cli_runner, session):
        result = cli_runner.invoke(app, ["share", RESOURCE, BOB, "--pattern", "everyone"])
        assert result.exit_code == 2

    def test_share_owner_only_rejected(self, cli_runner, session):
        result = cli_runner.invoke(app, ["share", RESOURCE, BOB, "--pattern", "owner_only"])

        assert result.exit_code == 1
        assert "Share failed" in result.output
        assert session.requests == []

    def test_revoke(self, cli_runner, session):
        cli_runner.invoke(app, ["share", RESOURCE, BOB])
        result = cli_runner.invoke(app, ["revoke", RESOURCE, BOB])

        assert result.exit_code == 0, result.output
        assert "Access revoked." in result.output
        assert f"<{BOB}>" not in session.resources[ACR]


class TestPolicyCommands:

    def test_show_missing(self, cli_runner, session):
        result = cli_runner.invoke(app, ["policy", "show", RESOURCE])
        assert result.exit_code == 0
        assert "No access control policy found." in result.output

    def test_private_then_show(self, cli_runner, session):
        result = cli_runner.invoke(app, ["policy", "private", RESOURCE])
        assert result.exit_code == 0, result.output
        assert "is now private." in result.output

        result = cli_runner.invoke(app, ["policy", "show", RESOURCE, "--raw"])
        assert result.exit_code == 0, result.output
        assert f"Location: {ACR}" in result.output
        assert "acp:AccessControlResource" in result.output

    def test_delete(self, cli_runner, session):
        cli_runner.invoke(app, ["policy", "private", RESOURCE])
        result = cli_runner.invoke(app, ["policy", "delete", RESOURCE, "--yes"])

        assert result.exit_code == 0, result.output
        assert ACR not in session.resources

    def test_delete_aborted(self, cli_runner, session):
        cli_runner.invoke(app, ["policy", "private", RESOURCE])
        result = cli_runner.invoke(app, ["policy", "delete", RESOURCE], input="n\n")

        assert "Aborted." in result.output
        assert ACR in session.resources


class TestLogCommands:

    def test_list_empty(self, cli_runner, session):
        result = cli_runner.invoke(app, ["log", "list"])
        assert result.exit_code == 0, result.output
        assert "No entries." in result.output

    def test_list_latest_json(self, cli_runner, session):
        cli_runner.invoke(app, ["share", RESOURCE, BOB, "-p", "read"])
        cli_runner.invoke(app, ["share", RESOURCE, BOB, "-p", "write"])

        result = cli_runner.invoke(app, ["log", "list", "--latest", "--json"])

        assert result.exit_code == 0, result.output
        entries = json.loads(result.output)
        assert len(entries) == 1
        assert entries[0]["permissions"] == ["read", "write"]
        assert entries[0]["type"] == "grant"

    def test_list_filter_by_resource(self, cli_runner, session):
        cli_runner.invoke(app, ["share", RESOURCE, BOB])
        result = cli_runner.invoke(app, ["log", "list", "--resource", "/notes/", "--json"])
        assert json.loads(result.output) == []

    def test_shared_with_me(self, cli_runner, session, monkeypatch):
        cli_runner.invoke(app, ["share", RESOURCE, BOB])
        monkeypatch.setattr(settings, "WEBID", BOB)

        result = cli_runner.invoke(app, ["log", "shared-with-me", "--json"])

        assert result.exit_code == 0, result.output
        assert [e["resource"] for e in json.loads(result.output)] == [RESOURCE]

    def test_shared_by_me(self, cli_runner, session):
        cli_runner.invoke(app, ["share", RESOURCE, BOB])
        result = cli_runner.invoke(app, ["log", "shared-by-me"])

        assert result.exit_code == 0, result.output
        assert "Shared By Me" in result.output
