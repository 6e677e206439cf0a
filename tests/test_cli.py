from __future__ import annotations

import json

import pytest

from controlplane import cli
from controlplane.services.bootstrap.expectations import ReconcileContext
from controlplane.services.bootstrap.identity_category import IdentityProviderCategory
from controlplane.services.bootstrap.reconciler import BootstrapReconciler
from controlplane.services.bootstrap.seed import day0_categories
from tests.fakes import FakeRegistry, FakeStore


@pytest.fixture
def fake_env(monkeypatch):
    store, registry = FakeStore(), FakeRegistry()

    def build(*, with_identity: bool = False) -> BootstrapReconciler:
        return BootstrapReconciler(
            categories=[*day0_categories(table_name="controlplane-dev-shared"), IdentityProviderCategory()],
            context=ReconcileContext(store=store, registry=registry, with_identity=with_identity),
        )

    monkeypatch.setattr(cli, "get_bootstrap_reconciler", build)
    return store


def test_verify_on_empty_environment_exits_1(fake_env, capsys) -> None:
    assert cli.cli([]) == cli.EXIT_FAILURES
    out = capsys.readouterr().out
    assert "[Master Data]" in out
    assert "FAIL" in out


def test_fix_then_verify_exits_0(fake_env, capsys) -> None:
    assert cli.cli(["--fix"]) == cli.EXIT_OK
    assert cli.cli([]) == cli.EXIT_OK
    assert "Failed: 0" in capsys.readouterr().out


def test_json_output_shape(fake_env, capsys) -> None:
    cli.cli(["--json", "--fix"])

    payload = json.loads(capsys.readouterr().out)
    assert set(payload["summary"]) == {"total", "passed", "failed", "warnings", "fixed"}
    assert payload["fixMode"] is True
    assert payload["summary"]["failed"] == 0
    assert {"category", "check", "status", "message", "fixed"} <= set(payload["results"][0])


def test_verbose_lists_passing_checks(fake_env, capsys) -> None:
    cli.cli(["--fix"])
    capsys.readouterr()

    cli.cli(["--verbose"])

    assert "PASS" in capsys.readouterr().out


def test_missing_table_name_exits_2(monkeypatch) -> None:
    monkeypatch.delenv("TABLE_NAME", raising=False)
    assert cli.cli([]) == cli.EXIT_CONFIG


def test_identity_flag_without_pool_exits_2(monkeypatch) -> None:
    monkeypatch.setenv("TABLE_NAME", "controlplane-dev-shared")
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.delenv("COGNITO_USER_POOL_ID", raising=False)
    assert cli.cli(["--with-identity-provider"]) == cli.EXIT_CONFIG
