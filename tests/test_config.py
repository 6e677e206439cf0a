from __future__ import annotations

import pytest

from controlplane.models.tenant import InfraStatus
from controlplane.services.config import (
    AwsConfig,
    ConfigurationError,
    IdentityConfig,
    MetricsConfig,
    NotificationConfig,
    ProvisioningConfig,
)
from controlplane.services.interfaces import classify_stack_status
from controlplane.services.stack_template import DEDICATED_TABLE_TEMPLATE


def test_provisioning_config_requires_table_name(monkeypatch) -> None:
    monkeypatch.delenv("TABLE_NAME", raising=False)
    with pytest.raises(ConfigurationError, match="TABLE_NAME"):
        ProvisioningConfig.from_env()


def test_provisioning_config_reads_env(monkeypatch) -> None:
    monkeypatch.setenv("TABLE_NAME", "shared-table")
    monkeypatch.setenv("PROJECT_NAME", "acme")
    monkeypatch.setenv("ENVIRONMENT", "prod")
    monkeypatch.setenv("STACK_WAIT_SECONDS", "120")
    monkeypatch.delenv("CFN_TEMPLATE_BUCKET", raising=False)

    config = ProvisioningConfig.from_env()

    assert config.template_bucket == "acme-cfn-templates"
    assert config.template_key == "prod/private-account-dynamodb.yaml"
    assert config.stack_name("t1") == "acme-prod-account-t1"
    assert config.stack_wait_seconds == 120.0


def test_invalid_stack_wait_is_a_configuration_error(monkeypatch) -> None:
    monkeypatch.setenv("TABLE_NAME", "shared-table")
    monkeypatch.setenv("STACK_WAIT_SECONDS", "soon")
    with pytest.raises(ConfigurationError):
        ProvisioningConfig.from_env()


def test_aws_config_requires_a_region(monkeypatch) -> None:
    monkeypatch.delenv("AWS_REGION", raising=False)
    monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)
    with pytest.raises(ConfigurationError):
        AwsConfig.from_env()

    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")
    monkeypatch.setenv("AWS_ENDPOINT_URL", "http://localhost:4566")
    assert AwsConfig.from_env() == AwsConfig(region_name="eu-west-1", endpoint_url="http://localhost:4566")


def test_optional_configs_default_sensibly(monkeypatch) -> None:
    for name in ("COGNITO_USER_POOL_ID", "CREDENTIAL_NOTIFICATION_ENABLED", "CLOUDWATCH_METRICS_ENABLED", "PROJECT_NAME"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("CLOUDWATCH_METRICS_NAMESPACE", raising=False)

    assert IdentityConfig.from_env().enabled is False
    assert NotificationConfig.from_env().enabled is False
    metrics = MetricsConfig.from_env()
    assert metrics.enabled is True
    assert metrics.namespace == "controlplane/Workers"

    monkeypatch.setenv("CLOUDWATCH_METRICS_ENABLED", "false")
    assert MetricsConfig.from_env().enabled is False


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("CREATE_COMPLETE", InfraStatus.READY),
        ("CREATE_IN_PROGRESS", InfraStatus.CREATING),
        ("CREATE_FAILED", InfraStatus.FAILED),
        ("ROLLBACK_COMPLETE", InfraStatus.FAILED),
        ("ROLLBACK_IN_PROGRESS", InfraStatus.CREATING),
        ("DELETE_IN_PROGRESS", InfraStatus.DELETING),
        ("DELETE_COMPLETE", InfraStatus.DELETED),
        ("DELETE_FAILED", InfraStatus.FAILED),
    ],
)
def test_stack_status_classification(status: str, expected: InfraStatus) -> None:
    assert classify_stack_status(status) == expected


def test_template_exposes_table_outputs() -> None:
    for output in ("TableName:", "TableArn:", "TableStreamArn:"):
        assert output in DEDICATED_TABLE_TEMPLATE
    for index in ("GSI1", "GSI2", "GSI-EntityType"):
        assert f"IndexName: {index}" in DEDICATED_TABLE_TEMPLATE
