from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar, Optional

from controlplane.services.config.errors import ConfigurationError


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() == "true"


@dataclass(frozen=True)
class ProvisioningConfig:
    """Settings for tenant storage provisioning and the shared control-plane table."""

    table_name: str
    project_name: str = "controlplane"
    environment: str = "dev"
    template_bucket: str = "controlplane-cfn-templates"
    billing_mode: str = "PAY_PER_REQUEST"
    _DEFAULT_STACK_WAIT_SECONDS: ClassVar[float] = 540.0
    stack_wait_seconds: float = _DEFAULT_STACK_WAIT_SECONDS
    registry_prefix: str = "/tenants"

    @property
    def template_key(self) -> str:
        return f"{self.environment}/private-account-dynamodb.yaml"

    def stack_name(self, tenant_id: str) -> str:
        return f"{self.project_name}-{self.environment}-account-{tenant_id}"

    @staticmethod
    def from_env() -> "ProvisioningConfig":
        table_name = os.getenv("TABLE_NAME")
        if not table_name:
            raise ConfigurationError("Missing required environment variable: TABLE_NAME")

        project_name = os.getenv("PROJECT_NAME", "controlplane")
        wait_raw = os.getenv("STACK_WAIT_SECONDS")
        stack_wait_seconds = ProvisioningConfig._DEFAULT_STACK_WAIT_SECONDS
        if wait_raw:
            try:
                stack_wait_seconds = float(wait_raw)
            except ValueError as exc:
                raise ConfigurationError("Invalid STACK_WAIT_SECONDS; must be a number") from exc

        return ProvisioningConfig(
            table_name=table_name,
            project_name=project_name,
            environment=os.getenv("ENVIRONMENT", "dev"),
            template_bucket=os.getenv("CFN_TEMPLATE_BUCKET") or f"{project_name}-cfn-templates",
            billing_mode=os.getenv("BILLING_MODE", "PAY_PER_REQUEST"),
            stack_wait_seconds=stack_wait_seconds,
        )


@dataclass(frozen=True)
class IdentityConfig:
    """Identity provider settings. A missing pool id disables every identity call."""

    user_pool_id: Optional[str] = None
    bootstrap_admin_password: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.user_pool_id)

    @staticmethod
    def from_env() -> "IdentityConfig":
        return IdentityConfig(
            user_pool_id=os.getenv("COGNITO_USER_POOL_ID") or None,
            bootstrap_admin_password=os.getenv("BOOTSTRAP_ADMIN_PASSWORD") or None,
        )


@dataclass(frozen=True)
class NotificationConfig:
    enabled: bool = False
    sender_email: str = "noreply@example.com"
    login_url: str = "https://portal.example.com"
    platform_name: str = "Control Plane"
    support_email: str = "support@example.com"

    @staticmethod
    def from_env() -> "NotificationConfig":
        return NotificationConfig(
            enabled=_env_flag("CREDENTIAL_NOTIFICATION_ENABLED", False),
            sender_email=os.getenv("SES_SENDER_EMAIL", NotificationConfig.sender_email),
            login_url=os.getenv("PLATFORM_LOGIN_URL", NotificationConfig.login_url),
            platform_name=os.getenv("PLATFORM_NAME", NotificationConfig.platform_name),
            support_email=os.getenv("PLATFORM_SUPPORT_EMAIL", NotificationConfig.support_email),
        )


@dataclass(frozen=True)
class MetricsConfig:
    namespace: str = "controlplane/Workers"
    enabled: bool = True

    @staticmethod
    def from_env() -> "MetricsConfig":
        project_name = os.getenv("PROJECT_NAME", "controlplane")
        return MetricsConfig(
            namespace=os.getenv("CLOUDWATCH_METRICS_NAMESPACE") or f"{project_name}/Workers",
            enabled=_env_flag("CLOUDWATCH_METRICS_ENABLED", True),
        )
