from __future__ import annotations

from typing import Optional

from fastapi import Query

from controlplane.services.bootstrap.expectations import ReconcileContext
from controlplane.services.bootstrap.identity_category import IdentityProviderCategory
from controlplane.services.bootstrap.reconciler import BootstrapReconciler
from controlplane.services.bootstrap.seed import day0_categories
from controlplane.services.cloudformation_service import CloudFormationService
from controlplane.services.cognito_service import CognitoService
from controlplane.services.config import (
    AwsConfig,
    ConfigurationError,
    IdentityConfig,
    MetricsConfig,
    NotificationConfig,
    ProvisioningConfig,
)
from controlplane.services.dynamodb_service import DynamoDBService
from controlplane.services.metrics_service import CloudWatchMetricsService
from controlplane.services.sequencer import InProcessSequencer, TenantLifecycle, WorkerFn, build_worker_table
from controlplane.services.ses_service import SESService
from controlplane.services.setup.access_control_setup_service import AccessControlSetupService
from controlplane.services.setup.admin_identity_service import AdminIdentityService
from controlplane.services.setup.signup_sync_service import SignupSyncService
from controlplane.services.setup.status_poll_service import StatusPollService
from controlplane.services.setup.storage_provisioning_service import StorageProvisioningService
from controlplane.services.setup.verification_service import ProvisioningVerificationService
from controlplane.services.ssm_service import SSMService


def get_store() -> DynamoDBService:
    """Dependency provider for the shared control-plane table."""

    return DynamoDBService(AwsConfig.from_env(), table_name=ProvisioningConfig.from_env().table_name)


def get_registry() -> SSMService:
    return SSMService(AwsConfig.from_env())


def get_provisioner() -> CloudFormationService:
    return CloudFormationService(AwsConfig.from_env())


def get_identity_provider() -> Optional[CognitoService]:
    """None when no user pool is configured; workers then skip identity calls."""

    identity = IdentityConfig.from_env()
    if not identity.enabled:
        return None
    return CognitoService(AwsConfig.from_env(), user_pool_id=str(identity.user_pool_id))


def get_notifier() -> Optional[SESService]:
    notifications = NotificationConfig.from_env()
    if not notifications.enabled:
        return None
    return SESService(AwsConfig.from_env(), sender_email=notifications.sender_email)


def get_metrics() -> CloudWatchMetricsService:
    return CloudWatchMetricsService(AwsConfig.from_env(), metrics=MetricsConfig.from_env())


def get_worker_table() -> dict[str, WorkerFn]:
    """Every worker wired to its production adapters, keyed by worker name."""

    config = ProvisioningConfig.from_env()
    store = get_store()
    registry = get_registry()
    provisioner = get_provisioner()
    identity = get_identity_provider()
    metrics = get_metrics()

    return build_worker_table(
        storage=StorageProvisioningService(registry=registry, provisioner=provisioner, metrics=metrics, config=config),
        poll=StatusPollService(registry=registry, provisioner=provisioner, metrics=metrics, config=config),
        access_control=AccessControlSetupService(store=store, metrics=metrics),
        admin_identity=AdminIdentityService(
            store=store,
            identity=identity,
            notifier=get_notifier(),
            metrics=metrics,
            notifications=NotificationConfig.from_env(),
        ),
        signup_sync=SignupSyncService(store=store, identity=identity),
        verification=ProvisioningVerificationService(
            store=store,
            registry=registry,
            provisioner=provisioner,
            identity=identity,
            metrics=metrics,
            config=config,
        ),
    )


def get_tenant_lifecycle() -> TenantLifecycle:
    return TenantLifecycle(InProcessSequencer(get_worker_table()))


def get_bootstrap_reconciler(*, with_identity: bool = False) -> BootstrapReconciler:
    """Dependency provider for the Day-0 verifier.

    Raises ConfigurationError when the identity checks are requested without a
    configured user pool.
    """

    config = ProvisioningConfig.from_env()
    identity_config = IdentityConfig.from_env()
    if with_identity and not identity_config.enabled:
        raise ConfigurationError("Missing required environment variable: COGNITO_USER_POOL_ID")

    context = ReconcileContext(
        store=get_store(),
        registry=get_registry(),
        identity=get_identity_provider() if with_identity else None,
        with_identity=with_identity,
        admin_password=identity_config.bootstrap_admin_password,
    )
    categories = [
        *day0_categories(table_name=config.table_name, registry_prefix=config.registry_prefix),
        IdentityProviderCategory(),
    ]
    return BootstrapReconciler(categories=categories, context=context)


def get_bootstrap_reconciler_for_request(
    with_identity_provider: bool = Query(default=False, alias="withIdentityProvider"),
) -> BootstrapReconciler:
    return get_bootstrap_reconciler(with_identity=with_identity_provider)
