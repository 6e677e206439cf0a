from __future__ import annotations

import pytest

from controlplane.services.config import NotificationConfig, ProvisioningConfig
from controlplane.services.retry import RetryPolicy
from controlplane.services.sequencer import InProcessSequencer, TenantLifecycle, build_worker_table
from controlplane.services.setup.access_control_setup_service import AccessControlSetupService
from controlplane.services.setup.admin_identity_service import AdminIdentityService
from controlplane.services.setup.signup_sync_service import SignupSyncService
from controlplane.services.setup.status_poll_service import StatusPollService
from controlplane.services.setup.storage_provisioning_service import StorageProvisioningService
from controlplane.services.setup.verification_service import ProvisioningVerificationService
from tests.fakes import FakeIdentity, FakeMetrics, FakeNotifier, FakeProvisioner, FakeRegistry, FakeStore

NO_WAIT = RetryPolicy(max_attempts=3, base_delay_seconds=0.0, jitter=0.0)


@pytest.fixture
def config() -> ProvisioningConfig:
    return ProvisioningConfig(table_name="controlplane-dev-shared", project_name="acme", environment="test")


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def metrics() -> FakeMetrics:
    return FakeMetrics()


@pytest.fixture
def notifications() -> NotificationConfig:
    return NotificationConfig(enabled=True, sender_email="noreply@acme.test", platform_name="Acme Platform")


@pytest.fixture
def storage(registry, provisioner, metrics, config) -> StorageProvisioningService:
    return StorageProvisioningService(
        registry=registry,
        provisioner=provisioner,
        metrics=metrics,
        config=config,
        create_retry=NO_WAIT,
        describe_retry=NO_WAIT,
    )


@pytest.fixture
def poller(registry, provisioner, metrics, config) -> StatusPollService:
    return StatusPollService(registry=registry, provisioner=provisioner, metrics=metrics, config=config, describe_retry=NO_WAIT)


@pytest.fixture
def access_control(store, metrics) -> AccessControlSetupService:
    return AccessControlSetupService(store=store, metrics=metrics)


@pytest.fixture
def admin_identity(store, identity, notifier, metrics, notifications) -> AdminIdentityService:
    return AdminIdentityService(
        store=store,
        identity=identity,
        notifier=notifier,
        metrics=metrics,
        notifications=notifications,
    )


@pytest.fixture
def signup_sync(store, identity) -> SignupSyncService:
    return SignupSyncService(store=store, identity=identity)


@pytest.fixture
def verification(store, registry, provisioner, identity, metrics, config) -> ProvisioningVerificationService:
    return ProvisioningVerificationService(
        store=store,
        registry=registry,
        provisioner=provisioner,
        identity=identity,
        metrics=metrics,
        config=config,
    )


@pytest.fixture
def workers(storage, poller, access_control, admin_identity, signup_sync, verification):
    return build_worker_table(
        storage=storage,
        poll=poller,
        access_control=access_control,
        admin_identity=admin_identity,
        signup_sync=signup_sync,
        verification=verification,
    )


@pytest.fixture
def lifecycle(workers) -> TenantLifecycle:
    async def no_sleep(seconds: float) -> None:
        return None

    return TenantLifecycle(InProcessSequencer(workers, sleep=no_sleep), poll_interval_seconds=0, max_polls=5)
