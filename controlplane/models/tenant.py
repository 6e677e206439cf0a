from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_ENTERPRISE_ID = "00000000-0000-0000-0000-000000000001"
DEFAULT_TENANT_ID = "a0000000-0000-0000-0000-000000000001"


class WireModel(BaseModel):
    """Worker payloads travel as camelCase JSON between the sequencer and the workers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class IsolationMode(str, Enum):
    SHARED = "shared"
    DEDICATED = "dedicated"


class InfraStatus(str, Enum):
    READY = "READY"
    CREATING = "CREATING"
    DELETING = "DELETING"
    DELETED = "DELETED"
    FAILED = "FAILED"


class ProvisioningStatus(str, Enum):
    """Values of the `/tenants/{id}/provisioning-status` registry parameter."""

    CREATING = "creating"
    ACTIVE = "active"
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"
    PARTIAL = "partial"


class TenantEvent(WireModel):
    tenant_id: str = Field(..., min_length=1)
    tenant_name: str = ""
    isolation_mode: IsolationMode = IsolationMode.SHARED
    execution_id: Optional[str] = None


class ProvisionResult(WireModel):
    tenant_id: str
    status: ProvisioningStatus
    resource_name: Optional[str] = None
    resource_arn: Optional[str] = None
    stream_arn: Optional[str] = None
    stack_id: Optional[str] = None
    already_existed: bool = False


class PollEvent(TenantEvent):
    prior_status: Optional[InfraStatus] = None


class PollResult(WireModel):
    tenant_id: str
    status: InfraStatus
    detail: str = ""
    resource_name: Optional[str] = None
    resource_arn: Optional[str] = None
    tenant_name: str = ""
    isolation_mode: IsolationMode = IsolationMode.SHARED
    execution_id: Optional[str] = None


class AdminIdentityEvent(WireModel):
    tenant_id: str = Field(..., min_length=1)
    enterprise_id: str = DEFAULT_ENTERPRISE_ID
    email: str = Field(..., min_length=3)
    first_name: str = ""
    last_name: str = ""
    execution_id: Optional[str] = None


class AdminIdentityResult(WireModel):
    tenant_id: str
    email: str
    created: bool
    status: str
    user_id: Optional[str] = None
    identity_subject: Optional[str] = None
    group_id: Optional[str] = None
    notification: str = "skipped"


class AccessControlEvent(WireModel):
    tenant_id: str = Field(..., min_length=1)
    enterprise_id: str = DEFAULT_ENTERPRISE_ID
    execution_id: Optional[str] = None


class AccessControlResult(WireModel):
    tenant_id: str
    roles: dict[str, str] = Field(default_factory=dict)
    groups: dict[str, str] = Field(default_factory=dict)
    items_created: int = 0


class FinalizeEvent(TenantEvent):
    identities: list[AdminIdentityResult] = Field(default_factory=list)


class VerificationCheck(WireModel):
    name: str
    passed: bool
    detail: str = ""


class StorageSummary(WireModel):
    resource_name: Optional[str] = None
    table_status: Optional[str] = None
    stack_status: Optional[str] = None


class IdentitySummary(WireModel):
    created: int = 0
    existing: int = 0
    failed: int = 0


class NotificationSummary(WireModel):
    sent: int = 0
    skipped: int = 0
    failed: int = 0


class VerificationSummary(WireModel):
    storage: StorageSummary = Field(default_factory=StorageSummary)
    identity: IdentitySummary = Field(default_factory=IdentitySummary)
    notifications: NotificationSummary = Field(default_factory=NotificationSummary)
    checks: list[VerificationCheck] = Field(default_factory=list)


class FinalizeResult(WireModel):
    tenant_id: str
    verified: bool
    status: ProvisioningStatus
    summary: VerificationSummary
    completed_at: str


class TenantCreationRequest(WireModel):
    """Input of one full tenant-creation run driven through the sequencer."""

    tenant_id: str = Field(..., min_length=1)
    tenant_name: str = ""
    isolation_mode: IsolationMode = IsolationMode.SHARED
    enterprise_id: str = DEFAULT_ENTERPRISE_ID
    admin_email: Optional[str] = None
    admin_first_name: str = ""
    admin_last_name: str = ""
    execution_id: Optional[str] = None


class LifecycleOutcome(WireModel):
    tenant_id: str
    succeeded: bool
    final_status: Optional[str] = None
    error: Optional[str] = None
    steps: list[dict] = Field(default_factory=list)
