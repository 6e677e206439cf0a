"""The Day-0 seed graph, expressed as per-category expectations.

All ids are fixed so that re-creating a missing item converges on the original
seed instead of adding a duplicate.
"""

from __future__ import annotations

from typing import Optional

from controlplane.models.bootstrap import CheckStatus
from controlplane.models.tenant import DEFAULT_ENTERPRISE_ID, DEFAULT_TENANT_ID
from controlplane.services.bootstrap.expectations import (
    Category,
    DeclarativeCategory,
    Expectation,
    ItemExpectation,
    ParameterExpectation,
    PartitionExpectation,
)
from controlplane.services.entities import (
    MENU_ITEMS,
    METADATA,
    Capabilities,
    TenantParameters,
    account_pk,
    group_item,
    group_pk,
    group_role_link,
    link_item,
    now_iso,
    permission_item,
    permission_sk,
    role_item,
    role_pk,
    user_group_link,
    user_item,
    user_pk,
)

ACCOUNT_ID = DEFAULT_TENANT_ID
ENTERPRISE_ID = DEFAULT_ENTERPRISE_ID
PRODUCT_ID = "00000000-0000-0000-0000-000000000002"
SERVICE_ID = "00000000-0000-0000-0000-000000000003"
PLATFORM_GROUP_ID = "b0000000-0000-0000-0000-000000000001"
TECHNICAL_GROUP_ID = "b0000000-0000-0000-0000-000000000002"
PLATFORM_ROLE_ID = "c0000000-0000-0000-0000-000000000001"
TECHNICAL_ROLE_ID = "c0000000-0000-0000-0000-000000000002"
ADMIN_USER_ID = "d0000000-0000-0000-0000-000000000001"
GLOBAL_WORKSTREAM_ID = "e0000000-0000-0000-0000-000000000001"
DEFAULT_WORKSTREAM_ID = "e0000000-0000-0000-0000-000000000002"
LICENSE_ID = "f0000000-0000-0000-0000-000000000001"
ADDRESS_ID = "f1000000-0000-0000-0000-000000000001"

ADMIN_EMAIL = "admin@adminplatform.com"
ADMIN_IDENTITY_ROLE = "super_admin"
PLATFORM_ADMINS_GROUP = "PlatformAdmins"
LEGACY_ADMIN_GROUP = "admin"

CATEGORY_ORDER: tuple[str, ...] = (
    "Master Data",
    "Global Enterprise",
    "Default Account",
    "Parameter Registration",
    "License",
    "Groups",
    "Roles",
    "Role-Group Links",
    "Admin User",
    "Workstreams",
    "Identity Provider",
)

F = CheckStatus.FAIL
W = CheckStatus.WARN


def _master_data(now: str) -> list[ItemExpectation]:
    return [
        ItemExpectation(
            label="Global product",
            item={
                "PK": f"PRODUCT#{PRODUCT_ID}",
                "SK": METADATA,
                "GSI1PK": "ENTITY#PRODUCT",
                "GSI1SK": f"PRODUCT#{PRODUCT_ID}",
                "entityType": "PRODUCT",
                "id": PRODUCT_ID,
                "name": "Global",
                "description": "Default global product",
                "createdAt": now,
            },
            fields={"name": F},
        ),
        ItemExpectation(
            label="Global service",
            item={
                "PK": f"SERVICE#{SERVICE_ID}",
                "SK": METADATA,
                "GSI1PK": "ENTITY#SERVICE",
                "GSI1SK": f"SERVICE#{SERVICE_ID}",
                "entityType": "SERVICE",
                "id": SERVICE_ID,
                "name": "Global",
                "description": "Default global service",
                "createdAt": now,
            },
            fields={"name": F},
        ),
    ]


def _enterprise(now: str) -> list[ItemExpectation]:
    enterprise_pk = f"ENTERPRISE#{ENTERPRISE_ID}"
    return [
        ItemExpectation(
            label="Global enterprise",
            item={
                "PK": enterprise_pk,
                "SK": METADATA,
                "GSI1PK": "ENTITY#ENTERPRISE",
                "GSI1SK": enterprise_pk,
                "entityType": "ENTERPRISE",
                "id": ENTERPRISE_ID,
                "name": "Global",
                "createdAt": now,
                "updatedAt": now,
            },
            fields={"name": F},
        ),
        ItemExpectation(
            label="Enterprise -> product link",
            item=link_item(pk=enterprise_pk, sk=f"PRODUCT#{PRODUCT_ID}", now=now, enterpriseId=ENTERPRISE_ID, productId=PRODUCT_ID),
            references=((enterprise_pk, METADATA), (f"PRODUCT#{PRODUCT_ID}", METADATA)),
        ),
        ItemExpectation(
            label="Enterprise -> service link",
            item=link_item(pk=enterprise_pk, sk=f"SERVICE#{SERVICE_ID}", now=now, enterpriseId=ENTERPRISE_ID, serviceId=SERVICE_ID),
            references=((enterprise_pk, METADATA), (f"SERVICE#{SERVICE_ID}", METADATA)),
        ),
    ]


def _account(now: str) -> list[ItemExpectation]:
    return [
        ItemExpectation(
            label="Default account",
            item={
                "PK": account_pk(ACCOUNT_ID),
                "SK": METADATA,
                "GSI1PK": "ENTITY#ACCOUNT",
                "GSI1SK": account_pk(ACCOUNT_ID),
                "GSI2PK": "ISOLATION#SHARED",
                "GSI2SK": account_pk(ACCOUNT_ID),
                "entityType": "ACCOUNT",
                "id": ACCOUNT_ID,
                "name": "ABC",
                "masterAccountName": "ABC",
                "isolationMode": "shared",
                "status": "active",
                "createdAt": now,
                "updatedAt": now,
            },
            fields={"name": F, "isolationMode": F, "status": F},
        ),
        ItemExpectation(
            label="Default account address",
            item={
                "PK": account_pk(ACCOUNT_ID),
                "SK": f"ADDRESS#{ADDRESS_ID}",
                "entityType": "ADDRESS",
                "id": ADDRESS_ID,
                "accountId": ACCOUNT_ID,
                "line1": "123 Platform Street",
                "line2": "Suite 100",
                "city": "San Francisco",
                "state": "CA",
                "postalCode": "94105",
                "country": "United States",
                "createdAt": now,
            },
            missing=W,
        ),
    ]


def _registry(table_name: str, registry_prefix: str) -> list[ParameterExpectation]:
    params = TenantParameters(tenant_id=ACCOUNT_ID, prefix=registry_prefix)
    return [
        ParameterExpectation(label="isolation-mode", name=params.isolation_mode, value="shared"),
        ParameterExpectation(label="storage/resource-name", name=params.resource_name, value=table_name),
        ParameterExpectation(label="provisioning-status", name=params.provisioning_status, value="active"),
    ]


def _license(now: str) -> list[ItemExpectation]:
    return [
        ItemExpectation(
            label="Global license",
            item={
                "PK": account_pk(ACCOUNT_ID),
                "SK": f"LICENSE#{LICENSE_ID}",
                "GSI1PK": "ENTITY#LICENSE",
                "GSI1SK": f"LICENSE#{LICENSE_ID}",
                "GSI2PK": f"ENTERPRISE#{ENTERPRISE_ID}",
                "GSI2SK": f"LICENSE#{LICENSE_ID}",
                "GSI3PK": "LICENSE#STATUS#active",
                "GSI3SK": f"2099-12-31#{LICENSE_ID}",
                "entityType": "LICENSE",
                "id": LICENSE_ID,
                "accountId": ACCOUNT_ID,
                "enterpriseId": ENTERPRISE_ID,
                "productId": PRODUCT_ID,
                "serviceId": SERVICE_ID,
                "startDate": now.split("T")[0],
                "endDate": "2099-12-31",
                "numberOfUsers": 100,
                "renewalNotify": True,
                "noticeDays": 30,
                "contactFullName": "ABC DEF",
                "contactEmail": ADMIN_EMAIL,
                "createdAt": now,
                "updatedAt": now,
            },
            fields={"enterpriseId": F, "productId": F, "numberOfUsers": W, "endDate": W},
        )
    ]


def _groups(now: str) -> list[ItemExpectation]:
    specs = (
        (PLATFORM_GROUP_ID, "Platform Admin", "Full platform administration access"),
        (TECHNICAL_GROUP_ID, "Technical Group", "Default technical user group for customer accounts"),
    )
    return [
        ItemExpectation(
            label=f"{name} group",
            item=group_item(
                group_id=group_id,
                account_id=ACCOUNT_ID,
                enterprise_id=ENTERPRISE_ID,
                name=name,
                description=description,
                now=now,
                workstream_id=GLOBAL_WORKSTREAM_ID,
            ),
            fields={"name": F, "accountId": F},
        )
        for group_id, name, description in specs
    ]


def _roles(now: str) -> list[Expectation]:
    specs = (
        (PLATFORM_ROLE_ID, "Platform Admin", "Full application access for platform administrators", 255, Capabilities.full()),
        (TECHNICAL_ROLE_ID, "Technical Role", "Base access for technical users in customer accounts", 1, Capabilities.restricted()),
    )
    expectations: list[Expectation] = []
    for role_id, name, description, permissions, capabilities in specs:
        expectations.append(
            ItemExpectation(
                label=f"{name} role",
                item=role_item(
                    role_id=role_id,
                    account_id=ACCOUNT_ID,
                    enterprise_id=ENTERPRISE_ID,
                    name=name,
                    description=description,
                    permissions=permissions,
                    now=now,
                    extra={"workstreamId": GLOBAL_WORKSTREAM_ID, "productId": PRODUCT_ID, "serviceId": SERVICE_ID},
                ),
                fields={"name": F},
            )
        )
        for menu in MENU_ITEMS:
            expectations.append(
                ItemExpectation(
                    label=f"{name} -> {menu.key} permission",
                    item=permission_item(role_id=role_id, menu=menu, capabilities=capabilities, now=now),
                    fields={"menuKey": F, "canView": F, "canCreate": F, "canEdit": F, "canDelete": F, "tabs": W},
                )
            )
        expectations.append(
            PartitionExpectation(
                label=f"{name} permission set",
                pk=role_pk(role_id),
                sk_prefix="PERMISSION#",
                allowed_sks=frozenset(permission_sk(m.key) for m in MENU_ITEMS),
            )
        )
    return expectations


def _role_group_links(now: str) -> list[ItemExpectation]:
    pairs = (
        (PLATFORM_GROUP_ID, PLATFORM_ROLE_ID, "Platform Admin group -> role"),
        (TECHNICAL_GROUP_ID, TECHNICAL_ROLE_ID, "Technical group -> role"),
    )
    return [
        ItemExpectation(
            label=label,
            item=group_role_link(group_id=group_id, role_id=role_id, now=now),
            references=((group_pk(group_id), METADATA), (role_pk(role_id), METADATA)),
        )
        for group_id, role_id, label in pairs
    ]


def admin_user_item(now: str, *, identity_subject: Optional[str] = None) -> dict:
    return user_item(
        user_id=ADMIN_USER_ID,
        account_id=ACCOUNT_ID,
        enterprise_id=ENTERPRISE_ID,
        email=ADMIN_EMAIL,
        first_name="ABC",
        last_name="DEF",
        role="Platform Admin",
        group="Platform Admin",
        now=now,
        identity_subject=identity_subject,
        technical=True,
    )


def _admin_user(now: str) -> list[ItemExpectation]:
    user = admin_user_item(now)
    tech_user = {
        **{k: v for k, v in user.items() if not k.startswith("GSI2")},
        "PK": account_pk(ACCOUNT_ID),
        "SK": f"TECH_USER#{ADMIN_USER_ID}",
        "GSI1PK": "ENTITY#TECH_USER",
        "entityType": "TECH_USER",
    }
    return [
        ItemExpectation(label="Admin technical-user record", item=tech_user, fields={"email": F, "status": F}),
        ItemExpectation(label="Admin user record", item=user, fields={"email": F, "status": F}),
        ItemExpectation(
            label="Admin -> Platform Admin group",
            item=user_group_link(user_id=ADMIN_USER_ID, group_id=PLATFORM_GROUP_ID, now=now),
            references=((user_pk(ADMIN_USER_ID), METADATA), (group_pk(PLATFORM_GROUP_ID), METADATA)),
        ),
    ]


def _workstreams(now: str) -> list[ItemExpectation]:
    expectations: list[ItemExpectation] = []
    for workstream_id, name in ((GLOBAL_WORKSTREAM_ID, "Global"), (DEFAULT_WORKSTREAM_ID, "Default")):
        expectations.append(
            ItemExpectation(
                label=f"{name} workstream",
                item={
                    "PK": account_pk(ACCOUNT_ID),
                    "SK": f"WORKSTREAM#{workstream_id}",
                    "GSI1PK": "ENTITY#WORKSTREAM",
                    "GSI1SK": f"WORKSTREAM#{workstream_id}",
                    "GSI2PK": f"ENTERPRISE#{ENTERPRISE_ID}",
                    "GSI2SK": f"WORKSTREAM#{workstream_id}",
                    "entityType": "WORKSTREAM",
                    "id": workstream_id,
                    "name": name,
                    "accountId": ACCOUNT_ID,
                    "enterpriseId": ENTERPRISE_ID,
                    "createdAt": now,
                    "updatedAt": now,
                },
                fields={"name": F},
            )
        )
    for workstream_id, name in ((GLOBAL_WORKSTREAM_ID, "Global"), (DEFAULT_WORKSTREAM_ID, "Default")):
        expectations.append(
            ItemExpectation(
                label=f"Admin -> {name} workstream",
                item=link_item(
                    pk=user_pk(ADMIN_USER_ID),
                    sk=f"WORKSTREAM#{workstream_id}",
                    now=now,
                    userId=ADMIN_USER_ID,
                    workstreamId=workstream_id,
                ),
                references=(
                    (user_pk(ADMIN_USER_ID), METADATA),
                    (account_pk(ACCOUNT_ID), f"WORKSTREAM#{workstream_id}"),
                ),
            )
        )
    return expectations


def day0_categories(*, table_name: str, registry_prefix: str = "/tenants") -> list[Category]:
    """Every category except the identity provider, in dependency order."""

    now = now_iso()
    return [
        DeclarativeCategory("Master Data", _master_data(now)),
        DeclarativeCategory("Global Enterprise", _enterprise(now)),
        DeclarativeCategory("Default Account", _account(now)),
        DeclarativeCategory("Parameter Registration", _registry(table_name, registry_prefix)),
        DeclarativeCategory("License", _license(now)),
        DeclarativeCategory("Groups", _groups(now)),
        DeclarativeCategory("Roles", _roles(now)),
        DeclarativeCategory("Role-Group Links", _role_group_links(now)),
        DeclarativeCategory("Admin User", _admin_user(now)),
        DeclarativeCategory("Workstreams", _workstreams(now)),
    ]
