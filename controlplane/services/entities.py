"""Key layout and item builders for the single-table entity graph.

Every worker and the bootstrap reconciler builds items through these helpers so
that keys, index attributes and link shapes stay identical no matter who wrote
them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from controlplane.services.interfaces import Item

GSI1 = "GSI1"
GSI2 = "GSI2"
METADATA = "METADATA"

# Namespace for ids derived from natural keys (emails, tenant-scoped names).
_ID_NAMESPACE = uuid.UUID("6f1c2a4e-8d3b-5c7a-9e0f-1b2c3d4e5f60")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def today() -> str:
    return now_iso().split("T")[0]


def deterministic_id(*parts: str) -> str:
    return str(uuid.uuid5(_ID_NAMESPACE, "|".join(parts)))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def user_id_for_email(email: str) -> str:
    return deterministic_id("user", normalize_email(email))


def account_pk(account_id: str) -> str:
    return f"ACCOUNT#{account_id}"


def group_pk(group_id: str) -> str:
    return f"GROUP#{group_id}"


def role_pk(role_id: str) -> str:
    return f"ROLE#{role_id}"


def user_pk(user_id: str) -> str:
    return f"USER#{user_id}"


def scoped_index_key(account_id: str, kind: str) -> str:
    """GSI2 partition for "all <kind> owned by this account", e.g. ``ACCOUNT#a#GROUPS``."""

    return f"ACCOUNT#{account_id}#{kind}"


@dataclass(frozen=True)
class TenantParameters:
    """Parameter registry names for one tenant."""

    tenant_id: str
    prefix: str = "/tenants"

    def _name(self, suffix: str) -> str:
        return f"{self.prefix.rstrip('/')}/{self.tenant_id}/{suffix}"

    @property
    def isolation_mode(self) -> str:
        return self._name("isolation-mode")

    @property
    def resource_name(self) -> str:
        return self._name("storage/resource-name")

    @property
    def resource_arn(self) -> str:
        return self._name("storage/resource-arn")

    @property
    def provisioning_status(self) -> str:
        return self._name("provisioning-status")

    @property
    def verified_at(self) -> str:
        return self._name("provisioning-verified-at")

    def all(self) -> list[str]:
        return [
            self.isolation_mode,
            self.resource_name,
            self.resource_arn,
            self.provisioning_status,
            self.verified_at,
        ]


# -----------------
# Permissions
# -----------------


@dataclass(frozen=True)
class MenuItem:
    key: str
    label: str
    tabs: tuple[tuple[str, str], ...] = ()


MENU_ITEMS: tuple[MenuItem, ...] = (
    MenuItem("dashboard", "Dashboard"),
    MenuItem("overview", "Overview"),
    MenuItem(
        "account-settings",
        "Account Settings",
        (("enterprises", "Enterprise"), ("accounts", "Accounts"), ("global-settings", "Global Settings")),
    ),
    MenuItem("access-control", "Access Control", (("users", "Users"), ("groups", "Groups"), ("roles", "Roles"))),
    MenuItem("security", "Security & Governance"),
    MenuItem("pipelines", "Pipelines"),
    MenuItem("builds", "Builds"),
)

MENU_KEYS: tuple[str, ...] = tuple(m.key for m in MENU_ITEMS)


@dataclass(frozen=True)
class Capabilities:
    view: bool = True
    create: bool = False
    edit: bool = False
    delete: bool = False

    @staticmethod
    def full() -> "Capabilities":
        return Capabilities(view=True, create=True, edit=True, delete=True)

    @staticmethod
    def restricted() -> "Capabilities":
        return Capabilities(view=True, create=False, edit=False, delete=False)

    def as_fields(self) -> dict[str, bool]:
        return {
            "canView": self.view,
            "canCreate": self.create,
            "canEdit": self.edit,
            "canDelete": self.delete,
        }


def permission_sk(menu_key: str) -> str:
    return f"PERMISSION#{menu_key}"


def permission_item(*, role_id: str, menu: MenuItem, capabilities: Capabilities, now: str) -> Item:
    tabs = [
        {"key": key, "label": label, "isVisible": True, **capabilities.as_fields()}
        for key, label in menu.tabs
    ]
    return {
        "PK": role_pk(role_id),
        "SK": permission_sk(menu.key),
        "entityType": "PERMISSION",
        "id": deterministic_id("permission", role_id, menu.key),
        "roleId": role_id,
        "menuKey": menu.key,
        "menuLabel": menu.label,
        "isVisible": True,
        **capabilities.as_fields(),
        "tabs": tabs,
        "createdAt": now,
        "updatedAt": now,
    }


# -----------------
# Entities
# -----------------


def group_item(
    *,
    group_id: str,
    account_id: str,
    enterprise_id: str,
    name: str,
    description: str,
    now: str,
    workstream_id: Optional[str] = None,
) -> Item:
    item: Item = {
        "PK": group_pk(group_id),
        "SK": METADATA,
        "GSI1PK": "ENTITY#GROUP",
        "GSI1SK": group_pk(group_id),
        "GSI2PK": scoped_index_key(account_id, "GROUPS"),
        "GSI2SK": group_pk(group_id),
        "entityType": "GROUP",
        "id": group_id,
        "name": name,
        "description": description,
        "accountId": account_id,
        "enterpriseId": enterprise_id,
        "createdAt": now,
        "updatedAt": now,
    }
    if workstream_id:
        item["workstreamId"] = workstream_id
    return item


def role_item(
    *,
    role_id: str,
    account_id: str,
    enterprise_id: str,
    name: str,
    description: str,
    permissions: int,
    now: str,
    extra: Optional[dict[str, Any]] = None,
) -> Item:
    item: Item = {
        "PK": role_pk(role_id),
        "SK": METADATA,
        "GSI1PK": "ENTITY#ROLE",
        "GSI1SK": role_pk(role_id),
        "GSI2PK": scoped_index_key(account_id, "ROLES"),
        "GSI2SK": role_pk(role_id),
        "entityType": "ROLE",
        "id": role_id,
        "name": name,
        "description": description,
        "permissions": permissions,
        "accountId": account_id,
        "enterpriseId": enterprise_id,
        "createdAt": now,
        "updatedAt": now,
    }
    item.update(extra or {})
    return item


def user_item(
    *,
    user_id: str,
    account_id: str,
    enterprise_id: str,
    email: str,
    first_name: str,
    last_name: str,
    role: str,
    group: str,
    now: str,
    identity_subject: Optional[str] = None,
    technical: bool = False,
) -> Item:
    item: Item = {
        "PK": user_pk(user_id),
        "SK": METADATA,
        "GSI1PK": "ENTITY#USER",
        "GSI1SK": user_pk(user_id),
        "GSI2PK": scoped_index_key(account_id, "USERS"),
        "GSI2SK": user_pk(user_id),
        "entityType": "USER",
        "id": user_id,
        "accountId": account_id,
        "enterpriseId": enterprise_id,
        "firstName": first_name,
        "lastName": last_name,
        "email": normalize_email(email),
        "assignedRole": role,
        "assignedGroup": group,
        "startDate": now.split("T")[0],
        "status": "active",
        "isTechnicalUser": technical,
        "createdAt": now,
        "updatedAt": now,
    }
    if identity_subject:
        item["cognitoSub"] = identity_subject
    return item


def link_item(*, pk: str, sk: str, now: str, **references: str) -> Item:
    """Existence-only link record; `references` carries the two ids (e.g. userId/groupId)."""

    return {"PK": pk, "SK": sk, "entityType": "LINK", **references, "createdAt": now}


def user_group_link(*, user_id: str, group_id: str, now: str) -> Item:
    return link_item(pk=user_pk(user_id), sk=group_pk(group_id), now=now, userId=user_id, groupId=group_id)


def group_role_link(*, group_id: str, role_id: str, now: str) -> Item:
    return link_item(pk=group_pk(group_id), sk=role_pk(role_id), now=now, groupId=group_id, roleId=role_id)
