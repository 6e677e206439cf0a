from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from controlplane.models.tenant import AccessControlEvent, AccessControlResult
from controlplane.services.entities import (
    MENU_ITEMS,
    Capabilities,
    group_item,
    group_role_link,
    now_iso,
    permission_item,
    role_item,
)
from controlplane.services.graph import ensure_named_entity, put_if_absent
from controlplane.services.interfaces import KeyValueStore, MetricsEmitter
from controlplane.services.metrics_service import record_outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleDefinition:
    name: str
    description: str
    permissions: int
    capabilities: Capabilities


@dataclass(frozen=True)
class GroupDefinition:
    name: str
    description: str
    role_name: str


DEFAULT_ROLES: tuple[RoleDefinition, ...] = (
    RoleDefinition("Platform Admin", "Full platform access", 255, Capabilities.full()),
    RoleDefinition("Admin", "Full account access", 127, Capabilities.full()),
    RoleDefinition("Manager", "Manage users and resources", 63, Capabilities(view=True, create=True, edit=True)),
    RoleDefinition("User", "Standard operational access", 15, Capabilities(view=True, create=True)),
    RoleDefinition("Viewer", "Read-only access", 1, Capabilities.restricted()),
)

DEFAULT_GROUPS: tuple[GroupDefinition, ...] = (
    GroupDefinition("Platform Admin", "Platform-level administrators", "Platform Admin"),
    GroupDefinition("Admin", "Account administrators", "Admin"),
    GroupDefinition("Manager", "Account managers", "Manager"),
    GroupDefinition("User", "Standard users", "User"),
    GroupDefinition("Default", "Default group for new users", "Viewer"),
)


class AccessControlSetupService:
    """Seeds a tenant's default roles, permissions, groups and group-role links.

    Safe to re-run: every entity is found-or-created and every write is conditional.
    """

    WORKER = "setup-access-control"

    def __init__(self, *, store: KeyValueStore, metrics: MetricsEmitter) -> None:
        self._store = store
        self._metrics = metrics

    async def setup(self, event: AccessControlEvent) -> AccessControlResult:
        started = time.monotonic()
        try:
            result = await self._setup(event)
        except Exception:
            logger.exception("Access control setup failed (tenant=%s)", event.tenant_id)
            await record_outcome(
                self._metrics, self.WORKER, success=False, duration_ms=(time.monotonic() - started) * 1000
            )
            raise

        await record_outcome(self._metrics, self.WORKER, success=True, duration_ms=(time.monotonic() - started) * 1000)
        return result

    async def _setup(self, event: AccessControlEvent) -> AccessControlResult:
        now = now_iso()
        created = 0
        roles: dict[str, str] = {}
        groups: dict[str, str] = {}

        for definition in DEFAULT_ROLES:
            role_id, was_created = await ensure_named_entity(
                self._store,
                account_id=event.tenant_id,
                kind="ROLES",
                name=definition.name,
                build=lambda rid, d=definition: role_item(
                    role_id=rid,
                    account_id=event.tenant_id,
                    enterprise_id=event.enterprise_id,
                    name=d.name,
                    description=d.description,
                    permissions=d.permissions,
                    now=now,
                ),
            )
            roles[definition.name] = role_id
            created += int(was_created)

            for menu in MENU_ITEMS:
                item = permission_item(role_id=role_id, menu=menu, capabilities=definition.capabilities, now=now)
                created += int(await put_if_absent(self._store, item))

        for group_def in DEFAULT_GROUPS:
            group_id, was_created = await ensure_named_entity(
                self._store,
                account_id=event.tenant_id,
                kind="GROUPS",
                name=group_def.name,
                build=lambda gid, g=group_def: group_item(
                    group_id=gid,
                    account_id=event.tenant_id,
                    enterprise_id=event.enterprise_id,
                    name=g.name,
                    description=g.description,
                    now=now,
                ),
            )
            groups[group_def.name] = group_id
            created += int(was_created)

            role_id = roles.get(group_def.role_name)
            if role_id:
                link = group_role_link(group_id=group_id, role_id=role_id, now=now)
                created += int(await put_if_absent(self._store, link))

        logger.info(
            "Access control ready for tenant %s (roles=%d, groups=%d, new items=%d)",
            event.tenant_id,
            len(roles),
            len(groups),
            created,
        )
        return AccessControlResult(tenant_id=event.tenant_id, roles=roles, groups=groups, items_created=created)
