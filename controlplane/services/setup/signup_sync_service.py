from __future__ import annotations

import logging
from typing import Any, Optional

from controlplane.models.tenant import DEFAULT_ENTERPRISE_ID, DEFAULT_TENANT_ID
from controlplane.services.bootstrap.seed import ADMIN_EMAIL, LEGACY_ADMIN_GROUP
from controlplane.services.entities import (
    group_item,
    group_role_link,
    normalize_email,
    now_iso,
    user_group_link,
    user_id_for_email,
    user_item,
)
from controlplane.services.graph import ensure_named_entity, find_named_entity, find_user_by_email, put_if_absent
from controlplane.services.interfaces import IdentityProvider, KeyValueStore

logger = logging.getLogger(__name__)

CONFIRM_SIGNUP_TRIGGER = "PostConfirmation_ConfirmSignUp"
DEFAULT_GROUP = "Default"
DEFAULT_ROLE = "Viewer"
SELF_SERVICE_IDENTITY_GROUP = "user"
PLATFORM_ADMIN_ROLE = "Platform Admin"


class SignupSyncService:
    """Post-confirmation hook for self-service signups.

    The identity provider waits on this call before finishing the signup, so every
    failure is logged and swallowed, and the incoming event is always returned as-is.
    """

    def __init__(
        self,
        *,
        store: KeyValueStore,
        identity: Optional[IdentityProvider],
        tenant_id: str = DEFAULT_TENANT_ID,
        enterprise_id: str = DEFAULT_ENTERPRISE_ID,
    ) -> None:
        self._store = store
        self._identity = identity
        self._tenant_id = tenant_id
        self._enterprise_id = enterprise_id

    async def handle(self, event: dict[str, Any]) -> dict[str, Any]:
        if event.get("triggerSource") != CONFIRM_SIGNUP_TRIGGER:
            return event

        try:
            await self._sync(event)
        except Exception:
            logger.exception("Post-signup sync failed (user=%s)", event.get("userName"))
        return event

    async def _sync(self, event: dict[str, Any]) -> None:
        attributes = (event.get("request") or {}).get("userAttributes") or {}
        email = attributes.get("email")
        if not email:
            logger.warning("Signup event without an email attribute (user=%s); skipping", event.get("userName"))
            return

        email = normalize_email(email)
        username = str(event.get("userName") or email)

        existing = await find_user_by_email(self._store, email, active_only=True)
        if existing is not None:
            await self._update_identity(
                username,
                tenant_id=str(existing.get("accountId") or self._tenant_id),
                enterprise_id=str(existing.get("enterpriseId") or self._enterprise_id),
                role=str(existing.get("assignedRole") or DEFAULT_ROLE),
            )
            logger.info("Signup for existing user %s; identity attributes reconciled", email)
            return

        # The platform admin address gets the admin role and provider group instead of the self-service defaults.
        is_admin = email == ADMIN_EMAIL
        role = PLATFORM_ADMIN_ROLE if is_admin else DEFAULT_ROLE
        assigned_group = PLATFORM_ADMIN_ROLE if is_admin else DEFAULT_GROUP
        identity_group = LEGACY_ADMIN_GROUP if is_admin else SELF_SERVICE_IDENTITY_GROUP

        now = now_iso()
        group_id, _ = await ensure_named_entity(
            self._store,
            account_id=self._tenant_id,
            kind="GROUPS",
            name=DEFAULT_GROUP,
            build=lambda gid: group_item(
                group_id=gid,
                account_id=self._tenant_id,
                enterprise_id=self._enterprise_id,
                name=DEFAULT_GROUP,
                description="Default group for new users",
                now=now,
            ),
        )

        user_id = user_id_for_email(email)
        created = await put_if_absent(
            self._store,
            user_item(
                user_id=user_id,
                account_id=self._tenant_id,
                enterprise_id=self._enterprise_id,
                email=email,
                first_name=str(attributes.get("given_name") or ""),
                last_name=str(attributes.get("family_name") or ""),
                role=role,
                group=assigned_group,
                now=now,
                identity_subject=attributes.get("sub"),
            ),
        )
        await put_if_absent(self._store, user_group_link(user_id=user_id, group_id=group_id, now=now))

        viewer = await find_named_entity(self._store, account_id=self._tenant_id, kind="ROLES", name=DEFAULT_ROLE)
        if viewer is not None:
            await put_if_absent(self._store, group_role_link(group_id=group_id, role_id=str(viewer["id"]), now=now))
        else:
            logger.warning("No %r role for tenant %s; %r group left without a role", DEFAULT_ROLE, self._tenant_id, DEFAULT_GROUP)

        await self._update_identity(username, tenant_id=self._tenant_id, enterprise_id=self._enterprise_id, role=role)
        if self._identity is not None:
            try:
                await self._identity.add_to_group(username, identity_group)
            except Exception as exc:
                logger.warning("Failed to add %s to identity group %r: %s", username, identity_group, exc)

        logger.info("Self-service user %s synced (user=%s, created=%s)", email, user_id, created)

    async def _update_identity(self, username: str, *, tenant_id: str, enterprise_id: str, role: str) -> None:
        if self._identity is None:
            return
        await self._identity.update_attributes(
            username,
            {
                "custom:tenant_id": tenant_id,
                "custom:enterprise_id": enterprise_id,
                "custom:role": role,
            },
        )
