from __future__ import annotations

import logging
import secrets
import time
from typing import Optional

from controlplane.models.tenant import AdminIdentityEvent, AdminIdentityResult
from controlplane.services.cognito_service import IdentityUserExistsError
from controlplane.services.config import NotificationConfig
from controlplane.services.dynamodb_service import ConditionalWriteError
from controlplane.services.entities import (
    normalize_email,
    now_iso,
    user_group_link,
    user_id_for_email,
    user_item,
)
from controlplane.services.graph import find_named_entity, find_user_by_email, put_if_absent
from controlplane.services.interfaces import IdentityProvider, KeyValueStore, MetricsEmitter, Notifier

logger = logging.getLogger(__name__)

ADMIN_ROLE = "Admin"
ADMIN_IDENTITY_GROUP = "admin"

_UPPER = "ABCDEFGHJKLMNPQRSTUVWXYZ"
_LOWER = "abcdefghjkmnpqrstuvwxyz"
_DIGITS = "23456789"
_SPECIAL = "!@#$%^&*"


def generate_password(length: int = 12) -> str:
    """Random password with at least one upper, lower, digit and special character.

    Ambiguous characters (0/O, 1/l/I) are excluded since the password is read from an email.
    """

    alphabet = _UPPER + _LOWER + _DIGITS + _SPECIAL
    chars = [secrets.choice(_UPPER), secrets.choice(_LOWER), secrets.choice(_DIGITS), secrets.choice(_SPECIAL)]
    chars.extend(secrets.choice(alphabet) for _ in range(max(length, 4) - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def identity_attributes(*, email: str, first_name: str, last_name: str, tenant_id: str, enterprise_id: str, role: str) -> dict[str, str]:
    return {
        "email": normalize_email(email),
        "email_verified": "true",
        "given_name": first_name,
        "family_name": last_name,
        "custom:tenant_id": tenant_id,
        "custom:enterprise_id": enterprise_id,
        "custom:role": role,
    }


class AdminIdentityService:
    """Creates a tenant's administrative identity in both the identity provider and the store."""

    WORKER = "create-admin-identity"

    def __init__(
        self,
        *,
        store: KeyValueStore,
        identity: Optional[IdentityProvider],
        notifier: Optional[Notifier],
        metrics: MetricsEmitter,
        notifications: NotificationConfig,
    ) -> None:
        self._store = store
        self._identity = identity
        self._notifier = notifier
        self._metrics = metrics
        self._notifications = notifications

    async def create_admin(self, event: AdminIdentityEvent) -> AdminIdentityResult:
        started = time.monotonic()
        try:
            result = await self._create_admin(event)
        except Exception:
            logger.exception("Admin identity creation failed (tenant=%s, execution=%s)", event.tenant_id, event.execution_id)
            await self._metrics.emit(self.WORKER, "AdminCreateFailed")
            await self._metrics.emit(
                self.WORKER, "WorkerDuration", value=(time.monotonic() - started) * 1000, unit="Milliseconds"
            )
            raise

        if result.created:
            await self._metrics.emit(self.WORKER, "AdminCreated")
        await self._metrics.emit(
            self.WORKER, "WorkerDuration", value=(time.monotonic() - started) * 1000, unit="Milliseconds"
        )
        return result

    async def _create_admin(self, event: AdminIdentityEvent) -> AdminIdentityResult:
        email = normalize_email(event.email)

        existing = await find_user_by_email(self._store, email)
        if existing is not None:
            logger.info("Admin %s already exists (user=%s); nothing to do", email, existing.get("id"))
            return AdminIdentityResult(
                tenant_id=event.tenant_id,
                email=email,
                created=False,
                status="ALREADY_EXISTS",
                user_id=existing.get("id"),
                identity_subject=existing.get("cognitoSub"),
            )

        subject: Optional[str] = None
        password: Optional[str] = None
        if self._identity is not None:
            subject, password = await self._provision_identity(self._identity, event, email)

        group = await find_named_entity(self._store, account_id=event.tenant_id, kind="GROUPS", name=ADMIN_ROLE)
        group_id = str(group["id"]) if group else None

        now = now_iso()
        user_id = user_id_for_email(email)
        item = user_item(
            user_id=user_id,
            account_id=event.tenant_id,
            enterprise_id=event.enterprise_id,
            email=email,
            first_name=event.first_name,
            last_name=event.last_name,
            role=ADMIN_ROLE,
            group=ADMIN_ROLE,
            now=now,
            identity_subject=subject,
            technical=True,
        )
        try:
            await self._store.put_item(item, if_not_exists=True)
        except ConditionalWriteError:
            logger.info("Admin %s was created by a concurrent invocation", email)
            # Only this invocation knows the password it set on the identity account.
            notification = await self._send_credentials(event, email, password) if password else "skipped"
            return AdminIdentityResult(
                tenant_id=event.tenant_id,
                email=email,
                created=False,
                status="ALREADY_EXISTS",
                user_id=user_id,
                identity_subject=subject,
                notification=notification,
            )

        if group_id:
            await put_if_absent(self._store, user_group_link(user_id=user_id, group_id=group_id, now=now))
        else:
            logger.warning("No %r group found for tenant %s; admin left unassigned", ADMIN_ROLE, event.tenant_id)

        notification = "skipped"
        if password:
            notification = await self._send_credentials(event, email, password)

        logger.info("Created admin %s for tenant %s (user=%s, sub=%s)", email, event.tenant_id, user_id, subject)
        return AdminIdentityResult(
            tenant_id=event.tenant_id,
            email=email,
            created=True,
            status="CREATED",
            user_id=user_id,
            identity_subject=subject,
            group_id=group_id,
            notification=notification,
        )

    async def _provision_identity(
        self, identity: IdentityProvider, event: AdminIdentityEvent, email: str
    ) -> tuple[Optional[str], Optional[str]]:
        """Create or update the provider user. Returns (sub, password-if-newly-created)."""

        attributes = identity_attributes(
            email=email,
            first_name=event.first_name,
            last_name=event.last_name,
            tenant_id=event.tenant_id,
            enterprise_id=event.enterprise_id,
            role=ADMIN_ROLE,
        )

        current = await identity.get_user(email)
        if current is not None:
            await identity.update_attributes(email, _mutable(attributes))
            logger.info("Identity user %s exists; attributes updated (sub=%s)", email, current.sub)
            return current.sub, None

        password = generate_password()
        try:
            created = await identity.create_user(email, attributes=attributes, temporary_password=password)
        except IdentityUserExistsError:
            current = await identity.get_user(email)
            await identity.update_attributes(email, _mutable(attributes))
            return (current.sub if current else None), None

        await identity.set_password(email, password, permanent=True)
        try:
            await identity.add_to_group(email, ADMIN_IDENTITY_GROUP)
        except Exception as exc:
            logger.warning("Failed to add %s to identity group %r: %s", email, ADMIN_IDENTITY_GROUP, exc)

        return created.sub, password

    async def _send_credentials(self, event: AdminIdentityEvent, email: str, password: str) -> str:
        if not self._notifications.enabled or self._notifier is None:
            return "skipped"

        config = self._notifications
        body = (
            f"Hello {event.first_name} {event.last_name},\n\n"
            f"Your {config.platform_name} account has been provisioned.\n\n"
            f"Login URL: {config.login_url}\n"
            f"Email: {email}\n"
            f"Password: {password}\n\n"
            "Please change your password after your first login.\n"
            f"Questions? Contact {config.support_email}.\n"
        )
        try:
            await self._notifier.send(to=email, subject=f"{config.platform_name}: your login credentials are ready", body=body)
        except Exception as exc:
            logger.error("Failed to send credential email to %s: %s", email, exc)
            return "failed"
        return "sent"


def _mutable(attributes: dict[str, str]) -> dict[str, str]:
    # The username (email) is immutable on update.
    return {k: v for k, v in attributes.items() if k != "email"}
