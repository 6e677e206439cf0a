from __future__ import annotations

import logging
from typing import Optional

from controlplane.models.bootstrap import CheckResult, CheckStatus
from controlplane.services.bootstrap.expectations import Finding, ReconcileContext
from controlplane.services.bootstrap.seed import (
    ACCOUNT_ID,
    ADMIN_EMAIL,
    ADMIN_IDENTITY_ROLE,
    ADMIN_USER_ID,
    ENTERPRISE_ID,
    LEGACY_ADMIN_GROUP,
    PLATFORM_ADMINS_GROUP,
)
from controlplane.services.cognito_service import IdentityUserExistsError
from controlplane.services.entities import METADATA, now_iso, user_pk
from controlplane.services.interfaces import IdentityProvider
from controlplane.services.setup.admin_identity_service import generate_password

logger = logging.getLogger(__name__)

EXPECTED_ATTRIBUTES: dict[str, str] = {
    "custom:tenant_id": ACCOUNT_ID,
    "custom:enterprise_id": ENTERPRISE_ID,
    "custom:role": ADMIN_IDENTITY_ROLE,
}


class IdentityProviderCategory:
    """Cross-system consistency between the Day-0 admin record and the identity provider.

    Unlike the store categories this one is not a list of items, but it produces the
    same findings (result plus optional repair) so the reconciler treats it uniformly.
    """

    name = "Identity Provider"

    def _result(self, check: str, status: CheckStatus, message: str = "") -> CheckResult:
        return CheckResult(category=self.name, check=check, status=status, message=message)

    async def diff(self, ctx: ReconcileContext) -> list[Finding]:
        if not ctx.with_identity or ctx.identity is None:
            return [Finding(self._result("identity checks", CheckStatus.WARN, "skipped (run with --with-identity-provider)"))]

        identity = ctx.identity
        findings = [await self._diff_group(identity)]

        user = await identity.get_user(ADMIN_EMAIL)
        if user is None:

            async def create_admin() -> None:
                await self._create_admin(ctx, identity)

            findings.append(Finding(self._result("admin identity", CheckStatus.FAIL, f"{ADMIN_EMAIL} not found"), repair=create_admin))
            return findings

        findings.append(Finding(self._result("admin identity", CheckStatus.PASS, f"sub={user.sub}")))

        if user.status == "CONFIRMED":
            findings.append(Finding(self._result("admin status", CheckStatus.PASS)))
        else:
            findings.append(Finding(self._result("admin status", CheckStatus.WARN, f"status={user.status}")))

        findings.extend(self._diff_attributes(identity, user.attributes))
        findings.append(await self._diff_membership(identity))
        findings.append(await self._diff_subject(ctx, user.sub))
        return findings

    async def _diff_group(self, identity: IdentityProvider) -> Finding:
        if await identity.group_exists(PLATFORM_ADMINS_GROUP):
            return Finding(self._result(f"{PLATFORM_ADMINS_GROUP} group", CheckStatus.PASS))

        async def create_group() -> None:
            await identity.create_group(PLATFORM_ADMINS_GROUP, description="Platform administrators", precedence=0)

        if await identity.group_exists(LEGACY_ADMIN_GROUP):
            return Finding(
                self._result(f"{PLATFORM_ADMINS_GROUP} group", CheckStatus.WARN, f"only legacy {LEGACY_ADMIN_GROUP!r} group exists"),
                repair=create_group,
            )
        return Finding(self._result(f"{PLATFORM_ADMINS_GROUP} group", CheckStatus.FAIL, "group missing"), repair=create_group)

    def _diff_attributes(self, identity: IdentityProvider, attributes: dict[str, str]) -> list[Finding]:
        wrong = {name: value for name, value in EXPECTED_ATTRIBUTES.items() if attributes.get(name) != value}
        if not wrong:
            return [Finding(self._result("admin attributes", CheckStatus.PASS))]

        async def update() -> None:
            await identity.update_attributes(ADMIN_EMAIL, wrong)

        findings = [
            Finding(self._result(f"admin attribute {name}", CheckStatus.FAIL, f"found {attributes.get(name)!r}, expected {value!r}"))
            for name, value in wrong.items()
        ]
        findings[0].repair = update
        return findings

    async def _diff_membership(self, identity: IdentityProvider) -> Finding:
        groups = await identity.list_user_groups(ADMIN_EMAIL)
        if PLATFORM_ADMINS_GROUP in groups or LEGACY_ADMIN_GROUP in groups:
            return Finding(self._result("admin group membership", CheckStatus.PASS, ", ".join(groups)))

        async def add() -> None:
            await identity.add_to_group(ADMIN_EMAIL, PLATFORM_ADMINS_GROUP)

        return Finding(self._result("admin group membership", CheckStatus.FAIL, f"groups={groups}"), repair=add)

    async def _diff_subject(self, ctx: ReconcileContext, sub: Optional[str]) -> Finding:
        record = await ctx.store.get_item(user_pk(ADMIN_USER_ID), METADATA)

        async def backfill() -> None:
            await self._backfill_subject(ctx, sub, required=True)

        # Store categories are repaired first, so the record exists again when this repair runs.
        if record is None:
            return Finding(self._result("subject consistency", CheckStatus.FAIL, "admin user record missing"), repair=backfill)

        stored = record.get("cognitoSub")
        if stored == sub:
            return Finding(self._result("subject consistency", CheckStatus.PASS))
        if not stored:
            return Finding(self._result("subject consistency", CheckStatus.FAIL, "subject not yet stored"), repair=backfill)
        return Finding(
            self._result("subject consistency", CheckStatus.FAIL, f"stored {stored!r}, provider has {sub!r}"),
            repair=backfill,
        )

    async def _create_admin(self, ctx: ReconcileContext, identity: IdentityProvider) -> None:
        password = ctx.admin_password
        if not password:
            password = generate_password()
            logger.warning("BOOTSTRAP_ADMIN_PASSWORD not set; %s gets a random password (use password reset)", ADMIN_EMAIL)

        attributes = {
            "email": ADMIN_EMAIL,
            "email_verified": "true",
            "given_name": "ABC",
            "family_name": "DEF",
            **EXPECTED_ATTRIBUTES,
        }
        try:
            user = await identity.create_user(ADMIN_EMAIL, attributes=attributes, temporary_password=password)
            sub = user.sub
        except IdentityUserExistsError:
            existing = await identity.get_user(ADMIN_EMAIL)
            sub = existing.sub if existing else None

        await identity.set_password(ADMIN_EMAIL, password, permanent=True)
        await identity.add_to_group(ADMIN_EMAIL, PLATFORM_ADMINS_GROUP)
        await self._backfill_subject(ctx, sub)

    async def _backfill_subject(self, ctx: ReconcileContext, sub: Optional[str], *, required: bool = False) -> None:
        if not sub:
            if required:
                raise RuntimeError(f"identity provider returned no subject for {ADMIN_EMAIL}")
            return
        if await ctx.store.get_item(user_pk(ADMIN_USER_ID), METADATA) is None:
            if required:
                raise RuntimeError("admin user record missing")
            logger.warning("Cannot backfill identity subject: admin user record missing")
            return
        await ctx.store.update_item(user_pk(ADMIN_USER_ID), METADATA, {"cognitoSub": sub, "updatedAt": now_iso()})
