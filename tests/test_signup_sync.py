from __future__ import annotations

import pytest

from controlplane.models.tenant import DEFAULT_TENANT_ID, AccessControlEvent
from controlplane.services.bootstrap.seed import ADMIN_EMAIL, LEGACY_ADMIN_GROUP
from controlplane.services.entities import METADATA, group_pk, role_pk, user_id_for_email, user_pk
from controlplane.services.setup.signup_sync_service import CONFIRM_SIGNUP_TRIGGER


def _signup(email: str = "new.user@acme.test", sub: str = "sub-123") -> dict:
    return {
        "triggerSource": CONFIRM_SIGNUP_TRIGGER,
        "userName": email,
        "request": {"userAttributes": {"email": email, "sub": sub, "given_name": "New", "family_name": "User"}},
    }


@pytest.mark.asyncio
async def test_new_signup_gets_user_default_group_and_viewer_role(signup_sync, access_control, store, identity) -> None:
    roles = (await access_control.setup(AccessControlEvent(tenant_id=DEFAULT_TENANT_ID))).roles
    identity.seed_user("new.user@acme.test", sub="sub-123")
    event = _signup()

    returned = await signup_sync.handle(event)

    assert returned is event
    user_id = user_id_for_email("new.user@acme.test")
    record = store.get(user_pk(user_id), METADATA)
    assert record["cognitoSub"] == "sub-123"
    assert record["assignedRole"] == "Viewer"
    assert record["assignedGroup"] == "Default"

    default_groups = [g for g in store.of_type("GROUP") if g["name"] == "Default"]
    assert len(default_groups) == 1
    group_id = default_groups[0]["id"]
    assert store.get(user_pk(user_id), group_pk(group_id)) is not None
    assert store.get(group_pk(group_id), role_pk(roles["Viewer"])) is not None

    attributes = identity.users["new.user@acme.test"].attributes
    assert attributes["custom:tenant_id"] == DEFAULT_TENANT_ID
    assert attributes["custom:role"] == "Viewer"
    assert "user" in identity.memberships["new.user@acme.test"]


@pytest.mark.asyncio
async def test_other_triggers_pass_through_untouched(signup_sync, store) -> None:
    event = {"triggerSource": "PostConfirmation_ConfirmForgotPassword", "userName": "x"}

    assert await signup_sync.handle(event) is event
    assert store.items == {}


@pytest.mark.asyncio
async def test_failures_never_block_the_signup(signup_sync, store) -> None:
    # No identity user exists, so the attribute update raises inside the sync.
    event = _signup(email="ghost@acme.test")

    assert await signup_sync.handle(event) is event
    assert store.get(user_pk(user_id_for_email("ghost@acme.test")), METADATA) is not None


@pytest.mark.asyncio
async def test_existing_active_user_only_gets_attributes_refreshed(signup_sync, store, identity) -> None:
    identity.seed_user("known@acme.test", sub="sub-known")
    await signup_sync.handle(_signup(email="known@acme.test", sub="sub-known"))
    count = len(store.items)
    identity.users["known@acme.test"].attributes.pop("custom:role")

    await signup_sync.handle(_signup(email="known@acme.test", sub="sub-known"))

    assert len(store.items) == count
    assert identity.users["known@acme.test"].attributes["custom:role"] == "Viewer"


@pytest.mark.asyncio
async def test_signup_without_email_is_ignored(signup_sync, store) -> None:
    event = {"triggerSource": CONFIRM_SIGNUP_TRIGGER, "userName": "nobody", "request": {"userAttributes": {}}}

    assert await signup_sync.handle(event) is event
    assert store.items == {}


@pytest.mark.asyncio
async def test_platform_admin_signup_gets_admin_role_and_provider_group(signup_sync, store, identity) -> None:
    username = "Admin@AdminPlatform.com"
    identity.seed_user(username, sub="sub-admin")

    await signup_sync.handle(_signup(email=username, sub="sub-admin"))

    record = store.get(user_pk(user_id_for_email(ADMIN_EMAIL)), METADATA)
    assert record["assignedRole"] == "Platform Admin"
    assert record["assignedGroup"] == "Platform Admin"
    assert identity.users[username].attributes["custom:role"] == "Platform Admin"
    assert identity.memberships[username] == {LEGACY_ADMIN_GROUP}
