from __future__ import annotations

import asyncio

import pytest

from controlplane.models.tenant import AccessControlEvent
from controlplane.services.entities import MENU_KEYS, group_pk, permission_sk, role_pk
from controlplane.services.setup.access_control_setup_service import DEFAULT_GROUPS, DEFAULT_ROLES

EVENT = AccessControlEvent(tenant_id="tenant-a", enterprise_id="ent-a")


@pytest.mark.asyncio
async def test_seeds_roles_groups_permissions_and_links(access_control, store) -> None:
    result = await access_control.setup(EVENT)

    assert set(result.roles) == {r.name for r in DEFAULT_ROLES}
    assert set(result.groups) == {g.name for g in DEFAULT_GROUPS}

    bitmasks = {item["name"]: item["permissions"] for item in store.of_type("ROLE")}
    assert bitmasks == {"Platform Admin": 255, "Admin": 127, "Manager": 63, "User": 15, "Viewer": 1}

    for role_id in result.roles.values():
        sks = {item["SK"] for item in await store.query_partition(role_pk(role_id), sk_prefix="PERMISSION#")}
        assert sks == {permission_sk(key) for key in MENU_KEYS}

    default_group = result.groups["Default"]
    assert store.get(group_pk(default_group), role_pk(result.roles["Viewer"])) is not None


@pytest.mark.asyncio
async def test_permission_defaults_follow_role_capabilities(access_control, store) -> None:
    result = await access_control.setup(EVENT)

    viewer = store.get(role_pk(result.roles["Viewer"]), permission_sk("access-control"))
    assert (viewer["canView"], viewer["canCreate"], viewer["canEdit"], viewer["canDelete"]) == (True, False, False, False)
    assert {tab["key"] for tab in viewer["tabs"]} == {"users", "groups", "roles"}
    assert all(tab["canDelete"] is False for tab in viewer["tabs"])

    manager = store.get(role_pk(result.roles["Manager"]), permission_sk("pipelines"))
    assert (manager["canView"], manager["canCreate"], manager["canEdit"], manager["canDelete"]) == (True, True, True, False)

    admin = store.get(role_pk(result.roles["Admin"]), permission_sk("builds"))
    assert admin["canDelete"] is True


@pytest.mark.asyncio
async def test_rerun_creates_nothing_new(access_control, store) -> None:
    first = await access_control.setup(EVENT)
    count = len(store.items)

    second = await access_control.setup(EVENT)

    assert second.items_created == 0
    assert second.roles == first.roles
    assert second.groups == first.groups
    assert len(store.items) == count


@pytest.mark.asyncio
async def test_concurrent_runs_converge_on_one_set(access_control, store) -> None:
    await asyncio.gather(access_control.setup(EVENT), access_control.setup(EVENT))

    assert len(store.of_type("ROLE")) == len(DEFAULT_ROLES)
    assert len(store.of_type("GROUP")) == len(DEFAULT_GROUPS)
    assert len(store.of_type("PERMISSION")) == len(DEFAULT_ROLES) * len(MENU_KEYS)
