"""Store-level helpers shared by the workers: lookups and create-if-absent writes."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from controlplane.services.dynamodb_service import ConditionalWriteError
from controlplane.services.entities import GSI1, GSI2, deterministic_id, normalize_email, scoped_index_key
from controlplane.services.interfaces import Item, KeyValueStore

logger = logging.getLogger(__name__)


async def find_user_by_email(store: KeyValueStore, email: str, *, active_only: bool = False) -> Optional[Item]:
    filters: dict[str, object] = {"email": normalize_email(email)}
    if active_only:
        filters["status"] = "active"
    users = await store.query_index(GSI1, "ENTITY#USER", filters=filters)
    return users[0] if users else None


async def find_named_entity(store: KeyValueStore, *, account_id: str, kind: str, name: str) -> Optional[Item]:
    """Find a GROUP/ROLE owned by `account_id` by its display name (`kind` is ``GROUPS`` or ``ROLES``)."""

    matches = await store.query_index(GSI2, scoped_index_key(account_id, kind), filters={"name": name})
    return matches[0] if matches else None


async def ensure_named_entity(
    store: KeyValueStore,
    *,
    account_id: str,
    kind: str,
    name: str,
    build: Callable[[str], Item],
) -> tuple[str, bool]:
    """Return (id, created) for the named entity, creating it if absent.

    Entities created here get an id derived from (account, kind, name), and the write
    is conditional, so concurrent callers converge on one item instead of racing.
    """

    existing = await find_named_entity(store, account_id=account_id, kind=kind, name=name)
    if existing is not None:
        return str(existing["id"]), False

    entity_id = deterministic_id(account_id, kind, name)
    try:
        await store.put_item(build(entity_id), if_not_exists=True)
    except ConditionalWriteError:
        logger.info("%s %r for account %s was created concurrently; reusing it", kind, name, account_id)
        return entity_id, False
    return entity_id, True


async def put_if_absent(store: KeyValueStore, item: Item) -> bool:
    """Conditional put that treats "already exists" as success. Returns True when written."""

    try:
        await store.put_item(item, if_not_exists=True)
    except ConditionalWriteError:
        return False
    return True
