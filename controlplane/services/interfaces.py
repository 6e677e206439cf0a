"""Narrow interfaces over the external systems the workers talk to.

The aioboto3-backed services in this package implement them; tests substitute
in-memory fakes. Result types are plain dataclasses so nothing above the adapter
layer ever touches a raw provider response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from controlplane.models.tenant import InfraStatus


@dataclass(frozen=True)
class StackDescription:
    stack_name: str
    status: str
    stack_id: Optional[str] = None
    reason: Optional[str] = None
    outputs: dict[str, str] = field(default_factory=dict)

    @property
    def infra_status(self) -> InfraStatus:
        return classify_stack_status(self.status)


def classify_stack_status(status: str) -> InfraStatus:
    """Collapse a provider stack status string into the internal status enum."""

    status = (status or "").upper()
    if status == "CREATE_COMPLETE":
        return InfraStatus.READY
    if status == "DELETE_COMPLETE":
        return InfraStatus.DELETED
    if "FAILED" in status or status == "ROLLBACK_COMPLETE":
        return InfraStatus.FAILED
    if "DELETE" in status:
        return InfraStatus.DELETING
    return InfraStatus.CREATING


@dataclass(frozen=True)
class IdentityUser:
    username: str
    sub: Optional[str]
    status: Optional[str] = None
    enabled: bool = True
    attributes: dict[str, str] = field(default_factory=dict)


Item = dict[str, Any]


class KeyValueStore(Protocol):
    async def get_item(self, pk: str, sk: str) -> Optional[Item]: ...

    async def put_item(self, item: Item, *, if_not_exists: bool = False) -> None: ...

    async def update_item(self, pk: str, sk: str, fields: dict[str, Any]) -> None: ...

    async def delete_item(self, pk: str, sk: str) -> None: ...

    async def query_partition(self, pk: str, *, sk_prefix: Optional[str] = None) -> list[Item]: ...

    async def query_index(
        self, index_name: str, partition_value: str, *, filters: Optional[dict[str, Any]] = None
    ) -> list[Item]: ...

    async def describe_table(self, table_name: Optional[str] = None) -> Optional[str]: ...


class ParameterRegistry(Protocol):
    async def get(self, name: str) -> Optional[str]: ...

    async def put(self, name: str, value: str) -> None: ...

    async def delete(self, name: str) -> bool: ...


class StackProvisioner(Protocol):
    async def ensure_template(self, *, bucket: str, key: str, body: str) -> str: ...

    async def create_stack(
        self,
        *,
        stack_name: str,
        template_url: str,
        parameters: dict[str, str],
        tags: dict[str, str],
    ) -> str: ...

    async def wait_for_create(self, *, stack_name: str, max_wait_seconds: float) -> bool: ...

    async def describe_stack(self, stack_name: str) -> Optional[StackDescription]: ...

    async def delete_stack(self, stack_name: str) -> None: ...


class IdentityProvider(Protocol):
    async def get_user(self, username: str) -> Optional[IdentityUser]: ...

    async def create_user(
        self, username: str, *, attributes: dict[str, str], temporary_password: str
    ) -> IdentityUser: ...

    async def set_password(self, username: str, password: str, *, permanent: bool = True) -> None: ...

    async def update_attributes(self, username: str, attributes: dict[str, str]) -> None: ...

    async def add_to_group(self, username: str, group_name: str) -> None: ...

    async def remove_from_group(self, username: str, group_name: str) -> None: ...

    async def list_user_groups(self, username: str) -> list[str]: ...

    async def group_exists(self, group_name: str) -> bool: ...

    async def create_group(self, group_name: str, *, description: str = "", precedence: int = 0) -> None: ...


class Notifier(Protocol):
    async def send(self, *, to: str, subject: str, body: str) -> Optional[str]: ...


class MetricsEmitter(Protocol):
    async def emit(
        self,
        worker: str,
        metric: str,
        *,
        value: float = 1.0,
        unit: str = "Count",
        action: Optional[str] = None,
    ) -> None: ...
