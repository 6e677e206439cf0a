"""Declarative desired state and the generic diff-and-apply routine.

A category is a named list of expectations. Diffing an expectation against live
state yields findings; each finding carries a `CheckResult` and, where the
discrepancy is repairable, a `repair` coroutine factory. Checking is "diff";
fixing is "diff, then run the repairs".
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, Union

from controlplane.models.bootstrap import CheckResult, CheckStatus
from controlplane.services.entities import now_iso
from controlplane.services.interfaces import IdentityProvider, Item, KeyValueStore, ParameterRegistry

logger = logging.getLogger(__name__)

Repair = Callable[[], Awaitable[None]]


@dataclass
class ReconcileContext:
    store: KeyValueStore
    registry: ParameterRegistry
    identity: Optional[IdentityProvider] = None
    with_identity: bool = False
    admin_password: Optional[str] = None


@dataclass
class Finding:
    result: CheckResult
    repair: Optional[Repair] = None


class Category(Protocol):
    name: str

    async def diff(self, ctx: ReconcileContext) -> list[Finding]: ...


@dataclass(frozen=True)
class ItemExpectation:
    """One expected item.

    `fields` lists the attributes whose value must equal `item`'s, with the severity of
    a mismatch. `references` are keys that must exist for this (link) item not to dangle.
    """

    label: str
    item: Item
    fields: dict[str, CheckStatus] = field(default_factory=dict)
    missing: CheckStatus = CheckStatus.FAIL
    references: tuple[tuple[str, str], ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return str(self.item["PK"]), str(self.item["SK"])


@dataclass(frozen=True)
class PartitionExpectation:
    """Items under (pk, sk_prefix) must be exactly `allowed_sks`; anything else is removed on repair."""

    label: str
    pk: str
    sk_prefix: str
    allowed_sks: frozenset[str]


@dataclass(frozen=True)
class ParameterExpectation:
    label: str
    name: str
    value: str
    severity: CheckStatus = CheckStatus.WARN


Expectation = Union[ItemExpectation, PartitionExpectation, ParameterExpectation]


def _result(category: str, check: str, status: CheckStatus, message: str = "") -> CheckResult:
    return CheckResult(category=category, check=check, status=status, message=message)


def _same(observed: Any, expected: Any) -> bool:
    # Numbers come back from the store as Decimal; Decimal(100) == 100 holds.
    return observed == expected


class DeclarativeCategory:
    def __init__(self, name: str, expectations: Sequence[Expectation]) -> None:
        self.name = name
        self._expectations = list(expectations)

    async def diff(self, ctx: ReconcileContext) -> list[Finding]:
        per_expectation = await asyncio.gather(*(self._diff_one(ctx, e) for e in self._expectations))
        return [finding for findings in per_expectation for finding in findings]

    async def _diff_one(self, ctx: ReconcileContext, expectation: Expectation) -> list[Finding]:
        if isinstance(expectation, ItemExpectation):
            return await self._diff_item(ctx, expectation)
        if isinstance(expectation, PartitionExpectation):
            return await self._diff_partition(ctx, expectation)
        return await self._diff_parameter(ctx, expectation)

    async def _diff_item(self, ctx: ReconcileContext, expectation: ItemExpectation) -> list[Finding]:
        pk, sk = expectation.key
        observed = await ctx.store.get_item(pk, sk)

        if observed is None:
            canonical = dict(expectation.item)

            async def create() -> None:
                await ctx.store.put_item(canonical)

            return [
                Finding(
                    _result(self.name, expectation.label, expectation.missing, f"missing item {pk} / {sk}"),
                    repair=create,
                )
            ]

        findings: list[Finding] = []
        repairable: dict[str, Any] = {}
        for name, severity in expectation.fields.items():
            expected = expectation.item.get(name)
            actual = observed.get(name)
            if _same(actual, expected):
                continue
            findings.append(
                Finding(_result(self.name, f"{expectation.label}: {name}", severity, f"found {actual!r}, expected {expected!r}"))
            )
            if severity == CheckStatus.FAIL:
                repairable[name] = expected

        if repairable:
            merged = {**observed, **repairable, "updatedAt": now_iso()}

            async def rewrite() -> None:
                await ctx.store.put_item(merged)

            # One rewrite per item, attached to its first failing field.
            next(f for f in findings if f.result.status == CheckStatus.FAIL).repair = rewrite

        for ref_pk, ref_sk in expectation.references:
            if await ctx.store.get_item(ref_pk, ref_sk) is None:
                findings.append(
                    Finding(
                        _result(
                            self.name,
                            f"{expectation.label}: reference",
                            CheckStatus.FAIL,
                            f"dangling link: {ref_pk} / {ref_sk} does not exist",
                        )
                    )
                )

        if not findings:
            findings.append(Finding(_result(self.name, expectation.label, CheckStatus.PASS)))
        return findings

    async def _diff_partition(self, ctx: ReconcileContext, expectation: PartitionExpectation) -> list[Finding]:
        items = await ctx.store.query_partition(expectation.pk, sk_prefix=expectation.sk_prefix)
        extras = [item for item in items if str(item.get("SK")) not in expectation.allowed_sks]
        if not extras:
            return [Finding(_result(self.name, expectation.label, CheckStatus.PASS, f"{len(items)} items"))]

        findings: list[Finding] = []
        for extra in extras:
            extra_sk = str(extra.get("SK"))

            async def remove(sk: str = extra_sk) -> None:
                await ctx.store.delete_item(expectation.pk, sk)

            findings.append(
                Finding(
                    _result(self.name, expectation.label, CheckStatus.FAIL, f"unexpected item {expectation.pk} / {extra_sk}"),
                    repair=remove,
                )
            )
        return findings

    async def _diff_parameter(self, ctx: ReconcileContext, expectation: ParameterExpectation) -> list[Finding]:
        actual = await ctx.registry.get(expectation.name)
        if actual == expectation.value:
            return [Finding(_result(self.name, expectation.label, CheckStatus.PASS))]

        async def write() -> None:
            await ctx.registry.put(expectation.name, expectation.value)

        message = "parameter missing" if actual is None else f"found {actual!r}, expected {expectation.value!r}"
        return [Finding(_result(self.name, expectation.label, expectation.severity, message), repair=write)]
