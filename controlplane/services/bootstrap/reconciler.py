from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from controlplane.models.bootstrap import CheckResult, CheckStatus, ReconcileReport, ReportSummary
from controlplane.services.bootstrap.expectations import Category, Finding, ReconcileContext

logger = logging.getLogger(__name__)


class BootstrapReconciler:
    """Compares the live graph against the Day-0 categories and optionally repairs it.

    Checks run concurrently and never raise. Repairs run sequentially in category
    order (which is dependency order), only for categories with at least one `fail`,
    and then every category is checked again so the report reflects what remains.
    """

    def __init__(self, *, categories: Sequence[Category], context: ReconcileContext) -> None:
        self._categories = list(categories)
        self._context = context

    async def reconcile(self, *, fix: bool = False) -> ReconcileReport:
        findings = await self._diff_all(self._categories)

        fixes: list[CheckResult] = []
        if fix:
            to_repair = [c for c in self._categories if _has_failure(findings[c.name])]
            for category in to_repair:
                fixes.extend(await self._repair(category, findings[category.name]))
            if to_repair:
                findings = await self._diff_all(self._categories)

        results = [f.result for category in self._categories for f in findings[category.name]]
        return ReconcileReport(summary=_summarize(results, fixes), fix_mode=fix, results=results, fixes=fixes)

    async def _diff_all(self, categories: Sequence[Category]) -> dict[str, list[Finding]]:
        diffs = await asyncio.gather(*(self._diff_category(c) for c in categories))
        return {category.name: diff for category, diff in zip(categories, diffs)}

    async def _diff_category(self, category: Category) -> list[Finding]:
        try:
            return await category.diff(self._context)
        except Exception as exc:
            logger.exception("Check for category %r raised", category.name)
            return [
                Finding(
                    CheckResult(
                        category=category.name,
                        check="category check",
                        status=CheckStatus.FAIL,
                        message=f"check raised: {exc}",
                    )
                )
            ]

    async def _repair(self, category: Category, findings: list[Finding]) -> list[CheckResult]:
        results: list[CheckResult] = []
        for finding in findings:
            if finding.repair is None or finding.result.status == CheckStatus.PASS:
                continue
            check = finding.result.check
            try:
                await finding.repair()
            except Exception as exc:
                logger.exception("Repair failed (%s / %s)", category.name, check)
                results.append(
                    CheckResult(category=category.name, check=check, status=CheckStatus.FAIL, message=f"repair failed: {exc}")
                )
                continue
            logger.info("Repaired %s / %s", category.name, check)
            results.append(CheckResult(category=category.name, check=check, status=CheckStatus.PASS, message="repaired", fixed=True))
        return results


def _has_failure(findings: list[Finding]) -> bool:
    return any(f.result.status == CheckStatus.FAIL for f in findings)


def _summarize(results: list[CheckResult], fixes: list[CheckResult]) -> ReportSummary:
    # A failed repair whose check still fails after the re-check is counted once, as that check.
    still_failing = {(r.category, r.check) for r in results if r.status == CheckStatus.FAIL}
    failed_fixes = sum(1 for f in fixes if f.status == CheckStatus.FAIL and (f.category, f.check) not in still_failing)
    return ReportSummary(
        total=len(results),
        passed=sum(1 for r in results if r.status == CheckStatus.PASS),
        failed=sum(1 for r in results if r.status == CheckStatus.FAIL) + failed_fixes,
        warnings=sum(1 for r in results if r.status == CheckStatus.WARN),
        fixed=sum(1 for f in fixes if f.fixed),
    )
