from __future__ import annotations

from enum import Enum

from pydantic import Field

from controlplane.models.tenant import WireModel


class CheckStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"


class CheckResult(WireModel):
    category: str
    check: str
    status: CheckStatus
    message: str = ""
    fixed: bool = False


class ReportSummary(WireModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    fixed: int = 0


class ReconcileReport(WireModel):
    summary: ReportSummary
    fix_mode: bool = False
    results: list[CheckResult] = Field(default_factory=list)
    fixes: list[CheckResult] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return self.summary.failed > 0
