"""Verify (and optionally repair) the Day-0 platform bootstrap."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from controlplane.models.bootstrap import CheckResult, CheckStatus, ReconcileReport
from controlplane.services.config import ConfigurationError
from controlplane.services.dependencies import get_bootstrap_reconciler

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG = 2

_MARKS = {CheckStatus.PASS: "PASS", CheckStatus.FAIL: "FAIL", CheckStatus.WARN: "WARN"}


def _print_text(report: ReconcileReport, *, verbose: bool) -> None:
    category = None
    for result in report.results:
        if result.status == CheckStatus.PASS and not verbose:
            continue
        if result.category != category:
            category = result.category
            print(f"\n[{category}]")
        print(_format(result))

    if report.fixes:
        print("\n[Fixes]")
        for fix in report.fixes:
            print(_format(fix))

    s = report.summary
    print(
        f"\nTotal: {s.total}  Passed: {s.passed}  Failed: {s.failed}  "
        f"Warnings: {s.warnings}  Fixed: {s.fixed}  (fix mode: {'on' if report.fix_mode else 'off'})"
    )


def _format(result: CheckResult) -> str:
    line = f"  {_MARKS[result.status]}  {result.check}"
    if result.message:
        line += f" - {result.message}"
    if result.fixed:
        line += " (fixed)"
    return line


def _print_json(report: ReconcileReport) -> None:
    print(json.dumps(report.to_wire(), indent=2))


def cli(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--with-identity-provider",
        action="store_true",
        help="Also check the admin user and groups in the identity provider (needs COGNITO_USER_POOL_ID)",
    )
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("--verbose", action="store_true", help="Show passing checks and debug logs")
    parser.add_argument("--fix", action="store_true", help="Repair categories with failures, then verify again")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        reconciler = get_bootstrap_reconciler(with_identity=args.with_identity_provider)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIG

    report = asyncio.run(reconciler.reconcile(fix=args.fix))

    if args.json:
        _print_json(report)
    else:
        _print_text(report, verbose=args.verbose)

    return EXIT_FAILURES if report.has_failures else EXIT_OK


def main(argv: list[str] | None = None) -> None:
    sys.exit(cli(argv))


if __name__ == "__main__":
    main()
