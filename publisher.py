"""
publisher.py – Creates a TestRail run per suite and uploads case/step results.

Publishing is not idempotent: every call opens a new run.  Callers must
publish a completed test run once.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from config import DEFAULT_RUN_NAME, RunMode
from models import (
    PublishRequest,
    PublishSummary,
    ReconciledCase,
    ReconciledSection,
    ReconciledSuite,
    Result,
    ResultStatus,
    Run,
    StepResult,
    TestStep,
)
from reconciler import Reconciler
from testrail_client import TestRailClient

logger = logging.getLogger("testrail-sync")


def iter_cases(section: ReconciledSection) -> Iterator[ReconciledCase]:
    """Depth-first: a section's own cases, then those of its subsections."""
    yield from section.cases
    for child in section.sections:
        yield from iter_cases(child)


def suite_cases(suite: ReconciledSuite) -> Iterator[ReconciledCase]:
    for section in suite.sections:
        yield from iter_cases(section)


def case_status(steps: list[TestStep]) -> ResultStatus:
    return ResultStatus.PASSED if all(s.passed for s in steps) else ResultStatus.FAILED


def build_result(rc: ReconciledCase) -> Result:
    return Result(
        case_id=rc.case.id,
        status_id=case_status(rc.steps),
        step_results=[
            StepResult(
                status_id=ResultStatus.from_step(step.status),
                content=step.content,
                expected=step.expected,
                actual=step.actual,
            )
            for step in rc.steps
        ],
    )


class Publisher:
    """Opens one run per reconciled suite and submits its results in one batch."""

    def __init__(self, client: TestRailClient, run_name: str = DEFAULT_RUN_NAME) -> None:
        self._client = client
        self._run_name = run_name

    def publish(self, reconciled: list[ReconciledSuite]) -> list[Run]:
        runs: list[Run] = []
        for suite in reconciled:
            run = self._client.add_run(suite.suite.id, self._run_name, include_all=True)
            runs.append(run)

            results = [build_result(rc) for rc in suite_cases(suite)]
            if not results:
                logger.warning("Suite '%s' has no cases; run #%s left empty.",
                               suite.suite.name, run.id)
                continue
            self._client.add_results_for_cases(run.id, results)
        return runs


# ── Worker entry point ──────────────────────────────────────────────────

def send_report(
    request: PublishRequest, client: Optional[TestRailClient] = None
) -> PublishSummary:
    """Reconcile the collected tree and, when asked to, publish its results."""
    options = request.options
    client = client or TestRailClient.from_options(options)

    logger.info("Reconciling %d suite(s) with TestRail…", len(request.suites))
    reconciled = Reconciler(client, options.case_prefix).reconcile(request.suites)
    summary = PublishSummary(suites=reconciled)

    if options.mode is RunMode.PUBLISH_RAN_TESTS:
        summary.runs = Publisher(client, options.run_name).publish(reconciled)
    else:
        logger.info("Mode '%s': catalogue updated, no run published.", options.mode.value)
    return summary
