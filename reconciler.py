"""
reconciler.py – Mirrors the local tree onto TestRail, creating only what is missing.

Every level follows the same list → match → create order, one entity at a
time.  Matching against a freshly fetched list is what keeps repeated runs
from creating duplicates, so nothing here may run concurrently: two racing
lookups would both miss and both create.

Matching rules (exact, case-sensitive):
  • suite   – name, within the project
  • section – name + parent_id, within the suite
  • case    – prefixed title, within the section
"""

from __future__ import annotations

import logging
from typing import Optional

from config import DEFAULT_CASE_PREFIX
from models import (
    Case,
    ReconciledCase,
    ReconciledSection,
    ReconciledSuite,
    Section,
    StepDescriptor,
    Suite,
    TestCase,
    TestSection,
    TestSuite,
)
from testrail_client import TestRailClient

logger = logging.getLogger("testrail-sync")


class Reconciler:
    """Finds or creates the remote counterpart of every local node."""

    def __init__(
        self, client: TestRailClient, case_prefix: str = DEFAULT_CASE_PREFIX
    ) -> None:
        self._client = client
        self._case_prefix = case_prefix

    def reconcile(self, suites: list[TestSuite]) -> list[ReconciledSuite]:
        existing = self._client.get_suites()
        results: list[ReconciledSuite] = []
        for suite in suites:
            remote = self._ensure_suite(existing, suite.name)
            results.append(
                ReconciledSuite(
                    suite=remote,
                    sections=self._reconcile_sections(suite.sections, remote.id),
                )
            )
        return results

    # ── Suites ──────────────────────────────────────────────────────────

    def _ensure_suite(self, existing: list[Suite], name: str) -> Suite:
        for suite in existing:
            if suite.name == name:
                logger.info("Suite '%s' already exists (id=%s)", name, suite.id)
                return suite
        return self._client.add_suite(name)

    # ── Sections ────────────────────────────────────────────────────────

    def _reconcile_sections(
        self,
        sections: list[TestSection],
        suite_id: int,
        parent_id: Optional[int] = None,
    ) -> list[ReconciledSection]:
        if not sections:
            return []

        existing = self._client.get_sections(suite_id)
        results: list[ReconciledSection] = []
        for section in sections:
            remote = self._ensure_section(existing, suite_id, section.name, parent_id)
            results.append(
                ReconciledSection(
                    section=remote,
                    sections=self._reconcile_sections(
                        section.sections, suite_id, remote.id
                    ),
                    cases=self._reconcile_cases(section.cases, suite_id, remote.id),
                )
            )
        return results

    def _ensure_section(
        self,
        existing: list[Section],
        suite_id: int,
        name: str,
        parent_id: Optional[int],
    ) -> Section:
        for section in existing:
            if section.name == name and section.parent_id == parent_id:
                logger.info("Section '%s' already exists (id=%s)", name, section.id)
                return section
        return self._client.add_section(suite_id, name, parent_id)

    # ── Cases ───────────────────────────────────────────────────────────

    def _reconcile_cases(
        self, cases: list[TestCase], suite_id: int, section_id: int
    ) -> list[ReconciledCase]:
        if not cases:
            return []

        existing: dict[str, Case] = {}
        for remote_case in self._client.get_cases(suite_id, section_id):
            existing.setdefault(remote_case.title, remote_case)

        results: list[ReconciledCase] = []
        for case in cases:
            title = self._case_prefix + case.title
            remote = existing.get(title)
            if remote is not None:
                logger.debug("Case '%s' already exists (id=%s)", title, remote.id)
            else:
                steps = [StepDescriptor(s.content, s.expected) for s in case.steps]
                remote = self._client.add_case(section_id, title, steps)
                existing[title] = remote
            results.append(ReconciledCase(case=remote, steps=case.steps))
        return results
