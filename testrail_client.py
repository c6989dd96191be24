"""
testrail_client.py – All TestRail REST interactions.

TestRail exposes its API under ``index.php?/api/v2/<method>/<id>``, so query
parameters are appended with ``&`` rather than ``?``.  Every list endpoint is
read through ``_get_list`` which understands both the legacy bare-array
responses and the paginated envelope introduced in TestRail 6.7.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from config import ReporterOptions
from models import Case, Result, Run, Section, StepDescriptor, Suite

logger = logging.getLogger("testrail-sync")

# Template "Test Case (Steps)" – the one carrying custom_steps_separated.
STEPS_TEMPLATE_ID = 2


# ── Payload helpers ─────────────────────────────────────────────────────

def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _steps_payload(steps: list[StepDescriptor]) -> list[dict[str, Any]]:
    return [_drop_none({"content": s.content, "expected": s.expected}) for s in steps]


def _results_payload(results: list[Result]) -> list[dict[str, Any]]:
    return [
        {
            "case_id": r.case_id,
            "status_id": int(r.status_id),
            "custom_step_results": [
                _drop_none(
                    {
                        "status_id": int(s.status_id),
                        "content": s.content,
                        "expected": s.expected,
                        "actual": s.actual,
                    }
                )
                for s in r.step_results
            ],
        }
        for r in results
    ]


def _suite(data: dict[str, Any]) -> Suite:
    return Suite(
        id=data["id"],
        name=data.get("name", ""),
        description=data.get("description"),
        project_id=data.get("project_id"),
        url=data.get("url", "") or "",
    )


def _section(data: dict[str, Any]) -> Section:
    return Section(
        id=data["id"],
        name=data.get("name", ""),
        suite_id=data.get("suite_id"),
        parent_id=data.get("parent_id"),
        depth=data.get("depth", 0) or 0,
        display_order=data.get("display_order", 0) or 0,
    )


def _case(data: dict[str, Any]) -> Case:
    return Case(
        id=data["id"],
        title=data.get("title", ""),
        section_id=data.get("section_id"),
        suite_id=data.get("suite_id"),
        steps=[
            StepDescriptor(content=s.get("content", ""), expected=s.get("expected"))
            for s in data.get("custom_steps_separated") or []
        ],
    )


def _run(data: dict[str, Any]) -> Run:
    return Run(
        id=data["id"],
        name=data.get("name", ""),
        suite_id=data.get("suite_id"),
        include_all=bool(data.get("include_all", True)),
        url=data.get("url", "") or "",
    )


# ── Main client ─────────────────────────────────────────────────────────

class TestRailClient:
    """Wraps every TestRail interaction needed by the reporter."""

    __test__ = False

    def __init__(
        self,
        domain: str,
        username: str,
        api_token: str,
        project_id: int,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._project_id = project_id
        self._host = f"https://{domain}/index.php?"
        self._base = f"{self._host}/api/v2"

        self._session = session or requests.Session()
        self._session.auth = (username, api_token)
        self._session.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_options(
        cls, options: ReporterOptions, session: Optional[requests.Session] = None
    ) -> TestRailClient:
        return cls(
            domain=options.domain,
            username=options.username,
            api_token=options.api_token,
            project_id=options.project_id,
            session=session,
        )

    # ── Transport ───────────────────────────────────────────────────────

    def _check(self, resp: requests.Response) -> requests.Response:
        if not resp.ok:
            logger.error(
                "TestRail %s %s failed (%s): %s",
                resp.request.method,
                resp.url,
                resp.status_code,
                resp.text[:500],
            )
        resp.raise_for_status()
        return resp

    def _get_list(self, path: str, key: str) -> list[dict[str, Any]]:
        """GET a list endpoint, following pagination links until exhausted."""
        url: Optional[str] = f"{self._base}/{path}"
        items: list[dict[str, Any]] = []
        while url:
            data = self._check(self._session.get(url)).json()
            if isinstance(data, list):
                items.extend(data)
                break
            items.extend(data.get(key, []) or [])
            next_link = (data.get("_links") or {}).get("next")
            url = f"{self._host}{next_link}" if next_link else None
        return items

    def _post(self, path: str, body: Any) -> Any:
        resp = self._session.post(f"{self._base}/{path}", json=body)
        return self._check(resp).json()

    # ── Suites ──────────────────────────────────────────────────────────

    def get_suites(self) -> list[Suite]:
        """Return every suite of the configured project."""
        data = self._get_list(f"get_suites/{self._project_id}", "suites")
        return [_suite(s) for s in data]

    def add_suite(self, name: str) -> Suite:
        suite = _suite(self._post(f"add_suite/{self._project_id}", {"name": name}))
        logger.info("Created suite '%s' (id=%s)", name, suite.id)
        return suite

    # ── Sections ────────────────────────────────────────────────────────

    def get_sections(self, suite_id: int) -> list[Section]:
        """Return every section of *suite_id*, at every depth."""
        data = self._get_list(
            f"get_sections/{self._project_id}&suite_id={suite_id}", "sections"
        )
        return [_section(s) for s in data]

    def add_section(
        self, suite_id: int, name: str, parent_id: Optional[int] = None
    ) -> Section:
        body = _drop_none({"name": name, "suite_id": suite_id, "parent_id": parent_id})
        section = _section(self._post(f"add_section/{self._project_id}", body))
        logger.info(
            "Created section '%s' (id=%s, parent=%s)", name, section.id, parent_id
        )
        return section

    # ── Cases ───────────────────────────────────────────────────────────

    def get_cases(self, suite_id: int, section_id: int) -> list[Case]:
        """Return the cases filed directly under *section_id*."""
        data = self._get_list(
            f"get_cases/{self._project_id}&suite_id={suite_id}&section_id={section_id}",
            "cases",
        )
        return [_case(c) for c in data]

    def add_case(
        self, section_id: int, title: str, steps: list[StepDescriptor]
    ) -> Case:
        body = {
            "title": title,
            "template_id": STEPS_TEMPLATE_ID,
            "custom_steps_separated": _steps_payload(steps),
        }
        case = _case(self._post(f"add_case/{section_id}", body))
        logger.info("Created case #%s  →  '%s'", case.id, title)
        return case

    # ── Runs / results ──────────────────────────────────────────────────

    def add_run(self, suite_id: int, name: str, include_all: bool = True) -> Run:
        body = {"suite_id": suite_id, "name": name, "include_all": include_all}
        run = _run(self._post(f"add_run/{self._project_id}", body))
        logger.info("Created run #%s '%s' for suite %s", run.id, name, suite_id)
        return run

    def add_results_for_cases(self, run_id: int, results: list[Result]) -> Any:
        data = self._post(
            f"add_results_for_cases/{run_id}", {"results": _results_payload(results)}
        )
        logger.info("Submitted %d results to run #%s", len(results), run_id)
        return data
