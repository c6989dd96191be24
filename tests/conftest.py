"""Shared fixtures: an in-memory TestRail served through a requests adapter."""

from __future__ import annotations

import json
from typing import Any, Optional

import pytest
import requests
from requests.adapters import BaseAdapter

from config import ReporterOptions, RunMode
from testrail_client import TestRailClient

pytest_plugins = ["pytester"]

DOMAIN = "example.testrail.io"
PROJECT_ID = 1

_LIST_KEYS = {"get_suites": "suites", "get_sections": "sections", "get_cases": "cases"}


def _next_id(objects: list[dict[str, Any]]) -> int:
    return max((o["id"] for o in objects), default=0) + 1


class FakeTestRail:
    """Just enough of the TestRail v2 API to exercise the reporter.

    ``page_size`` switches list endpoints to the paginated envelope;
    ``fail_on`` makes the named endpoint answer 500.
    """

    def __init__(self, page_size: Optional[int] = None) -> None:
        self.suites: list[dict[str, Any]] = []
        self.sections: list[dict[str, Any]] = []
        self.cases: list[dict[str, Any]] = []
        self.runs: list[dict[str, Any]] = []
        self.calls: list[tuple[str, str]] = []
        self.page_size = page_size
        self.fail_on: Optional[str] = None

    # ── Views used by assertions ────────────────────────────────────────

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "suites": [{"id": s["id"], "name": s["name"]} for s in self.suites],
            "sections": [
                {k: s[k] for k in ("id", "name", "suite_id", "parent_id")}
                for s in self.sections
            ],
            "cases": [
                {k: c[k] for k in ("id", "title", "section_id", "suite_id")}
                for c in self.cases
            ],
        }

    def writes(self) -> list[str]:
        return [name for method, name in self.calls if method == "POST"]

    # ── Routing ─────────────────────────────────────────────────────────

    def handle(self, method: str, url: str, body: Any) -> tuple[int, Any]:
        query = url.split("index.php?", 1)[1]
        head, *pairs = query.removeprefix("/api/v2/").split("&")
        name, _, ident = head.partition("/")
        params = dict(p.split("=", 1) for p in pairs)
        self.calls.append((method, name))

        if name == self.fail_on:
            return 500, {"error": "Internal error"}

        handler = getattr(self, f"_{method.lower()}_{name}", None)
        if handler is None:
            return 404, {"error": f"Unknown method {method} {name}"}
        status, payload = handler(int(ident), params, body)
        if method == "GET" and status == 200 and self.page_size:
            payload = self._page(head, name, payload, params)
        return status, payload

    def _page(self, head: str, name: str, items: list[Any], params: dict[str, str]) -> dict:
        offset = int(params.get("offset", 0))
        limit = self.page_size
        chunk = items[offset:offset + limit]
        filters = "".join(f"&{k}={v}" for k, v in params.items() if k not in ("offset", "limit"))
        next_link = None
        if offset + limit < len(items):
            next_link = f"/api/v2/{head}{filters}&limit={limit}&offset={offset + limit}"
        return {
            "offset": offset,
            "limit": limit,
            "size": len(chunk),
            "_links": {"next": next_link, "prev": None},
            _LIST_KEYS[name]: chunk,
        }

    # ── Endpoints ───────────────────────────────────────────────────────

    def _get_get_suites(self, project_id, params, body):
        return 200, list(self.suites)

    def _post_add_suite(self, project_id, params, body):
        suite = {
            "id": _next_id(self.suites),
            "name": body["name"],
            "description": None,
            "project_id": project_id,
            "url": f"https://{DOMAIN}/index.php?/suites/view/{_next_id(self.suites)}",
        }
        self.suites.append(suite)
        return 200, suite

    def _get_get_sections(self, project_id, params, body):
        suite_id = int(params["suite_id"])
        return 200, [s for s in self.sections if s["suite_id"] == suite_id]

    def _post_add_section(self, project_id, params, body):
        parent_id = body.get("parent_id")
        parent = next((s for s in self.sections if s["id"] == parent_id), None)
        section = {
            "id": _next_id(self.sections),
            "name": body["name"],
            "suite_id": body["suite_id"],
            "parent_id": parent_id,
            "depth": parent["depth"] + 1 if parent else 0,
            "display_order": 1,
            "description": None,
        }
        self.sections.append(section)
        return 200, section

    def _get_get_cases(self, project_id, params, body):
        suite_id = int(params["suite_id"])
        section_id = int(params["section_id"])
        return 200, [
            c for c in self.cases
            if c["suite_id"] == suite_id and c["section_id"] == section_id
        ]

    def _post_add_case(self, section_id, params, body):
        section = next((s for s in self.sections if s["id"] == section_id), None)
        if section is None:
            return 400, {"error": f"Section with id {section_id} is not found"}
        case = {
            "id": _next_id(self.cases),
            "title": body["title"],
            "section_id": section_id,
            "suite_id": section["suite_id"],
            "template_id": body.get("template_id"),
            "custom_steps_separated": body.get("custom_steps_separated"),
        }
        self.cases.append(case)
        return 200, case

    def _post_add_run(self, project_id, params, body):
        run = {
            "id": _next_id(self.runs),
            "name": body["name"],
            "suite_id": body["suite_id"],
            "include_all": body.get("include_all"),
            "project_id": project_id,
            "results": [],
        }
        self.runs.append(run)
        return 200, run

    def _post_add_results_for_cases(self, run_id, params, body):
        run = next((r for r in self.runs if r["id"] == run_id), None)
        if run is None:
            return 404, {"error": f"Run with id {run_id} is not found"}
        run["results"].extend(body["results"])
        return 200, run["results"]


class FakeTestRailAdapter(BaseAdapter):
    """Transport adapter answering every request from a FakeTestRail."""

    def __init__(self, server: FakeTestRail) -> None:
        super().__init__()
        self.server = server
        self.requests: list[requests.PreparedRequest] = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        body = json.loads(request.body) if request.body else None
        status, payload = self.server.handle(request.method, request.url, body)

        resp = requests.Response()
        resp.status_code = status
        resp.reason = "OK" if status < 400 else "Error"
        resp._content = json.dumps(payload).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
        resp.encoding = "utf-8"
        resp.url = request.url
        resp.request = request
        return resp

    def close(self) -> None:
        pass


@pytest.fixture
def testrail() -> FakeTestRail:
    return FakeTestRail()


@pytest.fixture
def adapter(testrail: FakeTestRail) -> FakeTestRailAdapter:
    return FakeTestRailAdapter(testrail)


@pytest.fixture
def client(adapter: FakeTestRailAdapter) -> TestRailClient:
    session = requests.Session()
    session.mount("https://", adapter)
    return TestRailClient(DOMAIN, "qa@example.com", "secret-token", PROJECT_ID, session=session)


@pytest.fixture
def options() -> ReporterOptions:
    return ReporterOptions(
        domain=DOMAIN,
        username="qa@example.com",
        api_token="secret-token",
        project_id=PROJECT_ID,
        mode=RunMode.PUBLISH_RAN_TESTS,
    )
