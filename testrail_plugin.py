"""
testrail_plugin.py – pytest adapter feeding the TestRail reporter.

Authoring vocabulary::

    @pytest.mark.testcase("Authorization")
    class TestAuthorization:
        @pytest.mark.step("go to main page")
        def test_open(self): ...

        @pytest.mark.expected("auth form has email and password fields")
        def test_form(self): ...

The file path relative to ``--testrail-root`` gives the suite and sections;
the class is the case and its methods are steps, in definition order.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import pytest

from config import ReporterOptions, RunMode
from models import PublishRequest, PublishSummary, RunnerNode
from reporter import TestRailReporter
from testrail_client import TestRailClient
from tree_builder import EXPECTED, STEP, TESTCASE

logger = logging.getLogger("testrail-sync")

MARKERS = [
    "testcase(title): the class is one TestRail case",
    "step(title): the test is a step of its TestRail case",
    "expected(title): the test records the expected result of the previous step",
]


def _marker_title(marker: Any, default: str) -> str:
    if marker.args:
        return str(marker.args[0])
    return str(marker.kwargs.get("title", default))


def _crash_message(report: pytest.TestReport) -> str:
    crash = getattr(report.longrepr, "reprcrash", None)
    if crash is not None and crash.message:
        return crash.message
    return report.longreprtext


def _save_request(path: Path, request: PublishRequest) -> PublishRequest:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(request.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Saved TestRail report to %s", path)
    return request


class TestRailPlugin:
    """Translates pytest collection and reports into reporter events."""

    __test__ = False

    def __init__(self, reporter: TestRailReporter) -> None:
        self.reporter = reporter
        self.error: Optional[BaseException] = None
        self.summary: Any = None
        self._root = RunnerNode(title="", root=True)
        self._steps: dict[str, RunnerNode] = {}

    # ── Collection: cases and their steps ───────────────────────────────

    def _group_node(
        self, cls_node: pytest.Class, groups: dict[str, Optional[RunnerNode]]
    ) -> Optional[RunnerNode]:
        if cls_node.nodeid in groups:
            return groups[cls_node.nodeid]

        marker = cls_node.get_closest_marker(TESTCASE)
        if marker is None:
            groups[cls_node.nodeid] = None
            return None

        module = RunnerNode(title=cls_node.parent.name, file=str(cls_node.path), parent=self._root)
        group = RunnerNode(
            title=_marker_title(marker, cls_node.name),
            file=str(cls_node.path),
            parent=module,
            pending=cls_node.get_closest_marker("skip") is not None,
        )
        self.reporter.tag(group, TESTCASE)
        self.reporter.on_group_enter(group)
        groups[cls_node.nodeid] = group
        return group

    @pytest.hookimpl(trylast=True)
    def pytest_collection_modifyitems(
        self, session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
    ) -> None:
        groups: dict[str, Optional[RunnerNode]] = {}
        for item in items:
            cls_node = item.getparent(pytest.Class)
            if cls_node is None:
                continue
            group = self._group_node(cls_node, groups)
            if group is None:
                continue

            if group.pending and self.reporter.builder.case_for(group) is not None:
                item.add_marker(pytest.mark.skip(reason="TestRail create_cases mode"))

            node = RunnerNode(title=item.name, file=str(item.path), parent=group)
            for kind in (STEP, EXPECTED):
                marker = item.get_closest_marker(kind)
                if marker is not None:
                    node.title = _marker_title(marker, item.name)
                    self.reporter.tag(node, kind)
                    break
            self._steps[item.nodeid] = node

    # ── Execution: step outcomes ────────────────────────────────────────

    def pytest_runtest_logreport(self, report: pytest.TestReport) -> None:
        if report.when != "call":
            return
        node = self._steps.get(report.nodeid)
        if node is None:
            return
        if report.passed:
            self.reporter.on_case_pass(node)
        elif report.failed:
            self.reporter.on_case_fail(node, _crash_message(report))

    # ── End of run: publication ─────────────────────────────────────────

    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        if self.reporter.on_run_end() is None:
            return
        try:
            self.summary = self.reporter.wait()
        except Exception as exc:
            self.error = exc
            logger.error("TestRail publication failed: %s", exc)
            logger.debug("Traceback:", exc_info=True)
            session.exitstatus = pytest.ExitCode.INTERNAL_ERROR

    def pytest_terminal_summary(self, terminalreporter: Any) -> None:
        terminalreporter.section("TestRail")
        if self.error is not None:
            terminalreporter.write_line(f"publication failed: {self.error}", red=True)
        elif isinstance(self.summary, PublishSummary):
            for rs in self.summary.suites:
                terminalreporter.write_line(f"suite '{rs.suite.name}' (id={rs.suite.id}) in sync")
            for run in self.summary.runs:
                terminalreporter.write_line(f"run #{run.id} '{run.name}' published", green=True)
        elif isinstance(self.summary, PublishRequest):
            terminalreporter.write_line(f"report saved for {len(self.summary.suites)} suite(s)")


# ── Module-level hooks (pytest11 entry point) ───────────────────────────

def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("testrail", "TestRail reporting")
    group.addoption(
        "--testrail-mode",
        choices=[m.value for m in RunMode],
        default=None,
        help="do_nothing | create_cases | publish_ran_tests (env TESTRAIL_MODE).",
    )
    group.addoption("--testrail-domain", default=None, help="TestRail host, e.g. acme.testrail.io.")
    group.addoption("--testrail-username", default=None, help="TestRail user (e-mail).")
    group.addoption("--testrail-token", default=None, help="TestRail API token.")
    group.addoption("--testrail-project-id", type=int, default=None, help="TestRail project id.")
    group.addoption(
        "--testrail-root",
        default=None,
        help="Directory stripped from test paths before mapping them to suites.",
    )
    group.addoption("--testrail-case-prefix", default=None, help="Prefix for case titles.")
    group.addoption(
        "--testrail-save",
        default=None,
        metavar="PATH",
        help="Write the collected report to PATH instead of publishing it.",
    )


def resolve_tests_root(rootpath: Path, tests_root_dir: Optional[str]) -> str:
    """Anchor the tests root at pytest's rootdir; empty means the rootdir itself."""
    return str((Path(rootpath) / (tests_root_dir or "")).resolve())


def options_from_config(config: pytest.Config) -> ReporterOptions:
    opts = ReporterOptions.from_settings(
        mode=config.getoption("testrail_mode"),
        domain=config.getoption("testrail_domain"),
        username=config.getoption("testrail_username"),
        api_token=config.getoption("testrail_token"),
        project_id=config.getoption("testrail_project_id"),
        tests_root_dir=config.getoption("testrail_root"),
        case_prefix=config.getoption("testrail_case_prefix"),
    )
    return opts.merged(tests_root_dir=resolve_tests_root(config.rootpath, opts.tests_root_dir))


def pytest_configure(config: pytest.Config) -> None:
    for marker in MARKERS:
        config.addinivalue_line("markers", marker)

    options = options_from_config(config)
    if options.mode is RunMode.DO_NOTHING:
        return

    save = config.getoption("testrail_save")
    if save:
        reporter = TestRailReporter(options, dispatch=lambda req: _save_request(Path(save), req))
    else:
        missing = options.missing()
        if missing:
            raise pytest.UsageError(
                f"TestRail mode '{options.mode.value}' needs: {', '.join(missing)}"
            )
        reporter = TestRailReporter(options, client=TestRailClient.from_options(options))

    config.pluginmanager.register(TestRailPlugin(reporter), "testrail-reporter")
