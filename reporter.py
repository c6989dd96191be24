"""
reporter.py – The object a test runner talks to.

Collection happens synchronously inside the runner's callbacks.  When the run
ends, the finished tree is handed to a single background worker, so network
time is never charged to the tests.  The returned future is the only link
between the two phases.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, Union

from config import ReporterOptions, RunMode
from models import PublishRequest, RunnerNode
from publisher import send_report
from testrail_client import TestRailClient
from tree_builder import TreeBuilder

logger = logging.getLogger("testrail-sync")

Dispatch = Callable[[PublishRequest], Any]


class TestRailReporter:
    """Collects runner events and publishes them once the run is over."""

    __test__ = False

    def __init__(
        self,
        options: ReporterOptions,
        client: Optional[TestRailClient] = None,
        dispatch: Optional[Dispatch] = None,
    ) -> None:
        self.options = options
        self.builder = TreeBuilder(
            options.tests_root_dir,
            create_cases=options.mode is RunMode.CREATE_CASES,
        )
        self._dispatch: Dispatch = dispatch or (lambda req: send_report(req, client))
        self._future: Optional[Future] = None

    @property
    def enabled(self) -> bool:
        return self.options.mode is not RunMode.DO_NOTHING

    # ── Runner events ───────────────────────────────────────────────────

    def tag(self, node: RunnerNode, kind: str) -> None:
        if self.enabled:
            self.builder.tag(node, kind)

    def on_group_enter(self, node: RunnerNode) -> None:
        if self.enabled:
            self.builder.on_group_enter(node)

    def on_case_pass(self, node: RunnerNode) -> None:
        if self.enabled:
            self.builder.on_case_pass(node)

    def on_case_fail(self, node: RunnerNode, error: Union[BaseException, str]) -> None:
        if self.enabled:
            self.builder.on_case_fail(node, error)

    def on_run_end(self) -> Optional[Future]:
        """Hand the finished tree to the publication worker, once."""
        if not self.enabled:
            return None
        if self._future is not None:
            logger.debug("Run end already handled; ignoring repeated signal.")
            return self._future

        request = PublishRequest(suites=self.builder.suites, options=self.options)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="testrail-publish")
        self._future = executor.submit(self._dispatch, request)
        executor.shutdown(wait=False)
        return self._future

    def wait(self, timeout: Optional[float] = None) -> Any:
        """Block until publication finishes; re-raises the worker's error."""
        if self._future is None:
            return None
        return self._future.result(timeout)
