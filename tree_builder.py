"""
tree_builder.py – Turns flat runner events into a suite/section/case/step tree.

The path of the file a case lives in decides where it goes::

    <tests root>/Suite/Section/Subsection/File.py  →  Suite ▸ Section ▸ Subsection ▸ File

What a runner node *means* (case boundary, step, expected) is kept in side
tables owned by the builder; runner objects are never patched.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePath
from typing import Callable, Optional, TypeVar, Union

from rich.text import Text

from models import RunnerNode, TestCase, TestSection, TestStep, TestSuite

logger = logging.getLogger("testrail-sync")

TESTCASE = "testcase"
STEP = "step"
EXPECTED = "expected"

NODE_KINDS = (TESTCASE, STEP, EXPECTED)

T = TypeVar("T")


class StructureError(Exception):
    """Tests are laid out or authored in a way that cannot map onto TestRail."""


def format_error(error: Union[BaseException, str]) -> str:
    """Stringify *error* without terminal colour codes."""
    return Text.from_ansi(str(error)).plain


def path_segments(file: str, tests_root_dir: str = "") -> list[str]:
    """Return ``[suite, section, ..., file base name]`` for a test file.

    A relative *tests_root_dir* is taken from the current directory; both
    sides are resolved before the root is stripped.
    """
    path = PurePath(file)
    if tests_root_dir:
        try:
            path = Path(file).resolve().relative_to(Path(tests_root_dir).resolve())
        except ValueError:
            logger.warning("'%s' is outside tests root '%s'", file, tests_root_dir)
    dirs = [part for part in path.parent.parts if part and part != path.anchor]
    return [*dirs, path.name.split(".")[0]]


def _find_or_add(items: list[T], attr: str, value: str, factory: Callable[[], T]) -> T:
    for item in items:
        if getattr(item, attr) == value:
            return item
    item = factory()
    items.append(item)
    return item


class TreeBuilder:
    """Builds the local tree for one test run."""

    def __init__(self, tests_root_dir: str = "", create_cases: bool = False) -> None:
        self.suites: list[TestSuite] = []
        self._tests_root_dir = tests_root_dir
        self._create_cases = create_cases
        self._kinds: dict[RunnerNode, str] = {}
        self._cases: dict[RunnerNode, TestCase] = {}

    # ── Side tables ─────────────────────────────────────────────────────

    def tag(self, node: RunnerNode, kind: str) -> None:
        """Record what *node* represents: a case boundary, a step or an expectation."""
        if kind not in NODE_KINDS:
            raise ValueError(f"Unknown node kind {kind!r}")
        self._kinds[node] = kind

    def kind_of(self, node: RunnerNode) -> Optional[str]:
        return self._kinds.get(node)

    def case_for(self, node: RunnerNode) -> Optional[TestCase]:
        """Walk up from *node* to the nearest ancestor holding a case."""
        current: Optional[RunnerNode] = node
        while current is not None:
            case = self._cases.get(current)
            if case is not None:
                return case
            current = current.parent
        return None

    # ── Tree helpers ────────────────────────────────────────────────────

    def _suite(self, name: str) -> TestSuite:
        return _find_or_add(self.suites, "name", name, lambda: TestSuite(name))

    @staticmethod
    def _section(sections: list[TestSection], name: str) -> TestSection:
        return _find_or_add(sections, "name", name, lambda: TestSection(name))

    @staticmethod
    def _case(section: TestSection, title: str) -> TestCase:
        return _find_or_add(section.cases, "title", title, lambda: TestCase(title))

    # ── Runner events ───────────────────────────────────────────────────

    def on_group_enter(self, node: RunnerNode) -> Optional[TestCase]:
        if (
            not node.file
            or node.root
            or node.parent is None
            or not node.title
            or node.pending
            or self.kind_of(node) != TESTCASE
        ):
            return None

        if self._create_cases:
            node.pending = True

        suite_name, *section_names = path_segments(node.file, self._tests_root_dir)
        if not section_names:
            raise StructureError(
                f"Section is required: '{node.file}' sits directly in the tests root"
            )

        suite = self._suite(suite_name)
        section = self._section(suite.sections, section_names[0])
        for name in section_names[1:]:
            section = self._section(section.sections, name)

        case = self._case(section, node.title)
        self._cases[node] = case
        logger.debug(
            "Case '%s' → %s", node.title, " ▸ ".join([suite_name, *section_names])
        )
        return case

    def _previous_step(self, case: TestCase, node: RunnerNode) -> TestStep:
        if not case.steps:
            raise StructureError(
                f"expected('{node.title}') should be after step() or another expected()"
            )
        return case.steps[-1]

    def on_case_pass(self, node: RunnerNode) -> None:
        kind = self.kind_of(node)
        case = self.case_for(node)
        if kind not in (STEP, EXPECTED) or case is None:
            return

        if kind == STEP:
            case.steps.append(TestStep(status="passed", content=node.title))
            return

        prev = self._previous_step(case, node)
        prev.expected = "\n\n".join(filter(None, [prev.expected, node.title]))
        prev.actual = prev.expected

    def on_case_fail(self, node: RunnerNode, error: Union[BaseException, str]) -> None:
        kind = self.kind_of(node)
        case = self.case_for(node)
        if kind not in (STEP, EXPECTED) or case is None:
            return

        if kind == STEP:
            case.steps.append(
                TestStep(status="failed", content=node.title, actual=format_error(error))
            )
            return

        prev = self._previous_step(case, node)
        prev.status = "failed"
        prev.expected = "\n\n".join(filter(None, [prev.expected, node.title]))
        prev.actual = format_error(error)
