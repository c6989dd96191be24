"""
models.py – Plain data-classes shared across every module.

Three families live here:
  • the local tree built while tests run  (TestSuite → TestSection → TestCase → TestStep)
  • remote TestRail entities              (Suite, Section, Case, Run, Result)
  • the reconciled tree + hand-off messages between collection and publication
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import Any, Optional

from config import ReporterOptions


# ── Local tree ──────────────────────────────────────────────────────────

@dataclass
class TestStep:
    """One recorded action inside a case, optionally annotated by expected()."""

    __test__ = False

    status: str                           # passed | failed
    content: str
    expected: Optional[str] = None
    actual: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == "passed"


@dataclass
class TestCase:
    """A case-boundary group; its steps are filled in as tests report."""

    __test__ = False

    title: str
    steps: list[TestStep] = field(default_factory=list)


@dataclass
class TestSection:
    __test__ = False

    name: str
    sections: list[TestSection] = field(default_factory=list)
    cases: list[TestCase] = field(default_factory=list)


@dataclass
class TestSuite:
    __test__ = False

    name: str
    sections: list[TestSection] = field(default_factory=list)


@dataclass(eq=False)
class RunnerNode:
    """A suite or test as reported by the host runner.

    Compared and hashed by identity so builders can key side tables on it.
    """

    title: str
    file: Optional[str] = None
    parent: Optional[RunnerNode] = None
    pending: bool = False
    root: bool = False


# ── Remote (TestRail) entities ─────────────────────────────────────────

class ResultStatus(IntEnum):
    PASSED = 1
    BLOCKED = 2
    UNTESTED = 3
    RETEST = 4
    FAILED = 5

    @classmethod
    def from_step(cls, status: str) -> ResultStatus:
        return cls.PASSED if status == "passed" else cls.FAILED


@dataclass
class StepDescriptor:
    """A step as stored on a TestRail case (custom_steps_separated)."""

    content: str
    expected: Optional[str] = None


@dataclass
class Suite:
    id: int
    name: str
    description: Optional[str] = None
    project_id: Optional[int] = None
    url: str = ""


@dataclass
class Section:
    id: int
    name: str
    suite_id: int
    parent_id: Optional[int] = None
    depth: int = 0
    display_order: int = 0


@dataclass
class Case:
    id: int
    title: str
    section_id: int
    suite_id: Optional[int] = None
    steps: list[StepDescriptor] = field(default_factory=list)


@dataclass
class Run:
    id: int
    name: str
    suite_id: Optional[int] = None
    include_all: bool = True
    url: str = ""


@dataclass
class StepResult:
    status_id: ResultStatus
    content: str
    expected: Optional[str] = None
    actual: Optional[str] = None


@dataclass
class Result:
    case_id: int
    status_id: ResultStatus
    step_results: list[StepResult] = field(default_factory=list)


# ── Reconciled tree ─────────────────────────────────────────────────────

@dataclass
class ReconciledCase:
    """A remote case paired with the steps recorded for it in this run."""

    case: Case
    steps: list[TestStep] = field(default_factory=list)


@dataclass
class ReconciledSection:
    section: Section
    sections: list[ReconciledSection] = field(default_factory=list)
    cases: list[ReconciledCase] = field(default_factory=list)


@dataclass
class ReconciledSuite:
    suite: Suite
    sections: list[ReconciledSection] = field(default_factory=list)


# ── Hand-off between collection and publication ────────────────────────

SEND_REPORT = "SEND_REPORT"


def _section_from_dict(data: dict[str, Any]) -> TestSection:
    return TestSection(
        name=data["name"],
        sections=[_section_from_dict(s) for s in data.get("sections", [])],
        cases=[
            TestCase(
                title=c["title"],
                steps=[TestStep(**s) for s in c.get("steps", [])],
            )
            for c in data.get("cases", [])
        ],
    )


@dataclass
class PublishRequest:
    """The completed local tree plus the options it should be published with."""

    suites: list[TestSuite]
    options: ReporterOptions
    type: str = SEND_REPORT

    def to_dict(self, include_token: bool = False) -> dict[str, Any]:
        return {
            "type": self.type,
            "completedTestsInfo": {"suites": [asdict(s) for s in self.suites]},
            "reporterOptions": self.options.to_dict(include_token=include_token),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublishRequest:
        if data.get("type") != SEND_REPORT:
            raise ValueError(f"Unexpected message type {data.get('type')!r}")
        suites = [
            TestSuite(
                name=s["name"],
                sections=[_section_from_dict(sec) for sec in s.get("sections", [])],
            )
            for s in data.get("completedTestsInfo", {}).get("suites", [])
        ]
        return cls(
            suites=suites,
            options=ReporterOptions.from_dict(data.get("reporterOptions", {})),
        )


@dataclass
class PublishSummary:
    """Acknowledgment returned once reconciliation (and publication) finished."""

    suites: list[ReconciledSuite] = field(default_factory=list)
    runs: list[Run] = field(default_factory=list)
