"""Result aggregation: turns comparison outcomes into report data."""

from __future__ import annotations

import logging
from importlib import metadata

from visreg.models.comparison import ComparisonResult
from visreg.models.git import GitInfo
from visreg.models.history import Decision
from visreg.models.report import (
    Dimensions,
    GroupedTests,
    ReportData,
    ReportMetadata,
    TestInfo,
    TestResult,
)

logger = logging.getLogger(__name__)

CHANGED_STATUSES = ("changed", "failed")
_APPROVAL_FOR_ACTION = {"accept": "approved", "reject": "rejected"}


def tool_version() -> str:
    try:
        return metadata.version("visreg")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def to_test_result(result: ComparisonResult, framework: str) -> TestResult:
    width = result.width or 0
    height = result.height or 0
    diff_fraction = result.diff_percentage or 0.0
    return TestResult(
        **result.model_dump(),
        # "failed" is reserved for engine errors; comparisons are either passed or changed
        status="passed" if result.passed else "changed",
        diff_pixels=round(diff_fraction * width * height),
        dimensions=Dimensions(width=width, height=height),
        test_info=TestInfo(framework=framework, viewport=f"{width}x{height}" if width else ""),
    )


def apply_approvals(tests: list[TestResult], approvals: dict[str, Decision]) -> None:
    """Overlay reviewer decisions onto tests as approval statuses."""
    for test in tests:
        decision = approvals.get(test.name)
        if decision is not None:
            test.approval_status = _APPROVAL_FOR_ACTION[decision.action]


def group_by_status(tests: list[TestResult]) -> GroupedTests:
    grouped = GroupedTests()
    for test in tests:
        if test.approval_status == "approved":
            grouped.approved.append(test.name)
        elif test.approval_status == "rejected":
            grouped.rejected.append(test.name)
        elif test.status == "new":
            grouped.new.append(test.name)
        elif test.status == "deleted":
            grouped.deleted.append(test.name)
        else:
            grouped.pending.append(test.name)
    return grouped


def build_metadata(tests: list[TestResult], framework: str, now: str, git_info: GitInfo) -> ReportMetadata:
    return ReportMetadata(
        generated_at=now,
        git_info=git_info,
        total_tests=len(tests),
        changed_tests=sum(1 for t in tests if t.status in CHANGED_STATUSES),
        passed_tests=sum(1 for t in tests if t.status == "passed"),
        framework=framework,
        tool_version=tool_version(),
    )


def aggregate(
    results: list[ComparisonResult],
    framework: str,
    now: str,
    git_info: GitInfo,
    approvals: dict[str, Decision] | None = None,
) -> ReportData:
    """Build report data from a batch of comparison results."""
    tests = [to_test_result(r, framework) for r in results]
    if approvals:
        apply_approvals(tests, approvals)

    report = ReportData(
        metadata=build_metadata(tests, framework, now, git_info),
        tests=tests,
        grouped_tests=group_by_status(tests),
    )
    logger.debug(
        "Aggregated %d tests: %d passed, %d changed",
        report.metadata.total_tests, report.metadata.passed_tests, report.metadata.changed_tests,
    )
    return report


def refresh(report: ReportData) -> ReportData:
    """Recompute counts and groups after tests were modified in place."""
    report.metadata.total_tests = len(report.tests)
    report.metadata.changed_tests = sum(1 for t in report.tests if t.status in CHANGED_STATUSES)
    report.metadata.passed_tests = sum(1 for t in report.tests if t.status == "passed")
    report.grouped_tests = group_by_status(report.tests)
    return report
