"""Report data structures persisted for the review UI and CI."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from visreg.models.base import CamelModel
from visreg.models.comparison import ComparisonResult
from visreg.models.git import GitInfo

TestStatus = Literal["passed", "changed", "failed", "new", "deleted"]
ApprovalStatus = Literal["approved", "rejected", "pending"]


class Dimensions(BaseModel):
    width: int = 0
    height: int = 0


class TestInfo(CamelModel):
    framework: str
    viewport: str = ""  # "{width}x{height}" label


class TestResult(ComparisonResult):
    status: TestStatus
    diff_pixels: int = 0
    dimensions: Dimensions = Field(default_factory=Dimensions)
    test_info: TestInfo
    approval_status: Optional[ApprovalStatus] = None


class ReportMetadata(CamelModel):
    generated_at: str
    git_info: GitInfo = Field(default_factory=GitInfo)
    total_tests: int = 0
    changed_tests: int = 0
    passed_tests: int = 0
    framework: str
    tool_version: str


class GroupedTests(CamelModel):
    # test names per review bucket
    approved: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)
    new: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)


class ReportData(CamelModel):
    metadata: ReportMetadata
    tests: list[TestResult] = Field(default_factory=list)
    grouped_tests: GroupedTests = Field(default_factory=GroupedTests)

    def find(self, name: str) -> TestResult | None:
        for test in self.tests:
            if test.name == name:
                return test
        return None


class ApprovalsMeta(BaseModel):
    author: str = "unknown"
    timestamp: str = ""
    commit_sha: str = "unknown"


class ApprovalsData(BaseModel):
    approved: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)
    new: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    meta: ApprovalsMeta = Field(default_factory=ApprovalsMeta)


class DiffEntry(CamelModel):
    name: str
    status: TestStatus
    diff_percentage: Optional[float] = None
    diff_pixels: int = 0
    baseline_path: str
    compare_path: str
    diff_path: Optional[str] = None


class DiffsSummary(CamelModel):
    total_tests: int = 0
    passed_tests: int = 0
    changed_tests: int = 0
    new_tests: int = 0
    deleted_tests: int = 0
    has_differences: bool = False


class DiffsData(CamelModel):
    summary: DiffsSummary
    tests_with_differences: list[DiffEntry] = Field(default_factory=list)
    git_info: GitInfo = Field(default_factory=GitInfo)
    generated_at: str
