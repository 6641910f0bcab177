"""Workflow runner: coordinates capture, comparison, reporting and review decisions."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from visreg.capture.base import CaptureOptions, ScreenshotCapturer
from visreg.compare.comparator import compare_screenshots, read_dimensions
from visreg.errors import (
    BaselineMissingError,
    CandidateMissingError,
    ImageDecodeError,
    IncompatibleDimensionsError,
    UnknownTestError,
)
from visreg.git_info import fetch_git_info
from visreg.models.comparison import ComparisonResult
from visreg.models.config import VisRegConfig
from visreg.models.git import GitInfo
from visreg.models.history import Decision, HistoryData
from visreg.models.report import ReportData
from visreg.models.screenshot import CaptureOutcome, ScreenshotIdentity
from visreg.naming import name_from_url, sanitize_screenshot_name
from visreg.reporter.aggregator import aggregate, apply_approvals, refresh
from visreg.reporter.history import HistoryStoreManager
from visreg.reporter.report_writer import ReportWriter, build_approvals_snapshot
from visreg.resolver.baseline_resolver import BaselineResolver
from visreg.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class VisualRegressionRunner:
    """Runs the visual regression workflow for one configuration.

    All state lives on disk; every method loads what it needs and persists
    before returning. Only one runner should write to a report directory at a
    time.
    """

    def __init__(self, config: VisRegConfig, git_info: GitInfo | None = None):
        self.config = config
        self.git_info = git_info if git_info is not None else fetch_git_info()
        self.resolver = BaselineResolver(
            config.baseline_path, config.compare_path, config.default_branch,
        )
        self.writer = ReportWriter(config.report_path)
        self.history = HistoryStoreManager(self.writer.history_path, config.max_history)

    @property
    def branch(self) -> str:
        return self.config.branch or self.git_info.branch

    @property
    def git_context(self) -> GitInfo:
        if self.branch == self.git_info.branch:
            return self.git_info
        return self.git_info.model_copy(update={"branch": self.branch})

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def capture(
        self,
        target: Any,
        capturer: ScreenshotCapturer,
        name: str | None = None,
        url: str | None = None,
        options: CaptureOptions | None = None,
    ) -> CaptureOutcome:
        """Capture a screenshot into the baseline or compare directory.

        The name is derived from ``url`` when omitted. Captures are only
        written; comparison happens in :meth:`run_compare`.
        """
        if capturer.framework != self.config.framework:
            raise ValueError(
                f"Capturer is for {capturer.framework}, but the configured framework is {self.config.framework}"
            )
        if name:
            name = sanitize_screenshot_name(name)
        elif url:
            name = name_from_url(url)
        else:
            raise ValueError("A screenshot name or a URL to derive it from is required")

        identity = ScreenshotIdentity(framework=self.config.framework, name=name, branch=self.branch)
        resolution = self.resolver.resolve(identity)
        path = resolution.baseline_path if resolution.should_use_baseline else resolution.compare_path

        data = await capturer.capture(target, options or CaptureOptions())
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(
            "Captured %s (%s) -> %s", name,
            "baseline" if resolution.should_use_baseline else "compare", path,
        )
        return CaptureOutcome(
            identity=identity,
            resolution=resolution,
            path=path,
            is_baseline=resolution.should_use_baseline,
        )

    # ------------------------------------------------------------------
    # Compare
    # ------------------------------------------------------------------

    def find_candidates(self, branch: str | None = None) -> list[Path]:
        directory = self.resolver.branch_compare_dir(self.config.framework, branch or self.branch)
        if not directory.is_dir():
            logger.warning("Compare directory does not exist: %s", directory)
            return []
        return sorted(directory.glob("*.png"))

    def compare_one(self, compare_file: Path) -> ComparisonResult | None:
        """Compare a single candidate. Returns None when it has to be skipped."""
        framework = self.config.framework
        name = compare_file.stem
        baseline = self.resolver.baseline_path(framework, name)
        diff = self.writer.diff_image_path(framework, name)

        try:
            result = compare_screenshots(
                baseline, compare_file, diff,
                threshold=self.config.diff_threshold,
                engine=self.config.engine,
                tolerance=self.config.pixel_tolerance,
            )
        except BaselineMissingError:
            logger.info("Creating new baseline: %s/%s", framework, name)
            if not self.resolver.update_baseline(compare_file, baseline):
                return None
            return self._bootstrap_result(name, baseline, compare_file)
        except (CandidateMissingError, ImageDecodeError, IncompatibleDimensionsError) as e:
            logger.error("Skipping %s/%s on %s: %s", framework, name, self.branch, e)
            return None

        if self.config.update_baselines and not result.passed:
            self.resolver.update_baseline(compare_file, baseline)
        return result

    def _bootstrap_result(self, name: str, baseline: Path, compare_file: Path) -> ComparisonResult:
        size = read_dimensions(baseline)
        return ComparisonResult(
            name=name,
            baseline_path=str(baseline),
            compare_path=str(compare_file),
            diff_path=None,
            passed=True,
            diff_percentage=None,
            threshold=self.config.diff_threshold,
            width=size[0] if size else None,
            height=size[1] if size else None,
        )

    def run_compare(self, branch: str | None = None) -> ReportData:
        """Compare every candidate on a branch and write the report."""
        start = time.time()
        branch = branch or self.branch
        candidates = self.find_candidates(branch)
        logger.info("Comparing %d screenshots on branch %s", len(candidates), branch)

        results = []
        for compare_file in candidates:
            result = self.compare_one(compare_file)
            if result is not None:
                results.append(result)

        now = utc_now()
        git = self.git_context
        history = self.history.load()
        history.max_history = self.config.max_history
        # A rerun on an already reviewed commit keeps its decisions.
        decisions = history.decisions_for(git.short_sha)
        report = aggregate(results, self.config.framework, now, git, approvals=decisions)

        approvals = build_approvals_snapshot(git, now, decisions)
        self.writer.generate_reports(report, history, approvals)

        logger.info(
            "Comparison complete in %.1fs: %d total, %d passed, %d changed",
            time.time() - start, report.metadata.total_tests,
            report.metadata.passed_tests, report.metadata.changed_tests,
        )
        return report

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def record_decisions(self, decisions: dict[str, Decision]) -> HistoryData:
        """Apply reviewer decisions to the current report and record them in history.

        Accepted tests have their candidate copied over the baseline.
        Decisions for the same commit accumulate across calls.
        """
        report = self.writer.load_report()
        unknown = sorted(name for name in decisions if report.find(name) is None)
        if unknown:
            raise UnknownTestError(unknown)

        git = self.git_context
        if git.is_unknown:
            logger.warning("No git metadata available; recording decisions under commit %s", git.short_sha)
        merged = self.history.load().decisions_for(git.short_sha)
        merged.update(decisions)

        for name, decision in decisions.items():
            test = report.find(name)
            if decision.action == "accept" and not test.is_bootstrap:
                self.resolver.update_baseline(Path(test.compare_path), Path(test.baseline_path))

        apply_approvals(report.tests, merged)
        refresh(report)
        self.writer.write_report(report)

        now = utc_now()
        approvals = build_approvals_snapshot(git, now, merged)
        self.writer.write_approvals(approvals)

        history = self.history.record_approvals(merged, git, total_tests=len(report.tests))
        self.writer.embed_in_html(report, history, approvals)
        return history
