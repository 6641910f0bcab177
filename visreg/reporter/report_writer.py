"""Report output: compare report, approvals snapshot, CI diff summary and viewer data."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from visreg.errors import PersistenceError, ReportCorruptError
from visreg.models.git import GitInfo
from visreg.models.history import Decision, HistoryData
from visreg.models.report import (
    ApprovalsData,
    ApprovalsMeta,
    DiffEntry,
    DiffsData,
    DiffsSummary,
    ReportData,
)
from visreg.utils.json_io import write_json_atomic, write_text_atomic

logger = logging.getLogger(__name__)

REPORT_FILE = "compare-report.json"
HISTORY_FILE = "history.json"
APPROVALS_FILE = "approvals.json"
DIFFS_DIR = "diffs"
DIFFS_FILE = "diffs.json"
VIEWER_FILE = "index.html"

DIFF_STATUSES = ("changed", "failed", "new")


def build_approvals_snapshot(
    git_info: GitInfo, now: str, decisions: dict[str, Decision] | None = None,
) -> ApprovalsData:
    decisions = decisions or {}
    return ApprovalsData(
        approved=sorted(n for n, d in decisions.items() if d.action == "accept"),
        rejected=sorted(n for n, d in decisions.items() if d.action == "reject"),
        meta=ApprovalsMeta(author=git_info.author or "unknown", timestamp=now, commit_sha=git_info.sha),
    )


def build_diffs_data(report: ReportData) -> DiffsData:
    with_diffs = [t for t in report.tests if t.status in DIFF_STATUSES]
    return DiffsData(
        summary=DiffsSummary(
            total_tests=report.metadata.total_tests,
            passed_tests=report.metadata.passed_tests,
            changed_tests=report.metadata.changed_tests,
            new_tests=sum(1 for t in report.tests if t.status == "new"),
            deleted_tests=sum(1 for t in report.tests if t.status == "deleted"),
            has_differences=bool(with_diffs),
        ),
        tests_with_differences=[
            DiffEntry(
                name=t.name,
                status=t.status,
                diff_percentage=t.diff_percentage,
                diff_pixels=t.diff_pixels,
                baseline_path=t.baseline_path,
                compare_path=t.compare_path,
                diff_path=t.diff_path,
            )
            for t in with_diffs
        ],
        git_info=report.metadata.git_info,
        generated_at=report.metadata.generated_at,
    )


class ReportWriter:
    """Writes report artifacts into a report directory."""

    def __init__(self, report_dir: Path):
        self.report_dir = Path(report_dir)

    @property
    def report_path(self) -> Path:
        return self.report_dir / REPORT_FILE

    @property
    def history_path(self) -> Path:
        return self.report_dir / HISTORY_FILE

    @property
    def approvals_path(self) -> Path:
        return self.report_dir / APPROVALS_FILE

    @property
    def diffs_path(self) -> Path:
        return self.report_dir / DIFFS_DIR / DIFFS_FILE

    def diff_image_path(self, framework: str, name: str) -> Path:
        return self.report_dir / DIFFS_DIR / framework / f"{name}.png"

    def write_report(self, report: ReportData) -> Path:
        write_json_atomic(self.report_path, report.to_json_dict())
        return self.report_path

    def load_report(self) -> ReportData:
        if not self.report_path.exists():
            raise FileNotFoundError(f"No report found at {self.report_path}. Run 'visreg compare' first.")
        try:
            with open(self.report_path, encoding="utf-8") as f:
                return ReportData.model_validate(json.load(f))
        except OSError as e:
            raise PersistenceError(self.report_path, e, action="read") from e
        except ValueError as e:
            # JSONDecodeError, UnicodeDecodeError and ValidationError
            raise ReportCorruptError(self.report_path, e) from e

    def write_history(self, history: HistoryData) -> Path:
        write_json_atomic(self.history_path, history.to_json_dict())
        return self.history_path

    def write_approvals(self, approvals: ApprovalsData) -> Path:
        write_json_atomic(self.approvals_path, approvals.model_dump(mode="json"))
        return self.approvals_path

    def load_approvals(self) -> ApprovalsData | None:
        if not self.approvals_path.exists():
            return None
        try:
            with open(self.approvals_path, encoding="utf-8") as f:
                return ApprovalsData.model_validate(json.load(f))
        except ValueError as e:
            logger.warning("Ignoring unreadable approvals file %s: %s", self.approvals_path, e)
            return None

    def write_diffs_summary(self, report: ReportData) -> Path:
        write_json_atomic(self.diffs_path, build_diffs_data(report).to_json_dict())
        return self.diffs_path

    def embed_in_html(
        self, report: ReportData, history: HistoryData, approvals: ApprovalsData,
    ) -> Path | None:
        """Inline report data into an existing viewer page so it opens without a server."""
        viewer = self.report_dir / VIEWER_FILE
        if not viewer.exists():
            logger.debug("%s not found, skipping data embedding", viewer)
            return None

        html = viewer.read_text(encoding="utf-8")
        if "</head>" not in html:
            logger.warning("%s has no </head>; skipping data embedding", viewer)
            return None

        payload = json.dumps({
            "reportData": report.to_json_dict(),
            "historyData": history.to_json_dict(),
            "approvalsData": approvals.model_dump(mode="json"),
        })
        # Keep "</script>" inside string values from closing the tag early
        payload = payload.replace("</", "<\\/")
        script = (
            '<script id="visreg-embedded-data">\n'
            "  window.visreg = window.visreg || {};\n"
            f"  window.visreg.embeddedData = {payload};\n"
            "</script>\n"
        )
        html = _strip_previous_embed(html)
        write_text_atomic(viewer, html.replace("</head>", f"{script}</head>", 1))
        return viewer

    def generate_reports(
        self, report: ReportData, history: HistoryData, approvals: ApprovalsData,
    ) -> dict[str, str]:
        """Write every artifact. Returns artifact name -> file path."""
        try:
            self.report_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(self.report_dir, e) from e

        generated = {
            "report": str(self.write_report(report)),
            "history": str(self.write_history(history)),
            "approvals": str(self.write_approvals(approvals)),
            "diffs": str(self.write_diffs_summary(report)),
        }
        viewer = self.embed_in_html(report, history, approvals)
        if viewer:
            generated["viewer"] = str(viewer)
        logger.info("Report written to %s", self.report_dir)
        return generated


def _strip_previous_embed(html: str) -> str:
    start = html.find('<script id="visreg-embedded-data">')
    if start == -1:
        return html
    end = html.find("</script>", start)
    if end == -1:
        return html
    end += len("</script>")
    if html[end:end + 1] == "\n":
        end += 1
    return html[:start] + html[end:]
