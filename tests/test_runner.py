"""Tests for the workflow runner, including end-to-end scenarios."""

import io
import json
from pathlib import Path

import pytest
from PIL import Image

from visreg.capture.base import CaptureOptions
from visreg.errors import UnknownTestError
from visreg.models.config import VisRegConfig
from visreg.models.git import GitInfo
from visreg.runner import VisualRegressionRunner


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakeCapturer:
    """Returns a fixed image instead of driving a browser."""

    def __init__(self, img: Image.Image, framework: str = "playwright"):
        self.framework = framework
        self.data = png_bytes(img)
        self.calls = []

    async def capture(self, target, options: CaptureOptions) -> bytes:
        self.calls.append((target, options))
        return self.data


@pytest.fixture
def quarter_changed(solid_image, with_block) -> Image.Image:
    """White 10x10 with a 5x5 black block: 25% of pixels differ from white."""
    return with_block(solid_image(), (0, 0, 5, 5))


class TestCapture:
    """Tests for VisualRegressionRunner.capture."""

    @pytest.mark.asyncio
    async def test_first_capture_on_main_creates_baseline(
        self, visreg_config: VisRegConfig, git_info, solid_image
    ):
        """Test an empty baseline dir on main puts the capture in the baseline."""
        runner = VisualRegressionRunner(visreg_config, git_info=git_info)

        outcome = await runner.capture("page", FakeCapturer(solid_image()), name="home")

        baseline = visreg_config.baseline_path / "playwright" / "home.png"
        assert outcome.is_baseline
        assert outcome.resolution.should_use_baseline
        assert outcome.path == baseline
        assert baseline.exists()
        assert not visreg_config.compare_path.exists()
        assert not visreg_config.report_path.exists()

    @pytest.mark.asyncio
    async def test_feature_capture_with_baseline_goes_to_compare(
        self, visreg_config: VisRegConfig, feature_git_info, quarter_changed, save_png, solid_image
    ):
        save_png(visreg_config.baseline_path / "playwright" / "home.png", solid_image())
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)

        outcome = await runner.capture("page", FakeCapturer(quarter_changed), name="home")

        assert not outcome.is_baseline
        assert outcome.path == visreg_config.compare_path / "feature-x" / "playwright" / "home.png"
        assert outcome.path.exists()

    @pytest.mark.asyncio
    async def test_name_from_url(self, visreg_config: VisRegConfig, git_info, solid_image):
        runner = VisualRegressionRunner(visreg_config, git_info=git_info)
        outcome = await runner.capture("page", FakeCapturer(solid_image()), url="https://example.com/products/list")
        assert outcome.identity.name == "products-list"

    @pytest.mark.asyncio
    async def test_name_is_sanitized(self, visreg_config: VisRegConfig, git_info, solid_image):
        runner = VisualRegressionRunner(visreg_config, git_info=git_info)
        outcome = await runner.capture("page", FakeCapturer(solid_image()), name="Home Page!")
        assert outcome.path.name == "Home-Page.png"

    @pytest.mark.asyncio
    async def test_passes_options_to_capturer(self, visreg_config: VisRegConfig, git_info, solid_image):
        runner = VisualRegressionRunner(visreg_config, git_info=git_info)
        capturer = FakeCapturer(solid_image())
        options = CaptureOptions(full_page=True)

        await runner.capture("page", capturer, name="home", options=options)

        assert capturer.calls == [("page", options)]

    @pytest.mark.asyncio
    async def test_requires_name_or_url(self, visreg_config: VisRegConfig, git_info, solid_image):
        runner = VisualRegressionRunner(visreg_config, git_info=git_info)
        with pytest.raises(ValueError):
            await runner.capture("page", FakeCapturer(solid_image()))

    @pytest.mark.asyncio
    async def test_framework_mismatch(self, visreg_config: VisRegConfig, git_info, solid_image):
        runner = VisualRegressionRunner(visreg_config, git_info=git_info)
        with pytest.raises(ValueError, match="cypress"):
            await runner.capture("page", FakeCapturer(solid_image(), framework="cypress"), name="home")

    @pytest.mark.asyncio
    async def test_branch_override(self, visreg_config: VisRegConfig, git_info, save_png, solid_image):
        """Test config.branch wins over the git branch."""
        save_png(visreg_config.baseline_path / "playwright" / "home.png", solid_image())
        config = visreg_config.model_copy(update={"branch": "ci/job"})
        runner = VisualRegressionRunner(config, git_info=git_info)

        outcome = await runner.capture("page", FakeCapturer(solid_image()), name="home")

        assert runner.branch == "ci/job"
        assert outcome.path == visreg_config.compare_path / "ci-job" / "playwright" / "home.png"


class TestRunCompare:
    """Tests for VisualRegressionRunner.run_compare."""

    @pytest.mark.asyncio
    async def test_changed_scenario(
        self, visreg_config: VisRegConfig, git_info, feature_git_info, quarter_changed, solid_image
    ):
        """Test a 25% diff against a 10% threshold is reported as changed."""
        await VisualRegressionRunner(visreg_config, git_info=git_info).capture(
            "page", FakeCapturer(solid_image()), name="home",
        )
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)
        await runner.capture("page", FakeCapturer(quarter_changed), name="home")

        report = runner.run_compare()

        test = report.find("home")
        assert test is not None
        assert not test.passed
        assert test.diff_percentage == pytest.approx(0.25)
        assert test.status == "changed"
        assert report.metadata.changed_tests == 1
        assert report.metadata.git_info.branch == "feature/x"
        assert Path(test.diff_path).exists()
        assert Path(test.diff_path) == runner.writer.diff_image_path("playwright", "home")

        saved = json.loads(runner.writer.report_path.read_text())
        assert saved["metadata"]["changedTests"] == 1
        assert runner.writer.diffs_path.exists()
        assert runner.writer.approvals_path.exists()
        assert runner.writer.history_path.exists()

    def test_identical_candidate_passes(
        self, visreg_config: VisRegConfig, feature_git_info, save_png, solid_image
    ):
        save_png(visreg_config.baseline_path / "playwright" / "home.png", solid_image())
        save_png(visreg_config.compare_path / "feature-x" / "playwright" / "home.png", solid_image())
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)

        report = runner.run_compare()

        assert report.metadata.passed_tests == 1
        assert report.find("home").diff_percentage == 0.0

    def test_missing_baseline_is_bootstrapped(
        self, visreg_config: VisRegConfig, feature_git_info, quarter_changed, save_png
    ):
        """Test a candidate with no baseline becomes the new baseline."""
        candidate = save_png(
            visreg_config.compare_path / "feature-x" / "playwright" / "new-page.png", quarter_changed,
        )
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)

        report = runner.run_compare()

        baseline = visreg_config.baseline_path / "playwright" / "new-page.png"
        assert baseline.read_bytes() == candidate.read_bytes()
        test = report.find("new-page")
        assert test.passed
        assert test.diff_path is None
        assert test.diff_percentage is None
        assert test.width == 10

    def test_unreadable_candidate_is_skipped(
        self, visreg_config: VisRegConfig, caplog, feature_git_info, save_png, solid_image
    ):
        save_png(visreg_config.baseline_path / "playwright" / "good.png", solid_image())
        save_png(visreg_config.compare_path / "feature-x" / "playwright" / "good.png", solid_image())
        save_png(visreg_config.baseline_path / "playwright" / "bad.png", solid_image())
        (visreg_config.compare_path / "feature-x" / "playwright" / "bad.png").write_bytes(b"garbage")
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)

        with caplog.at_level("ERROR"):
            report = runner.run_compare()

        assert [t.name for t in report.tests] == ["good"]
        assert "bad" in caplog.text

    def test_oversized_candidate_is_skipped(
        self, visreg_config: VisRegConfig, caplog, feature_git_info, save_png, solid_image, oversized_png
    ):
        """Test a screenshot past the decompression bomb limit does not abort the batch."""
        save_png(visreg_config.baseline_path / "playwright" / "good.png", solid_image())
        save_png(visreg_config.compare_path / "feature-x" / "playwright" / "good.png", solid_image())
        save_png(visreg_config.baseline_path / "playwright" / "huge.png", solid_image())
        oversized_png(visreg_config.compare_path / "feature-x" / "playwright" / "huge.png")
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)

        with caplog.at_level("ERROR"):
            report = runner.run_compare()

        assert [t.name for t in report.tests] == ["good"]
        assert "huge" in caplog.text
        assert runner.writer.report_path.exists()

    def test_oversized_candidate_without_baseline_is_bootstrapped(
        self, visreg_config: VisRegConfig, feature_git_info, oversized_png
    ):
        """Test an undecodable bootstrap still passes, with unknown dimensions."""
        oversized_png(visreg_config.compare_path / "feature-x" / "playwright" / "huge.png")
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)

        report = runner.run_compare()

        test = report.find("huge")
        assert test.passed
        assert test.width is None

    def test_dimension_mismatch_is_skipped(
        self, visreg_config: VisRegConfig, feature_git_info, save_png, solid_image
    ):
        save_png(visreg_config.baseline_path / "playwright" / "home.png", solid_image((10, 10)))
        save_png(visreg_config.compare_path / "feature-x" / "playwright" / "home.png", solid_image((12, 10)))
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)

        report = runner.run_compare()

        assert report.tests == []
        assert not runner.writer.diff_image_path("playwright", "home").exists()

    def test_missing_compare_directory(self, visreg_config: VisRegConfig, feature_git_info):
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)
        report = runner.run_compare()
        assert report.metadata.total_tests == 0
        assert runner.writer.report_path.exists()

    def test_update_baselines(
        self, visreg_config: VisRegConfig, feature_git_info, quarter_changed, save_png, solid_image
    ):
        """Test failing candidates overwrite their baselines when enabled."""
        baseline = save_png(visreg_config.baseline_path / "playwright" / "home.png", solid_image())
        candidate = save_png(
            visreg_config.compare_path / "feature-x" / "playwright" / "home.png", quarter_changed,
        )
        config = visreg_config.model_copy(update={"update_baselines": True})

        report = VisualRegressionRunner(config, git_info=feature_git_info).run_compare()

        assert report.find("home").status == "changed"
        assert baseline.read_bytes() == candidate.read_bytes()

    def test_baselines_untouched_by_default(
        self, visreg_config: VisRegConfig, feature_git_info, quarter_changed, save_png, solid_image
    ):
        baseline = save_png(visreg_config.baseline_path / "playwright" / "home.png", solid_image())
        original = baseline.read_bytes()
        save_png(visreg_config.compare_path / "feature-x" / "playwright" / "home.png", quarter_changed)

        VisualRegressionRunner(visreg_config, git_info=feature_git_info).run_compare()

        assert baseline.read_bytes() == original

    def test_preserves_history(self, visreg_config: VisRegConfig, feature_git_info, accept):
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)
        runner.history.record_approvals({"home": accept()}, feature_git_info)

        runner.run_compare()

        assert len(runner.history.load().commits) == 1

    def test_rerun_keeps_recorded_decisions(
        self, visreg_config: VisRegConfig, feature_git_info, quarter_changed, save_png, solid_image, reject
    ):
        """Test comparing again on a reviewed commit keeps its approval overlay and approvals.json."""
        save_png(visreg_config.baseline_path / "playwright" / "home.png", solid_image())
        save_png(visreg_config.compare_path / "feature-x" / "playwright" / "home.png", quarter_changed)
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)
        runner.run_compare()
        runner.record_decisions({"home": reject()})

        report = runner.run_compare()

        assert report.find("home").approval_status == "rejected"
        assert report.grouped_tests.rejected == ["home"]
        assert runner.writer.load_approvals().rejected == ["home"]

    def test_decisions_from_other_commits_not_applied(
        self, visreg_config: VisRegConfig, feature_git_info, make_git_info, save_png, solid_image, accept
    ):
        save_png(visreg_config.baseline_path / "playwright" / "home.png", solid_image())
        save_png(visreg_config.compare_path / "feature-x" / "playwright" / "home.png", solid_image())
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)
        runner.history.record_approvals({"home": accept()}, make_git_info("0ld0001"))

        report = runner.run_compare()

        assert report.find("home").approval_status is None
        assert runner.writer.load_approvals().approved == []



class TestRecordDecisions:
    """Tests for VisualRegressionRunner.record_decisions."""

    @pytest.fixture
    def compared(
        self, visreg_config: VisRegConfig, feature_git_info, quarter_changed, save_png, solid_image
    ) -> VisualRegressionRunner:
        for name in ("home", "about"):
            save_png(visreg_config.baseline_path / "playwright" / f"{name}.png", solid_image())
            save_png(
                visreg_config.compare_path / "feature-x" / "playwright" / f"{name}.png", quarter_changed,
            )
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)
        runner.run_compare()
        return runner

    def test_accept_promotes_candidate(
        self, compared: VisualRegressionRunner, visreg_config: VisRegConfig, accept
    ):
        """Test accepting a change copies the candidate over the baseline."""
        compared.record_decisions({"home": accept()})

        baseline = visreg_config.baseline_path / "playwright" / "home.png"
        candidate = visreg_config.compare_path / "feature-x" / "playwright" / "home.png"
        assert baseline.read_bytes() == candidate.read_bytes()

    def test_reject_keeps_baseline(
        self, compared: VisualRegressionRunner, visreg_config: VisRegConfig, reject
    ):
        baseline = visreg_config.baseline_path / "playwright" / "about.png"
        original = baseline.read_bytes()

        compared.record_decisions({"about": reject()})

        assert baseline.read_bytes() == original

    def test_updates_report_and_approvals(
        self, compared: VisualRegressionRunner, feature_git_info, accept, reject
    ):
        compared.record_decisions({"home": accept(), "about": reject()})

        report = compared.writer.load_report()
        assert report.find("home").approval_status == "approved"
        assert report.find("about").approval_status == "rejected"
        assert report.grouped_tests.approved == ["home"]
        assert report.grouped_tests.rejected == ["about"]

        approvals = compared.writer.load_approvals()
        assert approvals.approved == ["home"]
        assert approvals.rejected == ["about"]
        assert approvals.meta.commit_sha == feature_git_info.sha

    def test_records_history(self, compared: VisualRegressionRunner, accept):
        history = compared.record_decisions({"home": accept()})

        commit = history.commits[0]
        assert commit.short_sha == "def5678"
        assert commit.branch == "feature/x"
        assert commit.summary.accepted == 1
        assert commit.summary.pending == 1
        assert commit.summary.total_tests == 2
        assert compared.history.load() == history

    def test_decisions_accumulate_per_commit(self, compared: VisualRegressionRunner, accept, reject):
        compared.record_decisions({"home": accept()})
        history = compared.record_decisions({"about": reject()})

        assert len(history.commits) == 1
        assert set(history.commits[0].approvals) == {"home", "about"}
        assert history.commits[0].summary.pending == 0

    def test_unknown_test(self, compared: VisualRegressionRunner, accept):
        with pytest.raises(UnknownTestError, match="missing"):
            compared.record_decisions({"missing": accept()})
        assert compared.history.load().commits == []

    def test_requires_report(self, visreg_config: VisRegConfig, feature_git_info, accept):
        runner = VisualRegressionRunner(visreg_config, git_info=feature_git_info)
        with pytest.raises(FileNotFoundError):
            runner.record_decisions({"home": accept()})

    def test_warns_without_git_metadata(self, compared: VisualRegressionRunner, accept, caplog):
        """Test decisions recorded outside a git checkout are logged as such."""
        compared.git_info = GitInfo(branch="feature/x")

        with caplog.at_level("WARNING"):
            history = compared.record_decisions({"home": accept()})

        assert "No git metadata" in caplog.text
        assert history.commits[0].short_sha == "unknown"
