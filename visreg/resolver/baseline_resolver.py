"""Baseline resolver: decides baseline vs compare mode and where screenshots live."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from visreg.models.screenshot import BaselineResolution, ScreenshotIdentity
from visreg.naming import sanitize_branch_name

logger = logging.getLogger(__name__)

# Always treated as default, whatever the configured default branch is.
MASTER_BRANCH = "master"


def is_default_branch(branch: str, default_branch: str = "main") -> bool:
    return branch == default_branch or branch == MASTER_BRANCH


class BaselineResolver:
    """Maps screenshot identities onto baseline and compare directories."""

    def __init__(self, baseline_dir: Path, compare_dir: Path, default_branch: str = "main"):
        self.baseline_dir = Path(baseline_dir)
        self.compare_dir = Path(compare_dir)
        self.default_branch = default_branch

    def baseline_path(self, framework: str, name: str) -> Path:
        return self.baseline_dir / framework / f"{name}.png"

    def compare_path(self, framework: str, name: str, branch: str) -> Path:
        return self.compare_dir / sanitize_branch_name(branch) / framework / f"{name}.png"

    def branch_compare_dir(self, framework: str, branch: str) -> Path:
        return self.compare_dir / sanitize_branch_name(branch) / framework

    def resolve(self, identity: ScreenshotIdentity, default_branch: str | None = None) -> BaselineResolution:
        """Decide whether a capture establishes a baseline or is compared against one.

        Default-branch runs are always authoritative. On any other branch a
        baseline is only bootstrapped when none exists yet; if the existence
        check itself fails the resolver treats the capture as a new baseline.
        """
        default = default_branch or self.default_branch
        baseline = self.baseline_path(identity.framework, identity.name)
        compare = self.compare_path(identity.framework, identity.name, identity.branch)
        is_default = is_default_branch(identity.branch, default)

        if is_default:
            should_use_baseline = True
        else:
            try:
                should_use_baseline = not baseline.exists()
            except (OSError, ValueError) as e:
                logger.warning("Could not check baseline %s (%s); treating as new baseline", baseline, e)
                should_use_baseline = True

        logger.debug(
            "Resolved %s/%s on %s: %s", identity.framework, identity.name, identity.branch,
            "baseline" if should_use_baseline else "compare",
        )
        return BaselineResolution(
            should_use_baseline=should_use_baseline,
            baseline_path=baseline,
            compare_path=compare,
            is_default_branch=is_default,
        )

    def screenshot_path(self, identity: ScreenshotIdentity, is_baseline: bool) -> Path:
        if is_baseline:
            return self.baseline_path(identity.framework, identity.name)
        return self.compare_path(identity.framework, identity.name, identity.branch)

    def update_baseline(self, compare_path: Path, baseline_path: Path) -> bool:
        """Copy a candidate screenshot over its baseline."""
        compare_path = Path(compare_path)
        baseline_path = Path(baseline_path)
        if not compare_path.exists():
            logger.error("Cannot update baseline, candidate missing: %s", compare_path)
            return False
        try:
            baseline_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(compare_path, baseline_path)
        except OSError as e:
            logger.error("Failed to update baseline %s: %s", baseline_path, e)
            return False
        logger.info("Updated baseline %s", baseline_path)
        return True
