"""Comparison result data structures produced by the comparator."""

from __future__ import annotations

from typing import Optional

from pydantic import Field, model_validator

from visreg.models.base import CamelModel


class ComparisonResult(CamelModel):
    name: str
    baseline_path: str
    compare_path: str
    diff_path: Optional[str] = None  # None only for a freshly bootstrapped baseline
    passed: bool
    diff_percentage: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    threshold: float = Field(ge=0.0, le=1.0)
    width: Optional[int] = None
    height: Optional[int] = None

    @model_validator(mode="after")
    def check_passed_consistency(self) -> "ComparisonResult":
        if self.diff_percentage is not None:
            expected = self.diff_percentage <= self.threshold
            if self.passed != expected:
                raise ValueError(
                    f"passed={self.passed} contradicts diff {self.diff_percentage} "
                    f"against threshold {self.threshold}"
                )
        return self

    @property
    def is_bootstrap(self) -> bool:
        return self.diff_path is None
