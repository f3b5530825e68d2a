"""Data models for TrialScope."""

from trialscope.models.model_analytics import (
    CountryStat,
    PhaseDistribution,
    PhaseStat,
    StatusStat,
)
from trialscope.models.model_clinical_trials import (
    PageResult,
    StudyBatch,
    TotalCount,
    Trial,
)

__all__ = [
    "CountryStat",
    "PageResult",
    "PhaseDistribution",
    "PhaseStat",
    "StatusStat",
    "StudyBatch",
    "TotalCount",
    "Trial",
]
