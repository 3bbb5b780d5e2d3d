"""Domain models."""

from devhub.domain.analysis import AnalysisResult, AnalysisTask, ProcessingMetrics, ProgressUpdate
from devhub.domain.user import CurrentUser

__all__ = [
    "AnalysisResult",
    "AnalysisTask",
    "CurrentUser",
    "ProcessingMetrics",
    "ProgressUpdate",
]
