"""
Requirement analysis domain models.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class AnalysisTask(BaseModel):
    """One developer task proposed by the analyzer."""

    task_id: int = Field(..., description="Task number within the analysis")
    title: str = Field(..., description="Short descriptive title")
    description: str = Field(default="")
    affected_files: list[str] = Field(default_factory=list)
    implementation_details: str = Field(default="")
    references: list[str] = Field(default_factory=list)
    estimated_complexity: str = Field(default="Medium", description="Low, Medium or High")


class AnalysisResult(BaseModel):
    """The analyzer's final answer for a requirement."""

    requirement_summary: str = Field(default="")
    key_components: list[str] = Field(default_factory=list)
    tasks: list[AnalysisTask] = Field(default_factory=list)
    missing_information: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)

    @property
    def task_count(self) -> int:
        return len(self.tasks)


class ProcessingMetrics(BaseModel):
    cache_hits: int = Field(default=0)
    cache_misses: int = Field(default=0)
    parallel_operations: int = Field(default=0)
    average_processing_time: float = Field(default=0)
    execution_time: float = Field(default=0)
    start_time: Optional[str] = Field(default=None)
    end_time: Optional[str] = Field(default=None)


class ProgressUpdate(BaseModel):
    """A step of a running analysis."""

    step: str = Field(default="")
    description: str = Field(default="")
    progress_percentage: float = Field(default=0, ge=0, le=100)
    details: dict[str, Any] = Field(default_factory=dict)
