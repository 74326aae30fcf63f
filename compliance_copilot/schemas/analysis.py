"""Analysis schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class FindingResponse(BaseModel):
    """Finding response schema."""

    id: UUID
    type: str
    severity: str
    rule_id: str
    rule_name: str
    message: str
    file: str
    line: int | None
    column: int | None
    code: str | None
    fix_suggestion: str | None

    class Config:
        from_attributes = True


class AnalysisSummaryResponse(BaseModel):
    """Analysis run without its findings."""

    id: UUID
    owner: str
    repo: str
    pr_number: int
    status: str
    total_files: int
    total_findings: int
    critical_count: int
    high_count: int
    medium_count: int
    low_count: int
    info_count: int
    stage_errors: dict
    started_at: datetime
    duration_ms: int

    class Config:
        from_attributes = True


class AnalysisResponse(AnalysisSummaryResponse):
    """Analysis run with findings."""

    findings: list[FindingResponse]


class AnalysisListResponse(BaseModel):
    analyses: list[AnalysisSummaryResponse]
    total: int


class StatsResponse(BaseModel):
    """Aggregate statistics across stored runs."""

    total_analyses: int
    completed: int
    failed: int
    total_findings: int
    critical: int
    high: int
    medium: int
    low: int
    info: int
    avg_duration_ms: int


class TriggerScanRequest(BaseModel):
    """Manual scan request."""

    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    pr_number: int = Field(..., gt=0)
    installation_id: int = Field(..., gt=0)


class TriggerScanResponse(BaseModel):
    status: str
    task_id: str
