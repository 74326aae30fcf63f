"""Analysis history, statistics and manual scan routes."""

from fastapi import APIRouter, HTTPException, Query, status

from compliance_copilot.api.deps import RecordService
from compliance_copilot.schemas.analysis import (
    AnalysisListResponse,
    AnalysisResponse,
    AnalysisSummaryResponse,
    StatsResponse,
    TriggerScanRequest,
    TriggerScanResponse,
)
from compliance_copilot.tasks.review_pr import review_pull_request

router = APIRouter()


@router.get("/analyses", response_model=AnalysisListResponse)
async def list_analyses(
    records: RecordService,
    limit: int = Query(20, ge=1, le=100),
    repo: str | None = Query(None, description="Filter by owner or owner/repo"),
):
    """List recent analysis runs, newest first."""
    analyses = await records.list_recent(limit=limit, repo=repo)
    return AnalysisListResponse(
        analyses=[AnalysisSummaryResponse.model_validate(a) for a in analyses],
        total=len(analyses),
    )


@router.get("/analyses/{analysis_id}", response_model=AnalysisResponse)
async def get_analysis(analysis_id: str, records: RecordService):
    """Get one analysis run with its findings."""
    analysis = await records.get(analysis_id)
    if not analysis:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Analysis not found",
        )
    return AnalysisResponse.model_validate(analysis)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(records: RecordService):
    """Aggregate counts across all stored runs."""
    return StatsResponse(**await records.summary_stats())


@router.post(
    "/trigger-scan",
    response_model=TriggerScanResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_scan(request: TriggerScanRequest):
    """Queue an analysis of a pull request outside the webhook flow."""
    task = review_pull_request.delay(
        request.owner,
        request.repo,
        request.pr_number,
        request.installation_id,
    )
    return TriggerScanResponse(status="queued", task_id=task.id)
