"""API dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_copilot.database import get_db
from compliance_copilot.services.analysis_record_service import AnalysisRecordService
from compliance_copilot.services.github_service import GitHubService

# Type aliases for cleaner signatures
DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_record_service(db: DbSession) -> AnalysisRecordService:
    return AnalysisRecordService(db)


def get_github_service() -> GitHubService:
    return GitHubService()


RecordService = Annotated[AnalysisRecordService, Depends(get_record_service)]
GitHub = Annotated[GitHubService, Depends(get_github_service)]
