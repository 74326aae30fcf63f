"""Pull request review tasks."""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from compliance_copilot.analyzers.base import ReviewTarget
from compliance_copilot.celery_app import celery_app
from compliance_copilot.config import get_settings
from compliance_copilot.services.review_service import ReviewService

logger = logging.getLogger(__name__)
settings = get_settings()


def get_async_session() -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(
        settings.database_url,
        pool_size=5,
        pool_pre_ping=True,
    )
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def review_pull_request_async(target: ReviewTarget) -> dict:
    session_factory = get_async_session()
    async with session_factory() as db:
        run = await ReviewService(db).review_pr(target)
    return {"analysis_id": run.id, "status": run.status.value, "findings": len(run.findings)}


async def handle_review_comment_async(target: ReviewTarget, body: str) -> dict:
    session_factory = get_async_session()
    async with session_factory() as db:
        result = await ReviewService(db).handle_comment(body, target)
    if result is None:
        return {"status": "ignored"}
    return {"status": "handled", "command": result.command.name}


@celery_app.task(bind=True, max_retries=2)
def review_pull_request(
    self, owner: str, repo: str, pr_number: int, installation_id: int
) -> dict:
    """Celery task entrypoint for PR reviews."""
    target = ReviewTarget(owner=owner, repo=repo, pr_number=pr_number, installation_id=installation_id)
    try:
        return asyncio.run(review_pull_request_async(target))
    except Exception as exc:
        logger.error(f"Review task for {target} failed: {exc}")
        raise self.retry(exc=exc, countdown=10)


@celery_app.task(bind=True, max_retries=2)
def handle_review_comment(
    self, owner: str, repo: str, pr_number: int, installation_id: int, body: str
) -> dict:
    """Celery task entrypoint for mention commands."""
    target = ReviewTarget(owner=owner, repo=repo, pr_number=pr_number, installation_id=installation_id)
    try:
        return asyncio.run(handle_review_comment_async(target, body))
    except Exception as exc:
        logger.error(f"Comment task for {target} failed: {exc}")
        raise self.retry(exc=exc, countdown=10)
