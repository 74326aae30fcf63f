"""PR review service: analysis, persistence and feedback for one pull request."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from compliance_copilot.analyzers.ai_analyzer import AIAssistedAnalyzer
from compliance_copilot.analyzers.base import ReviewTarget
from compliance_copilot.analyzers.rule_catalog import RuleCatalog
from compliance_copilot.analyzers.rules import Rule
from compliance_copilot.analyzers.sandbox_analyzer import SandboxAnalyzer
from compliance_copilot.config import get_settings
from compliance_copilot.services.analysis_record_service import AnalysisRecordService
from compliance_copilot.services.analysis_service import AnalysisOrchestrator, AnalysisRun
from compliance_copilot.services.command_service import CommandDispatcher, CommandResult
from compliance_copilot.services.github_service import GitHubService
from compliance_copilot.services.notification_service import GitHubNotifier
from compliance_copilot.services.source_service import GitHubPullRequestSource

logger = logging.getLogger(__name__)
settings = get_settings()


def build_orchestrator(github_service: GitHubService) -> AnalysisOrchestrator:
    """Default pipeline: GitHub source, built-in rules, sandbox and Gemini stages."""
    return AnalysisOrchestrator(
        source=GitHubPullRequestSource(github_service),
        catalog=RuleCatalog.load(),
        sandbox_factory=SandboxAnalyzer,
        ai_factory=AIAssistedAnalyzer if settings.gemini_api_key else None,
    )


class ReviewService:
    """Runs the analysis pipeline for a PR, stores the run and posts feedback."""

    def __init__(
        self,
        db: AsyncSession,
        github_service: Optional[GitHubService] = None,
        orchestrator: Optional[AnalysisOrchestrator] = None,
        notifier: Optional[GitHubNotifier] = None,
        records: Optional[AnalysisRecordService] = None,
    ):
        self.db = db
        self.github_service = github_service or GitHubService()
        self.orchestrator = orchestrator or build_orchestrator(self.github_service)
        self.notifier = notifier or GitHubNotifier(self.github_service)
        self.records = records or AnalysisRecordService(db)
        self.dispatcher = CommandDispatcher(self.review_pr)

    async def review_pr(self, target: ReviewTarget) -> AnalysisRun:
        """Analyze a PR, persist the run and post the review.

        Args:
            target: Pull request to review

        Returns:
            Terminal AnalysisRun (completed or failed)
        """
        run = await self.orchestrator.run(target, await self._custom_rules())

        if not await self.records.save(run):
            logger.warning(f"Analysis {run.id} for {target} was not persisted")
        await self.notifier.notify(target, run)
        return run

    async def handle_comment(self, body: str, target: ReviewTarget) -> Optional[CommandResult]:
        """Run a mention command from a PR comment and post its reply."""
        result = await self.dispatcher.handle_comment(body, target)
        if result is None:
            return None
        if result.reply:
            await self.notifier.post_comment(target, result.reply)
        return result

    async def _custom_rules(self) -> list[Rule]:
        try:
            return await self.records.list_custom_rules()
        except Exception as e:
            logger.warning(f"Could not load custom rules, using built-ins only: {e}")
            return []
