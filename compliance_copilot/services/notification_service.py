"""Renders analysis runs as PR feedback and posts it to GitHub."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from compliance_copilot.analyzers.base import Finding, ReviewTarget, Severity
from compliance_copilot.services.analysis_service import AnalysisRun, RunStatus
from compliance_copilot.services.finding_aggregator import FindingAggregator
from compliance_copilot.services.github_service import GitHubService

logger = logging.getLogger(__name__)

MAX_ANNOTATIONS = 10
TOP_FINDINGS = 5

SEVERITY_EMOJI = {
    Severity.CRITICAL: ":red_circle:",
    Severity.HIGH: ":orange_circle:",
    Severity.MEDIUM: ":yellow_circle:",
    Severity.LOW: ":large_blue_circle:",
    Severity.INFO: ":white_circle:",
}


@dataclass(frozen=True)
class Annotation:
    file: str
    line: int
    body: str

    def to_review_comment(self) -> dict[str, Any]:
        return {"path": self.file, "line": self.line, "body": self.body}


@dataclass
class Notification:
    summary: str
    conclusion: str
    check_summary: str
    annotations: list[Annotation] = field(default_factory=list)

    @property
    def review_event(self) -> str:
        return "REQUEST_CHANGES" if self.conclusion == "failure" else "COMMENT"


def conclusion_for(run: AnalysisRun) -> str:
    if run.status == RunStatus.FAILED:
        return "neutral"
    if run.stats.critical > 0:
        return "failure"
    if run.stats.high > 0:
        return "neutral"
    return "success"


def format_annotation(finding: Finding) -> str:
    body = f"{SEVERITY_EMOJI[finding.severity]} **{finding.rule_name}** ({finding.severity.value})\n\n"
    body += f"{finding.message}\n\n"
    if finding.fix_suggestion:
        body += f"**:bulb: Suggested Fix:**\n{finding.fix_suggestion}\n\n"
    return body


def build_summary(run: AnalysisRun) -> str:
    stats = run.stats
    parts = ["## :shield: Compliance Analysis Results\n\n"]

    if run.status == RunStatus.FAILED:
        parts.append("**Status:** :warning: Analysis could not be completed\n\n")
    elif stats.critical > 0:
        parts.append("**Status:** :x: Critical issues found\n\n")
    elif stats.high > 0:
        parts.append("**Status:** :warning: Issues found\n\n")
    else:
        parts.append("**Status:** :white_check_mark: No critical issues\n\n")

    parts.append("### :bar_chart: Summary\n")
    parts.append(f"- **Total Findings:** {stats.total_findings}\n")
    parts.append(f"- **Files Analyzed:** {stats.total_files}\n")
    parts.append(f"- **Duration:** {run.duration_ms / 1000:.2f}s\n\n")

    parts.append("### :dart: Findings by Severity\n")
    parts.append("| Severity | Count |\n")
    parts.append("|----------|-------|\n")
    for severity in Severity:
        parts.append(
            f"| {SEVERITY_EMOJI[severity]} {severity.value.capitalize()} | {stats.count(severity)} |\n"
        )
    parts.append("\n")

    if run.findings:
        parts.append("### :mag: Top Findings\n\n")
        top = FindingAggregator.rank(run.findings)[:TOP_FINDINGS]
        for index, finding in enumerate(top, start=1):
            location = f":{finding.line}" if finding.line else ""
            parts.append(
                f"{index}. {SEVERITY_EMOJI[finding.severity]} **{finding.rule_name}** "
                f"in `{finding.file}`{location}\n"
            )
            parts.append(f"   {finding.message}\n\n")

    parts.append("\n---\n")
    parts.append(":bulb: **Commands:**\n")
    parts.append("- `@compliance-bot scan` - Re-run analysis\n")
    parts.append("- `@compliance-bot fix` - Create PR with automated fixes\n")
    parts.append("- `@compliance-bot ignore <rule-id>` - Ignore a rule\n")
    return "".join(parts)


def build_check_summary(run: AnalysisRun) -> str:
    stats = run.stats
    summary = f"Analyzed {stats.total_files} files and found {stats.total_findings} issues.\n\n"
    for severity in Severity:
        summary += f"- {severity.value.capitalize()}: {stats.count(severity)}\n"
    return summary


def build_notification(run: AnalysisRun) -> Notification:
    """Summary, up to ten inline annotations and a check conclusion for ``run``."""
    annotations = [
        Annotation(file=f.file, line=f.line, body=format_annotation(f))
        for f in run.findings
        if f.severity in (Severity.CRITICAL, Severity.HIGH) and f.line
    ][:MAX_ANNOTATIONS]
    return Notification(
        summary=build_summary(run),
        conclusion=conclusion_for(run),
        check_summary=build_check_summary(run),
        annotations=annotations,
    )


class GitHubNotifier:
    """Posts analysis results and command replies to the pull request."""

    def __init__(self, github_service: Optional[GitHubService] = None):
        self.github_service = github_service or GitHubService()

    async def notify(self, target: ReviewTarget, run: AnalysisRun) -> bool:
        """Post the review summary, inline annotations and check run.

        Each part is posted independently. If GitHub rejects the review
        because of an inline comment (typically a line outside the diff), the
        summary is re-posted alone and each annotation is retried on its own.

        Returns:
            False if the summary or the check run could not be posted
        """
        notification = build_notification(run)
        head_sha = run.pull_request.head_sha if run.pull_request else ""

        summary_posted = await self._post_review(target, run, notification, head_sha)
        check_posted = await self._post_check_run(target, run, notification, head_sha)

        if summary_posted and check_posted:
            logger.info(f"Posted analysis {run.id} to {target} ({notification.conclusion})")
        return summary_posted and check_posted

    async def _post_review(
        self,
        target: ReviewTarget,
        run: AnalysisRun,
        notification: Notification,
        head_sha: str,
    ) -> bool:
        comments = [a.to_review_comment() for a in notification.annotations]
        try:
            await self._create_review(target, notification, comments or None, head_sha)
            return True
        except Exception as e:
            if not comments:
                logger.error(f"Failed to post analysis {run.id} to {target}: {e}")
                return False
            logger.warning(f"Review with {len(comments)} inline comments rejected for {target}: {e}")

        try:
            await self._create_review(target, notification, None, head_sha)
        except Exception as e:
            logger.error(f"Failed to post analysis {run.id} to {target}: {e}")
            return False

        if head_sha:
            await self._post_annotations(target, notification.annotations, head_sha)
        return True

    async def _create_review(
        self,
        target: ReviewTarget,
        notification: Notification,
        comments: Optional[list[dict[str, Any]]],
        head_sha: str,
    ) -> None:
        await self.github_service.create_pr_review(
            installation_id=target.installation_id,
            owner=target.owner,
            repo=target.repo,
            pr_number=target.pr_number,
            body=notification.summary,
            event=notification.review_event,
            comments=comments,
            commit_id=head_sha or None,
        )

    async def _post_annotations(
        self, target: ReviewTarget, annotations: list[Annotation], head_sha: str
    ) -> int:
        posted = 0
        for annotation in annotations:
            try:
                await self.github_service.create_review_comment(
                    installation_id=target.installation_id,
                    owner=target.owner,
                    repo=target.repo,
                    pr_number=target.pr_number,
                    commit_id=head_sha,
                    path=annotation.file,
                    line=annotation.line,
                    body=annotation.body,
                )
                posted += 1
            except Exception as e:
                logger.warning(f"Skipping annotation on {annotation.file}:{annotation.line}: {e}")
        logger.info(f"Posted {posted} of {len(annotations)} annotations individually to {target}")
        return posted

    async def _post_check_run(
        self,
        target: ReviewTarget,
        run: AnalysisRun,
        notification: Notification,
        head_sha: str,
    ) -> bool:
        if not head_sha:
            return True
        try:
            await self.github_service.create_check_run(
                installation_id=target.installation_id,
                owner=target.owner,
                repo=target.repo,
                head_sha=head_sha,
                conclusion=notification.conclusion,
                title="Compliance Analysis Complete",
                summary=notification.check_summary,
            )
        except Exception as e:
            logger.error(f"Failed to create check run for analysis {run.id}: {e}")
            return False
        return True

    async def post_comment(self, target: ReviewTarget, body: str) -> bool:
        try:
            await self.github_service.create_issue_comment(
                installation_id=target.installation_id,
                owner=target.owner,
                repo=target.repo,
                pr_number=target.pr_number,
                body=body,
            )
        except Exception as e:
            logger.error(f"Failed to post comment to {target}: {e}")
            return False
        return True
