"""Tests for PR feedback rendering and posting."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from compliance_copilot.analyzers.base import Category, Finding, ReviewTarget, Severity
from compliance_copilot.services.analysis_service import AnalysisRun
from compliance_copilot.services.finding_aggregator import FindingAggregator
from compliance_copilot.services.notification_service import GitHubNotifier, build_notification


def make_finding(severity, line=5, message="Issue", fix=None):
    return Finding(
        type=Category.SECURITY,
        severity=severity,
        message=message,
        file="src/app.js",
        line=line,
        rule_id="rule",
        rule_name="Some Rule",
        fix_suggestion=fix,
    )


@pytest.fixture
def target():
    return ReviewTarget(owner="acme", repo="shop", pr_number=42, installation_id=7)


def completed(target, findings, pr_context=None):
    run = AnalysisRun(target=target)
    run.mark_running()
    run.pull_request = pr_context
    result = FindingAggregator().aggregate(findings, total_files=2)
    run.complete(result.findings, result.stats, 1500)
    return run


class TestBuildNotification:
    """Test summary, annotations and conclusion."""

    def test_critical_means_failure(self, target):
        notification = build_notification(completed(target, [make_finding(Severity.CRITICAL)]))

        assert notification.conclusion == "failure"
        assert notification.review_event == "REQUEST_CHANGES"
        assert "Critical issues found" in notification.summary

    def test_high_means_neutral(self, target):
        notification = build_notification(completed(target, [make_finding(Severity.HIGH)]))

        assert notification.conclusion == "neutral"
        assert notification.review_event == "COMMENT"

    def test_clean_means_success(self, target):
        notification = build_notification(completed(target, [make_finding(Severity.LOW)]))

        assert notification.conclusion == "success"
        assert notification.annotations == []

    def test_failed_run_is_neutral(self, target):
        run = AnalysisRun(target=target)
        run.mark_running()
        run.fail("boom", 10)

        notification = build_notification(run)

        assert notification.conclusion == "neutral"
        assert "could not be completed" in notification.summary

    def test_annotations_capped_and_filtered(self, target):
        findings = [make_finding(Severity.HIGH, line=i + 1, message=f"m{i}") for i in range(15)]
        findings.append(make_finding(Severity.CRITICAL, line=None, message="no line"))
        findings.append(make_finding(Severity.MEDIUM, line=99, message="medium"))

        notification = build_notification(completed(target, findings))

        assert len(notification.annotations) == 10
        assert all(a.line for a in notification.annotations)

    def test_annotation_includes_fix(self, target):
        run = completed(target, [make_finding(Severity.CRITICAL, fix="Rotate the key")])

        annotation = build_notification(run).annotations[0]

        assert "Rotate the key" in annotation.body
        assert annotation.to_review_comment() == {
            "path": "src/app.js",
            "line": 5,
            "body": annotation.body,
        }

    def test_summary_lists_top_five_by_severity(self, target):
        findings = [make_finding(Severity.LOW, line=i, message=f"low{i}") for i in range(1, 6)]
        findings.append(make_finding(Severity.CRITICAL, line=50, message="worst"))

        summary = build_notification(completed(target, findings)).summary

        assert "1. :red_circle: **Some Rule**" in summary
        assert "low5" not in summary
        assert "| :red_circle: Critical | 1 |" in summary
        assert "**Duration:** 1.50s" in summary


class TestGitHubNotifier:
    """Test posting to GitHub."""

    @pytest.fixture
    def github(self):
        service = MagicMock()
        service.create_pr_review = AsyncMock(return_value={"id": 1})
        service.create_check_run = AsyncMock(return_value={"id": 2})
        service.create_issue_comment = AsyncMock(return_value={"id": 3})
        service.create_review_comment = AsyncMock(return_value={"id": 4})
        return service

    @pytest.mark.asyncio
    async def test_notify_posts_review_and_check(self, github, target, pr_context):
        run = completed(target, [make_finding(Severity.CRITICAL)], pr_context)

        assert await GitHubNotifier(github).notify(target, run) is True

        review = github.create_pr_review.await_args.kwargs
        assert review["event"] == "REQUEST_CHANGES"
        assert review["commit_id"] == pr_context.head_sha
        assert len(review["comments"]) == 1
        check = github.create_check_run.await_args.kwargs
        assert check["conclusion"] == "failure"
        assert check["head_sha"] == pr_context.head_sha

    @pytest.mark.asyncio
    async def test_notify_without_head_sha_skips_check(self, github, target):
        run = completed(target, [])

        await GitHubNotifier(github).notify(target, run)

        github.create_check_run.assert_not_awaited()
        assert github.create_pr_review.await_args.kwargs["comments"] is None

    @pytest.mark.asyncio
    async def test_notify_failure_returns_false(self, github, target):
        github.create_pr_review.side_effect = RuntimeError("403")

        assert await GitHubNotifier(github).notify(target, completed(target, [])) is False

    @pytest.mark.asyncio
    async def test_rejected_annotations_do_not_block_summary_or_check(self, github, target, pr_context):
        """An inline comment outside the diff only costs that one comment."""
        findings = [
            make_finding(Severity.CRITICAL, line=5, message="in diff"),
            make_finding(Severity.HIGH, line=900, message="outside diff"),
        ]
        run = completed(target, findings, pr_context)
        github.create_pr_review.side_effect = [RuntimeError("422 Line could not be resolved"), {"id": 1}]
        github.create_review_comment.side_effect = [{"id": 4}, RuntimeError("422 Line could not be resolved")]

        assert await GitHubNotifier(github).notify(target, run) is True

        first, retry = github.create_pr_review.await_args_list
        assert len(first.kwargs["comments"]) == 2
        assert retry.kwargs["comments"] is None
        assert retry.kwargs["body"] == first.kwargs["body"]
        assert github.create_review_comment.await_count == 2
        assert github.create_review_comment.await_args.kwargs["commit_id"] == pr_context.head_sha
        github.create_check_run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_check_run_posted_when_summary_fails(self, github, target, pr_context):
        run = completed(target, [], pr_context)
        github.create_pr_review.side_effect = RuntimeError("502")

        assert await GitHubNotifier(github).notify(target, run) is False

        github.create_pr_review.assert_awaited_once()
        github.create_check_run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_check_run_failure_reported(self, github, target, pr_context):
        github.create_check_run.side_effect = RuntimeError("403")

        notified = await GitHubNotifier(github).notify(target, completed(target, [], pr_context))

        assert notified is False
        github.create_pr_review.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_post_comment(self, github, target):
        assert await GitHubNotifier(github).post_comment(target, "hi") is True

        github.create_issue_comment.assert_awaited_once_with(
            installation_id=7, owner="acme", repo="shop", pr_number=42, body="hi"
        )
