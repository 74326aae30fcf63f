"""Tests for the GitHub webhook endpoint."""

import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from compliance_copilot.api.deps import get_github_service
from compliance_copilot.services.github_service import GitHubService

SECRET = "test-webhook-secret"

REPOSITORY = {"name": "shop", "owner": {"login": "acme"}}


def signed_headers(body: bytes, event: str) -> dict:
    digest = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()
    return {
        "X-Hub-Signature-256": f"sha256={digest}",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "delivery-1",
        "Content-Type": "application/json",
    }


@pytest.fixture
def tasks():
    with patch("compliance_copilot.api.routes.webhooks.review_pull_request") as review, patch(
        "compliance_copilot.api.routes.webhooks.handle_review_comment"
    ) as comment:
        review.delay.return_value = MagicMock(id="task-review")
        comment.delay.return_value = MagicMock(id="task-comment")
        yield review, comment


@pytest.fixture
def client(tasks):
    with patch("compliance_copilot.main.init_db", new_callable=AsyncMock):
        from compliance_copilot.main import app

        github = GitHubService()
        github.webhook_secret = SECRET
        app.dependency_overrides[get_github_service] = lambda: github
        with TestClient(app) as client:
            yield client
        app.dependency_overrides.clear()


def post(client, event, payload):
    body = json.dumps(payload).encode()
    return client.post("/webhooks/github", content=body, headers=signed_headers(body, event))


class TestWebhookSecurity:
    def test_invalid_signature_rejected(self, client, tasks):
        response = client.post(
            "/webhooks/github",
            content=b"{}",
            headers={"X-Hub-Signature-256": "sha256=deadbeef", "X-GitHub-Event": "ping"},
        )

        assert response.status_code == 401

    def test_missing_signature_rejected(self, client, tasks):
        response = client.post("/webhooks/github", content=b"{}", headers={"X-GitHub-Event": "ping"})

        assert response.status_code == 401

    def test_ping(self, client):
        response = post(client, "ping", {"zen": "Keep it simple."})

        assert response.json() == {"status": "pong"}


class TestPullRequestEvents:
    """Test review queueing."""

    def test_opened_queues_review(self, client, tasks):
        review, _ = tasks
        payload = {
            "action": "opened",
            "number": 42,
            "pull_request": {"number": 42},
            "repository": REPOSITORY,
            "installation": {"id": 7},
        }

        response = post(client, "pull_request", payload)

        assert response.json() == {"status": "queued", "task_id": "task-review"}
        review.delay.assert_called_once_with("acme", "shop", 42, 7)

    def test_closed_ignored(self, client, tasks):
        review, _ = tasks
        payload = {"action": "closed", "pull_request": {"number": 42}, "repository": REPOSITORY}

        response = post(client, "pull_request", payload)

        assert response.json()["status"] == "ignored"
        review.delay.assert_not_called()

    def test_missing_repository(self, client, tasks):
        response = post(client, "pull_request", {"action": "opened", "pull_request": {"number": 1}})

        assert response.status_code == 400

    def test_unknown_event_ignored(self, client):
        response = post(client, "star", {"action": "created"})

        assert response.json() == {"status": "ignored", "event": "star"}


class TestIssueCommentEvents:
    """Test mention command queueing."""

    def comment_payload(self, user_type="User", on_pr=True):
        issue = {"number": 42}
        if on_pr:
            issue["pull_request"] = {"url": "https://api.github.com/repos/acme/shop/pulls/42"}
        return {
            "action": "created",
            "issue": issue,
            "comment": {"body": "@compliance-bot scan", "user": {"login": "octocat", "type": user_type}},
            "repository": REPOSITORY,
            "installation": {"id": 7},
        }

    def test_pr_comment_queued(self, client, tasks):
        _, comment = tasks

        response = post(client, "issue_comment", self.comment_payload())

        assert response.json()["status"] == "queued"
        comment.delay.assert_called_once_with("acme", "shop", 42, 7, "@compliance-bot scan")

    def test_bot_comment_ignored(self, client, tasks):
        _, comment = tasks

        response = post(client, "issue_comment", self.comment_payload(user_type="Bot"))

        assert response.json()["status"] == "ignored"
        comment.delay.assert_not_called()

    def test_issue_comment_ignored(self, client, tasks):
        _, comment = tasks

        post(client, "issue_comment", self.comment_payload(on_pr=False))

        comment.delay.assert_not_called()
