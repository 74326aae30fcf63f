"""GitHub webhook handlers."""

import logging

from fastapi import APIRouter, Header, HTTPException, Request, status

from compliance_copilot.api.deps import GitHub
from compliance_copilot.tasks.review_pr import handle_review_comment, review_pull_request

logger = logging.getLogger(__name__)

router = APIRouter()

REVIEW_ACTIONS = {"opened", "synchronize", "reopened"}


@router.post("/github")
async def github_webhook(
    request: Request,
    github_service: GitHub,
    x_hub_signature_256: str | None = Header(None),
    x_github_event: str | None = Header(None),
    x_github_delivery: str | None = Header(None),
):
    """Handle GitHub webhooks.

    Supported events:
    - pull_request: PR opened/updated (queues a review)
    - issue_comment: mention commands on PRs
    - ping: webhook configuration check
    """
    payload = await request.body()

    if not github_service.verify_webhook_signature(payload, x_hub_signature_256 or ""):
        logger.warning(f"Rejected webhook delivery {x_github_delivery}: invalid signature")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        )

    event = x_github_event or ""

    if event == "pull_request":
        return handle_pull_request(data)
    elif event == "issue_comment":
        return handle_issue_comment(data)
    elif event == "ping":
        return {"status": "pong"}
    else:
        return {"status": "ignored", "event": event}


def _repository(data: dict) -> tuple[str, str, int]:
    repository = data.get("repository", {})
    owner = repository.get("owner", {}).get("login", "")
    installation_id = data.get("installation", {}).get("id", 0)
    return owner, repository.get("name", ""), installation_id


def handle_pull_request(data: dict):
    """Queue a review when a PR is opened or receives new commits."""
    action = data.get("action")
    if action not in REVIEW_ACTIONS:
        return {"status": "ignored", "action": action}

    owner, repo, installation_id = _repository(data)
    pr_number = data.get("pull_request", {}).get("number") or data.get("number")
    if not (owner and repo and pr_number):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing repository or pull request in payload",
        )

    task = review_pull_request.delay(owner, repo, pr_number, installation_id)
    logger.info(f"Queued review of {owner}/{repo}#{pr_number} ({action}): {task.id}")
    return {"status": "queued", "task_id": task.id}


def handle_issue_comment(data: dict):
    """Queue command handling for new comments on PRs."""
    action = data.get("action")
    issue = data.get("issue", {})
    comment = data.get("comment", {})

    if action != "created" or "pull_request" not in issue:
        return {"status": "ignored", "action": action}
    # Our own replies mention the bot; never react to bot accounts.
    if comment.get("user", {}).get("type") == "Bot":
        return {"status": "ignored", "reason": "bot comment"}

    owner, repo, installation_id = _repository(data)
    task = handle_review_comment.delay(
        owner, repo, issue.get("number"), installation_id, comment.get("body") or ""
    )
    return {"status": "queued", "task_id": task.id}
