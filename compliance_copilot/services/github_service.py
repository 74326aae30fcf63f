"""GitHub App client for pull request data, reviews and check runs."""

import hashlib
import hmac
import logging
import time
from datetime import datetime
from typing import Any

import httpx
import jwt

from compliance_copilot.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

JSON_MEDIA_TYPE = "application/vnd.github+json"
RAW_MEDIA_TYPE = "application/vnd.github.raw"


class GitHubService:
    """Calls the GitHub REST API as a GitHub App installation.

    - Installation tokens are cached until five minutes before expiry
    - Webhook signatures are verified with constant-time comparison
    """

    GITHUB_API_BASE = "https://api.github.com"
    PER_PAGE = 100
    # GitHub stops listing PR files after 3000 entries
    MAX_FILE_PAGES = 30
    TOKEN_REFRESH_MARGIN = 300

    def __init__(self):
        self.app_id = settings.github_app_id
        self.private_key = settings.github_app_private_key
        self.webhook_secret = settings.github_webhook_secret
        self._installation_tokens: dict[int, tuple[str, float]] = {}

    # =========================================================================
    # App authentication
    # =========================================================================

    def _create_app_jwt(self) -> str:
        """Sign a short-lived RS256 JWT identifying the App itself."""
        issued = int(time.time()) - 60  # tolerate clock drift
        return jwt.encode(
            {"iat": issued, "exp": issued + 600, "iss": self.app_id},
            self.private_key,
            algorithm="RS256",
        )

    @staticmethod
    def _parse_expiry(expires_at: str | None) -> float:
        if expires_at:
            try:
                return datetime.fromisoformat(expires_at.replace("Z", "+00:00")).timestamp()
            except ValueError:
                logger.warning(f"Unparsable token expiry: {expires_at}")
        return time.time() + 3600

    async def get_installation_token(self, installation_id: int) -> str:
        """Return a cached or freshly minted installation access token.

        Args:
            installation_id: GitHub App installation ID

        Returns:
            Installation access token
        """
        cached = self._installation_tokens.get(installation_id)
        if cached and time.time() < cached[1] - self.TOKEN_REFRESH_MARGIN:
            return cached[0]

        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.GITHUB_API_BASE}/app/installations/{installation_id}/access_tokens",
                headers=self._headers(self._create_app_jwt()),
            )
            response.raise_for_status()
            data = response.json()

        expires = self._parse_expiry(data.get("expires_at"))
        self._installation_tokens[installation_id] = (data["token"], expires)
        logger.info(f"Minted installation token for installation {installation_id}")
        return data["token"]

    @staticmethod
    def _headers(token: str, accept: str = JSON_MEDIA_TYPE) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Accept": accept}

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Check an ``X-Hub-Signature-256`` header against the raw body.

        Args:
            payload: Raw request body
            signature: Header value, ``sha256=<hex digest>``

        Returns:
            True if the signature matches the configured webhook secret
        """
        if not signature or not signature.startswith("sha256="):
            return False
        digest = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(f"sha256={digest}", signature)

    # =========================================================================
    # Request helpers
    # =========================================================================

    def _repo_url(self, owner: str, repo: str, path: str) -> str:
        return f"{self.GITHUB_API_BASE}/repos/{owner}/{repo}/{path}"

    async def _get(
        self,
        installation_id: int,
        url: str,
        params: dict[str, Any] | None = None,
        accept: str = JSON_MEDIA_TYPE,
    ) -> httpx.Response:
        token = await self.get_installation_token(installation_id)
        async with httpx.AsyncClient() as client:
            response = await client.get(url, params=params, headers=self._headers(token, accept))
            response.raise_for_status()
            return response

    async def _post(self, installation_id: int, url: str, payload: dict[str, Any]) -> dict:
        token = await self.get_installation_token(installation_id)
        async with httpx.AsyncClient() as client:
            response = await client.post(url, json=payload, headers=self._headers(token))
            response.raise_for_status()
            return response.json()

    # =========================================================================
    # Pull request data
    # =========================================================================

    async def get_pr(self, installation_id: int, owner: str, repo: str, pr_number: int) -> dict[str, Any]:
        """Fetch pull request metadata (title, body, head/base refs, author)."""
        response = await self._get(installation_id, self._repo_url(owner, repo, f"pulls/{pr_number}"))
        return response.json()

    async def get_pr_files(
        self,
        installation_id: int,
        owner: str,
        repo: str,
        pr_number: int,
    ) -> list[dict[str, Any]]:
        """List every changed file of a PR.

        Args:
            installation_id: GitHub App installation ID
            owner: Repository owner
            repo: Repository name
            pr_number: PR number

        Returns:
            File entries in GitHub order (filename, status, additions, patch, ...)
        """
        token = await self.get_installation_token(installation_id)
        url = self._repo_url(owner, repo, f"pulls/{pr_number}/files")

        files: list[dict[str, Any]] = []
        async with httpx.AsyncClient() as client:
            for page in range(1, self.MAX_FILE_PAGES + 1):
                response = await client.get(
                    url,
                    params={"per_page": self.PER_PAGE, "page": page},
                    headers=self._headers(token),
                )
                response.raise_for_status()
                batch = response.json()
                files.extend(batch)
                if len(batch) < self.PER_PAGE:
                    break
        return files

    async def get_file_content(
        self,
        installation_id: int,
        owner: str,
        repo: str,
        path: str,
        ref: str | None = None,
    ) -> str:
        """Fetch a file's raw text at ``ref`` (default branch when omitted)."""
        response = await self._get(
            installation_id,
            self._repo_url(owner, repo, f"contents/{path}"),
            params={"ref": ref} if ref else None,
            accept=RAW_MEDIA_TYPE,
        )
        return response.text

    # =========================================================================
    # Feedback
    # =========================================================================

    async def create_issue_comment(
        self,
        installation_id: int,
        owner: str,
        repo: str,
        pr_number: int,
        body: str,
    ) -> dict:
        return await self._post(
            installation_id,
            self._repo_url(owner, repo, f"issues/{pr_number}/comments"),
            {"body": body},
        )

    async def create_pr_review(
        self,
        installation_id: int,
        owner: str,
        repo: str,
        pr_number: int,
        body: str,
        event: str = "COMMENT",
        comments: list[dict[str, Any]] | None = None,
        commit_id: str | None = None,
    ) -> dict:
        """Submit a review with optional inline comments.

        Args:
            installation_id: GitHub App installation ID
            owner: Repository owner
            repo: Repository name
            pr_number: PR number
            body: Review summary (markdown)
            event: COMMENT or REQUEST_CHANGES
            comments: Inline comments as ``{"path", "line", "body"}`` dicts
            commit_id: Head commit the inline comments refer to

        Returns:
            Created review
        """
        payload: dict[str, Any] = {"body": body, "event": event}
        if comments:
            payload["comments"] = comments
        if commit_id:
            payload["commit_id"] = commit_id
        return await self._post(
            installation_id, self._repo_url(owner, repo, f"pulls/{pr_number}/reviews"), payload
        )

    async def create_review_comment(
        self,
        installation_id: int,
        owner: str,
        repo: str,
        pr_number: int,
        commit_id: str,
        path: str,
        line: int,
        body: str,
    ) -> dict:
        """Post one inline comment on the new side of the diff."""
        return await self._post(
            installation_id,
            self._repo_url(owner, repo, f"pulls/{pr_number}/comments"),
            {"body": body, "commit_id": commit_id, "path": path, "line": line, "side": "RIGHT"},
        )

    async def create_check_run(
        self,
        installation_id: int,
        owner: str,
        repo: str,
        head_sha: str,
        conclusion: str,
        title: str,
        summary: str,
        name: str = "Compliance Copilot",
    ) -> dict:
        """Record a completed check run (success, neutral or failure) on ``head_sha``."""
        return await self._post(
            installation_id,
            self._repo_url(owner, repo, "check-runs"),
            {
                "name": name,
                "head_sha": head_sha,
                "status": "completed",
                "conclusion": conclusion,
                "output": {"title": title, "summary": summary},
            },
        )
