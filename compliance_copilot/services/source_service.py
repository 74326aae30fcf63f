"""Pull request source: resolves a review target into metadata and files."""

import logging
from typing import Any, Optional

from compliance_copilot.analyzers.base import (
    ChangedFile,
    FileStatus,
    PullRequestContext,
    ReviewTarget,
)
from compliance_copilot.services.github_service import GitHubService

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".go", ".rs", ".c", ".cpp", ".h",
    ".rb", ".php", ".swift", ".kt", ".scala", ".sh", ".bash", ".yml", ".yaml", ".json",
    ".xml", ".html", ".css", ".scss", ".sass", ".less", ".sql", ".md", ".txt", ".env",
)

# Manifests without a text extension that dependency rules still need.
TEXT_FILENAMES = frozenset({"Gemfile"})


def is_text_file(filename: str) -> bool:
    return filename.endswith(TEXT_EXTENSIONS) or filename.rsplit("/", 1)[-1] in TEXT_FILENAMES


class GitHubPullRequestSource:
    """Fetches PR metadata and changed files through the GitHub App."""

    def __init__(self, github_service: Optional[GitHubService] = None):
        self.github_service = github_service or GitHubService()

    async def fetch(self, target: ReviewTarget) -> tuple[PullRequestContext, list[ChangedFile]]:
        """Resolve ``target``.

        Errors fetching the PR or its file list propagate; a failure fetching
        one file's content is logged and leaves that file's content empty.
        """
        pr_data = await self.github_service.get_pr(
            installation_id=target.installation_id,
            owner=target.owner,
            repo=target.repo,
            pr_number=target.pr_number,
        )
        context = self.build_context(target, pr_data)

        pr_files = await self.github_service.get_pr_files(
            installation_id=target.installation_id,
            owner=target.owner,
            repo=target.repo,
            pr_number=target.pr_number,
        )

        files = []
        for file_data in pr_files:
            changed = ChangedFile(
                filename=file_data["filename"],
                status=FileStatus.parse(file_data.get("status", "modified")),
                additions=file_data.get("additions", 0),
                deletions=file_data.get("deletions", 0),
                patch=file_data.get("patch"),
            )
            if not changed.is_removed and is_text_file(changed.filename):
                changed.content = await self._fetch_content(target, changed.filename, context.head_sha)
            files.append(changed)

        logger.info(f"Fetched {len(files)} changed files for {target}")
        return context, files

    async def _fetch_content(self, target: ReviewTarget, path: str, ref: str) -> Optional[str]:
        try:
            return await self.github_service.get_file_content(
                installation_id=target.installation_id,
                owner=target.owner,
                repo=target.repo,
                path=path,
                ref=ref or None,
            )
        except Exception as e:
            logger.warning(f"Could not fetch content for {path}: {e}")
            return None

    @staticmethod
    def build_context(target: ReviewTarget, pr_data: dict[str, Any]) -> PullRequestContext:
        head = pr_data.get("head") or {}
        base = pr_data.get("base") or {}
        return PullRequestContext(
            owner=target.owner,
            repo=target.repo,
            pr_number=target.pr_number,
            branch=head.get("ref", ""),
            base_branch=base.get("ref", ""),
            author=(pr_data.get("user") or {}).get("login", ""),
            title=pr_data.get("title") or "",
            description=pr_data.get("body") or "",
            head_sha=head.get("sha", ""),
        )
