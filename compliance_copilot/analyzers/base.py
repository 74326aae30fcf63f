"""Core types shared by rules, analyzers and the orchestrator."""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Sequence

if TYPE_CHECKING:
    from compliance_copilot.analyzers.rules import Rule

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Finding severity levels, declared from most to least severe."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """0 for critical up to 4 for info."""
        return _SEVERITY_ORDER.index(self)

    def outranks(self, other: "Severity") -> bool:
        return self.rank < other.rank

    @classmethod
    def parse(cls, value: Any, default: "Severity | None" = None) -> "Severity":
        """Parse a loosely-typed severity, falling back to ``default``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if default is None:
                raise
            return default


_SEVERITY_ORDER = list(Severity)


class Category(str, Enum):
    """Finding categories (mirrors the rule category)."""

    SECURITY = "security"
    LICENSE = "license"
    QUALITY = "quality"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Any, default: "Category | None" = None) -> "Category":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if default is None:
                raise
            return default


class FileStatus(str, Enum):
    """Status of a file in a pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"

    @classmethod
    def parse(cls, value: str) -> "FileStatus":
        # GitHub also reports changed/copied/unchanged; treat them as edits.
        try:
            return cls(value)
        except ValueError:
            return cls.MODIFIED


@dataclass
class ChangedFile:
    """A file touched by the pull request."""

    filename: str
    status: FileStatus = FileStatus.MODIFIED
    additions: int = 0
    deletions: int = 0
    content: Optional[str] = None
    patch: Optional[str] = None

    @property
    def is_removed(self) -> bool:
        return self.status == FileStatus.REMOVED

    @property
    def analyzable_text(self) -> Optional[str]:
        """Full content when known, otherwise the diff patch."""
        if self.is_removed:
            return None
        return self.content or self.patch or None


@dataclass
class Finding:
    """One compliance issue tied to a file and a severity."""

    type: Category
    severity: Severity
    message: str
    file: str
    rule_id: str
    rule_name: str
    line: Optional[int] = None
    column: Optional[int] = None
    code: Optional[str] = None
    fix_suggestion: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def dedup_key(self) -> tuple[str, Optional[int], str, str]:
        return (self.file, self.line, self.type.value, self.message)

    @property
    def rule_ref(self) -> tuple[str, str]:
        return (self.rule_id, self.rule_name)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["severity"] = self.severity.value
        return data


@dataclass(frozen=True)
class ReviewTarget:
    """Identity of the review request being analyzed."""

    owner: str
    repo: str
    pr_number: int
    installation_id: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return f"{self.full_name}#{self.pr_number}"


@dataclass
class PullRequestContext:
    """Metadata about the pull request supplied by the source collaborator."""

    owner: str
    repo: str
    pr_number: int
    branch: str = ""
    base_branch: str = ""
    author: str = ""
    title: str = ""
    description: str = ""
    head_sha: str = ""


@dataclass
class AnalysisContext:
    """Context handed to analysis capabilities."""

    pull_request: PullRequestContext
    prior_findings: Sequence[Finding] = ()


class AnalysisCapability(ABC):
    """Base class for external analysis backends.

    Lifecycle is initialize -> analyze -> cleanup. Use it as an async context
    manager so cleanup runs on every exit path.
    """

    name: str = "base"

    async def initialize(self) -> "AnalysisCapability":
        return self

    @abstractmethod
    async def analyze(
        self,
        files: Sequence[ChangedFile],
        rules: Sequence["Rule"],
        context: AnalysisContext,
    ) -> list[Finding]:
        raise NotImplementedError

    async def enhance(self, findings: Sequence[Finding]) -> list[Finding]:
        """Return enriched copies of ``findings``. Default: no enrichment."""
        return []

    async def cleanup(self) -> None:
        return None

    async def __aenter__(self) -> "AnalysisCapability":
        return await self.initialize()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.cleanup()
        except Exception as e:
            logger.error(f"Cleanup of {self.name} capability failed: {e}")
