"""Analysis pipeline orchestration.

A run moves through an explicit state machine:

    init -> rules_applied -> sandbox_applied -> ai_applied -> deduplicated -> completed

Any state may fall to ``failed``. Stage errors are contained at the stage
boundary (the stage contributes zero findings) and only a failure to resolve
the review request fails the whole run.
"""

import asyncio
import dataclasses
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence

from compliance_copilot.analyzers.base import (
    AnalysisCapability,
    AnalysisContext,
    ChangedFile,
    Finding,
    PullRequestContext,
    ReviewTarget,
)
from compliance_copilot.analyzers.pattern_matcher import PatternMatcher
from compliance_copilot.analyzers.rule_catalog import RuleCatalog
from compliance_copilot.analyzers.rules import Rule
from compliance_copilot.config import get_settings
from compliance_copilot.exceptions import (
    FatalRunError,
    InvalidTransitionError,
    RunFinalizedError,
    StageFailure,
)
from compliance_copilot.services.finding_aggregator import FindingAggregator, Stats

logger = logging.getLogger(__name__)
settings = get_settings()

CapabilityFactory = Callable[[], AnalysisCapability]


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class PipelineState(str, Enum):
    INIT = "init"
    RULES_APPLIED = "rules_applied"
    SANDBOX_APPLIED = "sandbox_applied"
    AI_APPLIED = "ai_applied"
    DEDUPLICATED = "deduplicated"
    COMPLETED = "completed"
    FAILED = "failed"


TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.INIT: frozenset({PipelineState.RULES_APPLIED, PipelineState.FAILED}),
    PipelineState.RULES_APPLIED: frozenset({PipelineState.SANDBOX_APPLIED, PipelineState.FAILED}),
    PipelineState.SANDBOX_APPLIED: frozenset({PipelineState.AI_APPLIED, PipelineState.FAILED}),
    PipelineState.AI_APPLIED: frozenset({PipelineState.DEDUPLICATED, PipelineState.FAILED}),
    PipelineState.DEDUPLICATED: frozenset({PipelineState.COMPLETED, PipelineState.FAILED}),
    PipelineState.COMPLETED: frozenset(),
    PipelineState.FAILED: frozenset(),
}


class PipelineStateMachine:
    """Tracks the pipeline state and rejects illegal transitions."""

    def __init__(self) -> None:
        self.state = PipelineState.INIT
        self.history: list[PipelineState] = [PipelineState.INIT]

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def can_advance(self, target: PipelineState) -> bool:
        return target in TRANSITIONS[self.state]

    def advance(self, target: PipelineState) -> PipelineState:
        if not self.can_advance(target):
            raise InvalidTransitionError(f"Cannot move from {self.state.value} to {target.value}")
        self.state = target
        self.history.append(target)
        return target

    def fail(self) -> PipelineState:
        return self.advance(PipelineState.FAILED)


class SourceCollaborator(Protocol):
    async def fetch(self, target: ReviewTarget) -> tuple[PullRequestContext, list[ChangedFile]]:
        ...


@dataclass
class AnalysisRun:
    """Record of one pipeline execution. Read-only once completed or failed."""

    target: ReviewTarget
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RunStatus = RunStatus.PENDING
    findings: tuple[Finding, ...] = ()
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int = 0
    stats: Stats = field(default_factory=Stats)
    stage_errors: Mapping[str, str] = field(default_factory=dict)
    total_files: int = 0
    pull_request: Optional[PullRequestContext] = None

    def __setattr__(self, name: str, value: Any) -> None:
        status = self.__dict__.get("status")
        if status is not None and status.is_terminal:
            raise RunFinalizedError(f"Analysis run {self.id} is {status.value} and cannot change")
        super().__setattr__(name, value)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def mark_running(self) -> None:
        if self.status != RunStatus.PENDING:
            raise RunFinalizedError(f"Analysis run {self.id} already started")
        self.status = RunStatus.RUNNING

    def record_stage_error(self, stage: str, message: str) -> None:
        if self.is_terminal:
            raise RunFinalizedError(f"Analysis run {self.id} is {self.status.value} and cannot change")
        self.stage_errors[stage] = message  # type: ignore[index]

    def complete(self, findings: Iterable[Finding], stats: Stats, duration_ms: int) -> None:
        self._finalize(RunStatus.COMPLETED, tuple(findings), stats, duration_ms)

    def fail(self, message: str, duration_ms: int) -> None:
        self.record_stage_error("run", message)
        self._finalize(RunStatus.FAILED, (), Stats(total_files=self.total_files), duration_ms)

    def _finalize(
        self,
        status: RunStatus,
        findings: tuple[Finding, ...],
        stats: Stats,
        duration_ms: int,
    ) -> None:
        self.findings = findings
        self.stats = stats
        self.duration_ms = duration_ms
        self.stage_errors = MappingProxyType(dict(self.stage_errors))
        # Status last: it locks the record.
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.target.owner,
            "repo": self.target.repo,
            "pr_number": self.target.pr_number,
            "status": self.status.value,
            "findings": [finding.to_dict() for finding in self.findings],
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "stats": self.stats.to_dict(),
            "stage_errors": dict(self.stage_errors),
        }


def merge_enrichment(findings: Sequence[Finding], enrichment: Iterable[Finding]) -> list[Finding]:
    """Copy fix text from ``enrichment`` onto findings with the same id.

    Never adds, removes or reorders findings.
    """
    fixes = {item.id: item.fix_suggestion for item in enrichment if item.fix_suggestion}
    if not fixes:
        return list(findings)
    return [
        dataclasses.replace(finding, fix_suggestion=fixes[finding.id])
        if finding.id in fixes
        else finding
        for finding in findings
    ]


class AnalysisOrchestrator:
    """Runs the pattern, sandbox and AI stages in order for one review target."""

    def __init__(
        self,
        source: SourceCollaborator,
        catalog: RuleCatalog,
        sandbox_factory: Optional[CapabilityFactory] = None,
        ai_factory: Optional[CapabilityFactory] = None,
        aggregator: Optional[FindingAggregator] = None,
        stage_timeout: Optional[float] = None,
    ):
        self.source = source
        self.catalog = catalog
        self.sandbox_factory = sandbox_factory
        self.ai_factory = ai_factory
        self.aggregator = aggregator or FindingAggregator()
        self.stage_timeout = stage_timeout or settings.stage_timeout_seconds

    async def run(self, target: ReviewTarget, custom_rules: Iterable[Rule] = ()) -> AnalysisRun:
        """Analyze ``target`` and return a terminal AnalysisRun.

        Never raises for pipeline problems: an unresolvable target produces a
        failed run with zero findings.
        """
        rules = self.catalog.with_rules(custom_rules)
        run = AnalysisRun(target=target)
        machine = PipelineStateMachine()
        started = time.monotonic()
        run.mark_running()
        logger.info(f"Starting analysis {run.id} for {target} with {len(rules)} rules")

        try:
            pull_request, files = await self._resolve(target)
        except FatalRunError as e:
            logger.error(f"Analysis {run.id} failed: {e}")
            machine.fail()
            run.fail(str(e), self._elapsed_ms(started))
            return run

        run.pull_request = pull_request
        run.total_files = len(files)

        try:
            findings = await self._pattern_stage(files, rules, run)
            machine.advance(PipelineState.RULES_APPLIED)

            findings = await self._capability_stage(
                "sandbox", self.sandbox_factory, files, rules, pull_request, findings, run
            )
            machine.advance(PipelineState.SANDBOX_APPLIED)

            findings = await self._capability_stage(
                "ai", self.ai_factory, files, rules, pull_request, findings, run
            )
            machine.advance(PipelineState.AI_APPLIED)

            result = self.aggregator.aggregate(findings, total_files=len(files))
            machine.advance(PipelineState.DEDUPLICATED)
        except Exception as e:
            logger.exception(f"Analysis {run.id} aborted in state {machine.state.value}: {e}")
            machine.fail()
            run.fail(str(e), self._elapsed_ms(started))
            return run

        machine.advance(PipelineState.COMPLETED)
        run.complete(result.findings, result.stats, self._elapsed_ms(started))
        logger.info(
            f"Analysis {run.id} completed: {result.stats.total_findings} findings "
            f"in {run.duration_ms}ms"
        )
        return run

    async def _resolve(self, target: ReviewTarget) -> tuple[PullRequestContext, list[ChangedFile]]:
        try:
            pull_request, files = await asyncio.wait_for(
                self.source.fetch(target), timeout=self.stage_timeout
            )
        except asyncio.TimeoutError as e:
            raise FatalRunError(f"Timed out resolving {target}") from e
        except Exception as e:
            raise FatalRunError(f"Could not resolve {target}: {e}") from e
        return pull_request, list(files)

    async def _pattern_stage(
        self,
        files: Sequence[ChangedFile],
        rules: Sequence[Rule],
        run: AnalysisRun,
    ) -> list[Finding]:
        try:
            return await asyncio.to_thread(PatternMatcher(rules).analyze_files, files)
        except Exception as e:
            self._record_failure(run, StageFailure("rules", str(e)))
            return []

    async def _capability_stage(
        self,
        stage: str,
        factory: Optional[CapabilityFactory],
        files: Sequence[ChangedFile],
        rules: Sequence[Rule],
        pull_request: PullRequestContext,
        accumulated: list[Finding],
        run: AnalysisRun,
    ) -> list[Finding]:
        """Run one capability and append its findings to ``accumulated``.

        Returns the new accumulated list; on failure it is returned unchanged.
        """
        if factory is None:
            logger.info(f"No {stage} capability configured, skipping stage")
            return accumulated

        context = AnalysisContext(pull_request=pull_request, prior_findings=tuple(accumulated))
        try:
            async with factory() as capability:
                found = await asyncio.wait_for(
                    capability.analyze(files, rules, context), timeout=self.stage_timeout
                )
                if not isinstance(found, list):
                    raise StageFailure(stage, f"expected a list of findings, got {type(found).__name__}")
                stray = next((item for item in found if not isinstance(item, Finding)), None)
                if stray is not None:
                    raise StageFailure(stage, f"expected Finding items, got {type(stray).__name__}")
                accumulated = [*accumulated, *found]
                logger.info(f"Stage {stage} contributed {len(found)} findings")

                try:
                    enrichment = await asyncio.wait_for(
                        capability.enhance(accumulated), timeout=self.stage_timeout
                    )
                    enrichment = [item for item in enrichment if isinstance(item, Finding)]
                except asyncio.TimeoutError:
                    logger.error(f"Stage {stage} enhancement timed out after {self.stage_timeout}s")
                    enrichment = []
                except Exception as e:
                    logger.error(f"Stage {stage} enhancement failed: {e}")
                    enrichment = []
        except asyncio.TimeoutError:
            self._record_failure(run, StageFailure(stage, f"timed out after {self.stage_timeout}s"))
            return list(context.prior_findings)
        except StageFailure as e:
            self._record_failure(run, e)
            return list(context.prior_findings)
        except Exception as e:
            self._record_failure(run, StageFailure(stage, str(e)))
            return list(context.prior_findings)

        return merge_enrichment(accumulated, enrichment)

    @staticmethod
    def _record_failure(run: AnalysisRun, failure: StageFailure) -> None:
        logger.error(f"Analysis {run.id}: {failure}")
        run.record_stage_error(failure.stage, str(failure))

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
