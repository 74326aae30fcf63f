"""Mention-command parsing and dispatch for review comments."""

import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

from compliance_copilot.analyzers.base import ReviewTarget
from compliance_copilot.config import get_settings
from compliance_copilot.services.analysis_service import AnalysisRun, RunStatus

logger = logging.getLogger(__name__)
settings = get_settings()

AVAILABLE_COMMANDS = ("scan", "fix", "ignore")

RunAnalysis = Callable[[ReviewTarget], Awaitable[AnalysisRun]]


@dataclass(frozen=True)
class Command:
    name: str
    args: tuple[str, ...] = ()


@dataclass
class CommandResult:
    """Outcome of a dispatched command.

    ``reply`` is the text to post back on the review request; ``run`` is set
    when the command re-ran the analysis pipeline.
    """

    command: Command
    reply: Optional[str] = None
    run: Optional[AnalysisRun] = field(default=None, repr=False)


class CommandDispatcher:
    """Maps ``@compliance-bot <command> [args...]`` comments onto actions."""

    def __init__(self, run_analysis: RunAnalysis, aliases: Optional[Sequence[str]] = None):
        self.run_analysis = run_analysis
        self.aliases = tuple(aliases if aliases is not None else settings.mention_aliases)
        self._patterns = [
            re.compile(rf"{re.escape(alias)}\s+(\w+)(?:\s+(.*))?") for alias in self.aliases
        ]

    def parse(self, body: str) -> Optional[Command]:
        """Extract the first aliased command from ``body``.

        Aliases are case-sensitive; the command token is lower-cased. Returns
        None when no alias is followed by a command.
        """
        if not body:
            return None
        for alias, pattern in zip(self.aliases, self._patterns):
            if alias not in body:
                continue
            match = pattern.search(body)
            if match:
                args = tuple((match.group(2) or "").split())
                return Command(name=match.group(1).lower(), args=args)
        return None

    async def dispatch(self, command: Command, target: ReviewTarget) -> CommandResult:
        logger.info(f"Handling command {command.name} with args {list(command.args)} for {target}")

        if command.name == "scan":
            run = await self.run_analysis(target)
            return CommandResult(command, self._scan_reply(run), run)

        if command.name == "fix":
            return CommandResult(command, ":wrench: Automated fix generation is in progress...")

        if command.name == "ignore":
            if not command.args:
                return CommandResult(
                    command,
                    "Usage: `@compliance-bot ignore <rule-id> [<rule-id> ...]`",
                )
            return CommandResult(
                command, f":white_check_mark: Ignoring rules: {', '.join(command.args)}"
            )

        available = ", ".join(AVAILABLE_COMMANDS)
        return CommandResult(
            command, f"Unknown command: `{command.name}`. Available commands: {available}"
        )

    async def handle_comment(self, body: str, target: ReviewTarget) -> Optional[CommandResult]:
        command = self.parse(body)
        if command is None:
            return None
        return await self.dispatch(command, target)

    @staticmethod
    def _scan_reply(run: AnalysisRun) -> str:
        if run.status == RunStatus.FAILED:
            return ":x: Re-scan failed. Check the service logs for details."
        stats = run.stats
        return (
            f":mag: Re-scan complete: {stats.total_findings} findings "
            f"({stats.critical} critical, {stats.high} high)."
        )
