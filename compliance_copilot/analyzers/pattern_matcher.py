"""Rule evaluation over changed files."""

import logging
from typing import Iterable, Sequence

from compliance_copilot.analyzers.base import ChangedFile, FileStatus, Finding
from compliance_copilot.analyzers.rules import Rule
from compliance_copilot.exceptions import RuleEvaluationError

logger = logging.getLogger(__name__)


class PatternMatcher:
    """Evaluates a rule snapshot against changed files.

    A rule that fails to compile or apply is logged and skipped; it never
    stops the remaining rules or files.
    """

    def __init__(self, rules: Sequence[Rule]):
        self.rules = tuple(rules)

    def analyze_files(self, files: Iterable[ChangedFile]) -> list[Finding]:
        findings: list[Finding] = []
        count = 0
        for file in files:
            count += 1
            if file.is_removed or not file.analyzable_text:
                continue
            findings.extend(self.evaluate(file))

        logger.info(f"Pattern matcher found {len(findings)} issues across {count} files")
        return findings

    def analyze_file(self, filename: str, content: str) -> list[Finding]:
        return self.evaluate(
            ChangedFile(filename=filename, status=FileStatus.MODIFIED, content=content)
        )

    def evaluate(self, file: ChangedFile) -> list[Finding]:
        findings: list[Finding] = []
        for rule in self.rules:
            try:
                findings.extend(rule.evaluate(file))
            except RuleEvaluationError as e:
                logger.error(f"Error applying rule {e.rule_id} to {file.filename}: {e}")
        return findings
