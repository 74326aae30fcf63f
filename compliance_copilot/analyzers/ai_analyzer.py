"""AI-assisted analyzer backed by the language-model service."""

import dataclasses
import logging
from typing import Sequence

from compliance_copilot.analyzers.base import (
    AnalysisCapability,
    AnalysisContext,
    Category,
    ChangedFile,
    Finding,
    Severity,
)
from compliance_copilot.analyzers.parsing import extract_json_object, findings_from_document
from compliance_copilot.analyzers.rules import Rule
from compliance_copilot.config import get_settings
from compliance_copilot.services.llm_service import LLMService

logger = logging.getLogger(__name__)
settings = get_settings()

SYSTEM_PROMPT = """You are an expert security and compliance analyzer specializing in code review.
Your task is to identify security vulnerabilities, license compliance issues, code quality problems, and custom rule violations.

Focus on these categories:
1. SECURITY: SQL injection, XSS, hardcoded secrets, weak cryptography, command injection, authentication issues
2. LICENSE: GPL violations, missing license headers, incompatible licenses
3. QUALITY: Code complexity, code smells, maintainability issues, best practice violations
4. CUSTOM: Company-specific rules and policies

For each issue found, provide:
- Exact file path and line number
- Severity level (critical, high, medium, low, info)
- Clear description of the issue
- Actionable fix suggestion with code example if possible

Return ONLY valid JSON in this exact format:
{
  "findings": [
    {
      "file": "path/to/file.js",
      "line": 42,
      "type": "security",
      "severity": "high",
      "message": "SQL injection vulnerability detected",
      "code": "execute('SELECT * FROM users WHERE id = ' + userId)",
      "fixSuggestion": "Use parameterized query: execute('SELECT * FROM users WHERE id = ?', [userId])",
      "ruleName": "SQL Injection"
    }
  ]
}"""

ENHANCEMENT_SYSTEM_PROMPT = (
    "You are a code remediation expert. Provide specific, actionable fix "
    "suggestions for security and compliance issues."
)


class AIAssistedAnalyzer(AnalysisCapability):
    """Sends changed files to the LLM in fixed-size batches."""

    name = "ai"

    def __init__(
        self,
        llm_service: LLMService | None = None,
        batch_size: int | None = None,
        max_enhancements: int | None = None,
    ):
        self.llm_service = llm_service or LLMService()
        self.batch_size = batch_size or settings.ai_batch_size
        self.max_enhancements = max_enhancements or settings.ai_max_enhancements

    async def analyze(
        self,
        files: Sequence[ChangedFile],
        rules: Sequence[Rule],
        context: AnalysisContext,
    ) -> list[Finding]:
        files = [f for f in files if not f.is_removed and f.analyzable_text]
        logger.info(f"Starting AI analysis for {len(files)} files")

        custom_rules = [rule for rule in rules if rule.category == Category.CUSTOM]
        findings: list[Finding] = []
        for batch in self.batch_files(files, self.batch_size):
            try:
                findings.extend(await self.analyze_batch(batch, custom_rules))
            except Exception as e:
                logger.error(f"Error analyzing batch with LLM: {e}")

        logger.info(f"AI analysis complete: {len(findings)} new findings")
        return findings

    async def cleanup(self) -> None:
        usage = self.llm_service.usage
        logger.info(
            f"AI stage used {usage.input_tokens} input / {usage.output_tokens} output "
            f"tokens over {usage.requests} requests"
        )

    async def analyze_batch(
        self, files: Sequence[ChangedFile], custom_rules: Sequence[Rule]
    ) -> list[Finding]:
        response = await self.llm_service.generate(
            self.build_analysis_prompt(files, custom_rules),
            max_tokens=4096,
            temperature=0.1,
            system_prompt=SYSTEM_PROMPT,
            json_output=True,
        )
        if not response:
            logger.warning("Empty response from LLM")
            return []
        return findings_from_document(response, "ai", Category.QUALITY, "AI Analysis")

    def build_analysis_prompt(
        self, files: Sequence[ChangedFile], custom_rules: Sequence[Rule]
    ) -> str:
        parts = ["Analyze the following code changes for compliance issues:\n"]
        for file in files:
            content = (file.analyzable_text or "")[: settings.ai_max_file_chars]
            parts.append(f"\n## File: {file.filename}\n")
            parts.append(f"Status: {file.status.value}\n")
            parts.append(f"```\n{content}\n```\n")

        if custom_rules:
            parts.append("\n## Custom Rules to Check:\n")
            for rule in custom_rules:
                parts.append(f"- {rule.name}: {rule.description}\n")

        parts.append("\n\nProvide detailed analysis in JSON format.")
        return "".join(parts)

    def select_for_enhancement(self, findings: Sequence[Finding]) -> list[Finding]:
        """Critical/high findings without a fix, most severe first."""
        candidates = [
            f
            for f in findings
            if f.severity in (Severity.CRITICAL, Severity.HIGH) and not f.fix_suggestion
        ]
        candidates.sort(key=lambda f: f.severity.rank)
        return candidates[: self.max_enhancements]

    async def enhance(self, findings: Sequence[Finding]) -> list[Finding]:
        """Request fix text for the top critical/high findings lacking one.

        Returns copies of the findings that received a suggestion; makes no
        LLM call when nothing qualifies.
        """
        to_enhance = self.select_for_enhancement(findings)
        if not to_enhance:
            return []

        try:
            response = await self.llm_service.generate(
                self.build_enhancement_prompt(to_enhance),
                max_tokens=2048,
                temperature=0.2,
                system_prompt=ENHANCEMENT_SYSTEM_PROMPT,
                json_output=True,
            )
        except Exception as e:
            logger.error(f"Error enhancing findings with LLM: {e}")
            return []

        parsed = extract_json_object(response)
        if parsed is None or not isinstance(parsed.get("suggestions"), list):
            logger.warning(f"Unparsable enhancement response: {response[:200]!r}")
            return []

        by_id = {f.id: f for f in to_enhance}
        enriched = []
        for suggestion in parsed["suggestions"]:
            if not isinstance(suggestion, dict):
                continue
            finding = by_id.pop(str(suggestion.get("id")), None)
            fix = suggestion.get("fix")
            if finding is not None and fix:
                enriched.append(dataclasses.replace(finding, fix_suggestion=str(fix)))

        logger.info(f"Enhanced {len(enriched)} of {len(to_enhance)} findings")
        return enriched

    def build_enhancement_prompt(self, findings: Sequence[Finding]) -> str:
        lines = ["Provide fix suggestions for these compliance issues:\n"]
        for finding in findings:
            location = f"{finding.file}:{finding.line}" if finding.line else finding.file
            lines.append(f"- id: {finding.id}")
            lines.append(f"  {finding.rule_name} in {location}")
            lines.append(f"  Issue: {finding.message}")
            if finding.code:
                lines.append(f"  Code: {finding.code}")
            lines.append("")
        lines.append(
            'Return JSON: {"suggestions": [{"id": "finding-id", '
            '"fix": "specific fix description with code example"}]}'
        )
        return "\n".join(lines)

    @staticmethod
    def batch_files(files: Sequence[ChangedFile], batch_size: int) -> list[list[ChangedFile]]:
        return [list(files[i : i + batch_size]) for i in range(0, len(files), batch_size)]
