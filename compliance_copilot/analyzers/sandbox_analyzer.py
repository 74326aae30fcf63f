"""Isolated-execution analyzer.

Materializes the changed files into a throwaway workspace and scans them from
a separate interpreter process (and semgrep, when installed). The workspace
is deleted on cleanup.
"""

import asyncio
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path, PurePosixPath
from typing import Optional, Sequence

from compliance_copilot.analyzers.base import (
    AnalysisCapability,
    AnalysisContext,
    Category,
    ChangedFile,
    Finding,
    Severity,
)
from compliance_copilot.analyzers.parsing import (
    MAX_FILE_PATH,
    MAX_RULE_NAME,
    clip,
    extract_json_object,
    findings_from_document,
)
from compliance_copilot.analyzers.rules import Rule
from compliance_copilot.config import get_settings
from compliance_copilot.exceptions import StageFailure

logger = logging.getLogger(__name__)
settings = get_settings()

SEMGREP_SEVERITIES = {
    "ERROR": Severity.HIGH,
    "WARNING": Severity.MEDIUM,
    "INFO": Severity.LOW,
}


class SandboxAnalyzer(AnalysisCapability):
    """Runs secret and static-analysis scans in a disposable workspace."""

    name = "sandbox"
    SCANNER_SCRIPT = Path(__file__).with_name("sandbox_scanner.py")

    def __init__(
        self,
        root: str | None = None,
        scan_timeout: float | None = None,
        semgrep_enabled: bool | None = None,
    ):
        self.root = os.path.realpath(root or settings.sandbox_root)
        self.scan_timeout = scan_timeout or settings.sandbox_scan_timeout_seconds
        self.semgrep_enabled = (
            settings.sandbox_semgrep_enabled if semgrep_enabled is None else semgrep_enabled
        )
        self.workspace: Optional[str] = None

    async def initialize(self) -> "SandboxAnalyzer":
        if self.workspace is None:
            os.makedirs(self.root, exist_ok=True)
            self.workspace = tempfile.mkdtemp(prefix="run-", dir=self.root)
            logger.info(f"Sandbox workspace created: {self.workspace}")
        return self

    async def analyze(
        self,
        files: Sequence[ChangedFile],
        rules: Sequence[Rule],
        context: AnalysisContext,
    ) -> list[Finding]:
        await self.initialize()
        logger.info(f"Starting sandbox analysis for PR #{context.pull_request.pr_number}")

        written = await asyncio.to_thread(self._materialize, files)
        if not written:
            logger.info("No file content to scan in sandbox")
            return []

        findings = await self._run_secret_scan()
        if self.semgrep_enabled and shutil.which("semgrep"):
            findings.extend(await self._run_semgrep())

        logger.info(f"Sandbox analysis complete: {len(findings)} findings")
        return findings

    async def cleanup(self) -> None:
        workspace, self.workspace = self.workspace, None
        if not workspace:
            return
        if not os.path.realpath(workspace).startswith(self.root + os.sep):
            logger.warning(f"Refusing to delete path outside sandbox root: {workspace}")
            return
        shutil.rmtree(workspace, ignore_errors=True)
        logger.info(f"Sandbox workspace cleaned up: {workspace}")

    def _materialize(self, files: Sequence[ChangedFile]) -> int:
        """Write file contents into the workspace. Returns the number written.

        A file that cannot be written is logged and skipped.
        """
        workspace = self.workspace
        if workspace is None:
            raise StageFailure(self.name, "sandbox workspace is not initialized")

        written = 0
        for file in files:
            if file.is_removed or file.content is None:
                continue
            relative = PurePosixPath(file.filename)
            if not relative.parts or relative.is_absolute() or ".." in relative.parts:
                logger.warning(f"Skipping unsafe path in sandbox: {file.filename!r}")
                continue
            target = os.path.join(workspace, *relative.parts)
            try:
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with open(target, "w", encoding="utf-8") as handle:
                    handle.write(file.content)
            except OSError as e:
                logger.warning(f"Could not write {file.filename} to sandbox: {e}")
                continue
            written += 1
        logger.info(f"Setup {written} files in sandbox workspace")
        return written

    async def _run_process(self, *cmd: str) -> Optional[str]:
        """Run a command in the workspace. Returns stdout, or None on timeout.

        The child is killed on every exit path, including cancellation of the
        awaiting task.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=self.workspace,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env={"PATH": os.environ.get("PATH", ""), "HOME": self.workspace or ""},
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.scan_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Sandbox command timed out after {self.scan_timeout}s: {cmd[0]}")
            return None
        finally:
            if process.returncode is None:
                await self._kill(process)

        if stderr:
            logger.debug(f"Sandbox stderr: {stderr.decode('utf-8', errors='replace')[:500]}")
        return stdout.decode("utf-8", errors="replace")

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        # Reap even if cancelled again.
        await asyncio.shield(process.wait())

    async def _run_secret_scan(self) -> list[Finding]:
        output = await self._run_process(
            sys.executable, "-I", str(self.SCANNER_SCRIPT), self.workspace or ""
        )
        if output is None:
            return []
        return findings_from_document(output, "sandbox", Category.SECURITY, "Sandbox Analysis")

    async def _run_semgrep(self) -> list[Finding]:
        output = await self._run_process("semgrep", "--json", "--config=auto", "--quiet", ".")
        if output is None:
            return []
        return self.parse_semgrep_output(output)

    def parse_semgrep_output(self, output: str) -> list[Finding]:
        parsed = extract_json_object(output)
        if parsed is None or not isinstance(parsed.get("results"), list):
            logger.warning("Unparsable semgrep output")
            return []

        findings = []
        for result in parsed["results"]:
            if not isinstance(result, dict) or not result.get("path"):
                continue
            extra = result.get("extra") or {}
            start = result.get("start") or {}
            column = start.get("col")
            findings.append(
                Finding(
                    type=Category.SECURITY,
                    severity=SEMGREP_SEVERITIES.get(str(extra.get("severity")).upper(), Severity.HIGH),
                    message=extra.get("message") or "Security issue detected",
                    file=clip(str(result["path"]).removeprefix("./"), MAX_FILE_PATH),
                    line=start.get("line") if isinstance(start.get("line"), int) else None,
                    column=column - 1 if isinstance(column, int) and column > 0 else None,
                    code=(extra.get("lines") or "").strip() or None,
                    rule_id="sandbox-semgrep",
                    rule_name=clip(result.get("check_id") or "Semgrep", MAX_RULE_NAME),
                )
            )
        return findings
