"""Tests for the isolated-execution analyzer."""

import asyncio
import os

import pytest
from unittest.mock import AsyncMock, patch

from compliance_copilot.analyzers.base import AnalysisContext, ChangedFile, FileStatus, Severity
from compliance_copilot.analyzers.sandbox_analyzer import SandboxAnalyzer
from compliance_copilot.analyzers.sandbox_scanner import scan_content
from compliance_copilot.exceptions import StageFailure


class TestSandboxScanner:
    """Test the in-sandbox secret scanner."""

    def test_scan_content_positions(self):
        issues = scan_content("cfg.js", 'x = 1\nconst apiKey = "abcdefghijklmnopqrstuvwx";\n')

        assert len(issues) == 1
        assert issues[0]["line"] == 2
        assert issues[0]["column"] == 6
        assert issues[0]["message"] == "Hardcoded secret detected: api_key"

    def test_scan_content_clean(self):
        assert scan_content("a.py", "print('hello')\n") == []


class TestSandboxAnalyzer:
    """Test workspace lifecycle and scanning."""

    @pytest.fixture
    def analyzer(self, tmp_path):
        return SandboxAnalyzer(root=str(tmp_path), scan_timeout=30, semgrep_enabled=False)

    @pytest.mark.asyncio
    async def test_scans_materialized_files(self, analyzer, secrets_file, pr_context):
        """Secrets are found by the scanner subprocess."""
        async with analyzer:
            findings = await analyzer.analyze([secrets_file], [], AnalysisContext(pr_context))

        messages = sorted(f.message for f in findings)
        assert messages == [
            "Hardcoded secret detected: api_key",
            "Hardcoded secret detected: aws_key",
            "Hardcoded secret detected: password",
        ]
        assert all(f.severity == Severity.CRITICAL for f in findings)
        assert all(f.file == "src/config.js" for f in findings)
        assert {f.rule_id for f in findings} == {"sandbox-security"}

    @pytest.mark.asyncio
    async def test_workspace_removed_on_exit(self, analyzer, secrets_file, pr_context):
        async with analyzer:
            workspace = analyzer.workspace
            await analyzer.analyze([secrets_file], [], AnalysisContext(pr_context))
            assert os.path.isdir(workspace)

        assert not os.path.exists(workspace)
        assert analyzer.workspace is None

    @pytest.mark.asyncio
    async def test_workspace_removed_when_analyze_raises(self, analyzer, pr_context):
        with patch.object(analyzer, "_run_secret_scan", AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(RuntimeError):
                async with analyzer:
                    workspace = analyzer.workspace
                    await analyzer.analyze(
                        [ChangedFile(filename="a.py", content="x = 1")], [], AnalysisContext(pr_context)
                    )

        assert not os.path.exists(workspace)

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, analyzer):
        await analyzer.initialize()
        await analyzer.cleanup()
        await analyzer.cleanup()

        assert analyzer.workspace is None

    @pytest.mark.asyncio
    async def test_unsafe_paths_not_written(self, analyzer, tmp_path, pr_context):
        files = [
            ChangedFile(filename="../escape.js", content='apiKey = "abcdefghijklmnopqrstuvwx"'),
            ChangedFile(filename="/etc/passwd.js", content="x"),
        ]
        async with analyzer:
            findings = await analyzer.analyze(files, [], AnalysisContext(pr_context))

        assert findings == []
        assert not (tmp_path.parent / "escape.js").exists()

    @pytest.mark.asyncio
    async def test_removed_files_not_written(self, analyzer, secrets_file, pr_context):
        secrets_file.status = FileStatus.REMOVED
        async with analyzer:
            findings = await analyzer.analyze([secrets_file], [], AnalysisContext(pr_context))

        assert findings == []

    @pytest.mark.asyncio
    async def test_malformed_scanner_output(self, analyzer, secrets_file, pr_context):
        """Garbage on stdout yields no findings instead of an error."""
        with patch.object(analyzer, "_run_process", AsyncMock(return_value="Traceback: nope")):
            async with analyzer:
                findings = await analyzer.analyze([secrets_file], [], AnalysisContext(pr_context))

        assert findings == []

    @pytest.mark.asyncio
    async def test_scan_timeout_yields_nothing(self, analyzer, secrets_file, pr_context):
        with patch.object(analyzer, "_run_process", AsyncMock(return_value=None)):
            async with analyzer:
                findings = await analyzer.analyze([secrets_file], [], AnalysisContext(pr_context))

        assert findings == []

    @pytest.mark.asyncio
    async def test_cancelled_scan_kills_child(self, analyzer, secrets_file, pr_context, tmp_path):
        """A stage timeout while the scanner runs leaves no child process behind."""
        sleeper = tmp_path / "slow_scanner.py"
        sleeper.write_text("import time\ntime.sleep(30)\n")
        analyzer.SCANNER_SCRIPT = sleeper
        analyzer.scan_timeout = 60

        spawned = []
        real_exec = asyncio.create_subprocess_exec

        async def recording_exec(*args, **kwargs):
            process = await real_exec(*args, **kwargs)
            spawned.append(process)
            return process

        with patch(
            "compliance_copilot.analyzers.sandbox_analyzer.asyncio.create_subprocess_exec",
            recording_exec,
        ):
            with pytest.raises(asyncio.TimeoutError):
                async with analyzer:
                    await asyncio.wait_for(
                        analyzer.analyze([secrets_file], [], AnalysisContext(pr_context)),
                        timeout=0.5,
                    )

        assert len(spawned) == 1
        assert spawned[0].returncode is not None

    @pytest.mark.asyncio
    async def test_unwritable_file_skipped(self, analyzer, secrets_file, pr_context):
        """A path colliding with a written file does not abort the stage."""
        files = [
            ChangedFile(filename="lib", content="plain"),
            ChangedFile(filename="lib/nested.js", content="x"),
            ChangedFile(filename="", content="x"),
            secrets_file,
        ]
        async with analyzer:
            findings = await analyzer.analyze(files, [], AnalysisContext(pr_context))

        assert {f.file for f in findings} == {"src/config.js"}

    def test_materialize_requires_workspace(self, analyzer, secrets_file):
        with pytest.raises(StageFailure):
            analyzer._materialize([secrets_file])


class TestSemgrepOutput:
    """Test semgrep JSON mapping."""

    def test_parse_results(self, tmp_path):
        analyzer = SandboxAnalyzer(root=str(tmp_path), semgrep_enabled=False)
        output = """{"results": [
            {"check_id": "python.lang.security.eval", "path": "./app/x.py",
             "start": {"line": 3, "col": 5},
             "extra": {"severity": "ERROR", "message": "eval detected", "lines": "  eval(x)  "}},
            {"check_id": "no-path", "start": {"line": 1}},
            {"check_id": "warn", "path": "b.py", "start": {"line": "7"},
             "extra": {"severity": "WARNING"}}
        ]}"""

        findings = analyzer.parse_semgrep_output(output)

        assert len(findings) == 2
        assert findings[0].file == "app/x.py"
        assert findings[0].severity == Severity.HIGH
        assert findings[0].column == 4
        assert findings[0].code == "eval(x)"
        assert findings[0].rule_name == "python.lang.security.eval"
        assert findings[1].severity == Severity.MEDIUM
        assert findings[1].line is None

    def test_parse_garbage(self, tmp_path):
        analyzer = SandboxAnalyzer(root=str(tmp_path), semgrep_enabled=False)

        assert analyzer.parse_semgrep_output("semgrep crashed") == []

    def test_long_check_id_clipped(self, tmp_path):
        analyzer = SandboxAnalyzer(root=str(tmp_path), semgrep_enabled=False)
        output = '{"results": [{"check_id": "%s", "path": "a.py", "start": {"line": 1}}]}' % ("x." * 200)

        finding = analyzer.parse_semgrep_output(output)[0]

        assert len(finding.rule_name) <= 255
