"""Tests for analysis persistence."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from compliance_copilot.analyzers.base import Category, Finding, ReviewTarget, Severity
from compliance_copilot.analyzers.rules import PatternRule
from compliance_copilot.models.analysis_record import AnalysisRecord
from compliance_copilot.models.custom_rule import CustomRuleRecord
from compliance_copilot.services.analysis_record_service import AnalysisRecordService
from compliance_copilot.services.analysis_service import AnalysisRun
from compliance_copilot.services.finding_aggregator import FindingAggregator


@pytest.fixture
def db():
    session = MagicMock()
    session.add = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    return session


def completed_run():
    run = AnalysisRun(target=ReviewTarget(owner="acme", repo="shop", pr_number=42, installation_id=7))
    run.mark_running()
    findings = [
        Finding(
            type=Category.SECURITY,
            severity=severity,
            message=f"{severity.value} issue",
            file="app.py",
            line=index + 1,
            rule_id="rule",
            rule_name="Rule",
        )
        for index, severity in enumerate([Severity.LOW, Severity.CRITICAL])
    ]
    result = FindingAggregator().aggregate(findings, total_files=3)
    run.complete(result.findings, result.stats, 250)
    return run


class TestSaveRun:
    """Test writing runs."""

    @pytest.mark.asyncio
    async def test_save_preserves_finding_order(self, db):
        run = completed_run()

        assert await AnalysisRecordService(db).save(run) is True

        record = db.add.call_args.args[0]
        assert isinstance(record, AnalysisRecord)
        assert str(record.id) == run.id
        assert record.status == "completed"
        assert record.total_files == 3
        assert record.critical_count == 1
        assert [f.severity for f in record.findings] == ["critical", "low"]
        assert [f.position for f in record.findings] == [0, 1]
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self, db):
        db.commit.side_effect = RuntimeError("connection lost")

        assert await AnalysisRecordService(db).save(completed_run()) is False
        db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_running_run_rejected(self, db):
        run = AnalysisRun(target=ReviewTarget(owner="acme", repo="shop", pr_number=1))
        run.mark_running()

        with pytest.raises(ValueError):
            await AnalysisRecordService(db).save(run)
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_run_saved_with_error(self, db):
        run = AnalysisRun(target=ReviewTarget(owner="acme", repo="shop", pr_number=1))
        run.mark_running()
        run.fail("PR not found", 5)

        assert await AnalysisRecordService(db).save(run) is True
        record = db.add.call_args.args[0]
        assert record.status == "failed"
        assert record.findings == []
        assert "run" in record.stage_errors

    @pytest.mark.asyncio
    async def test_oversized_fields_clipped(self, db):
        run = AnalysisRun(target=ReviewTarget(owner="acme", repo="shop", pr_number=1))
        run.mark_running()
        finding = Finding(
            type=Category.CUSTOM,
            severity=Severity.LOW,
            message="m",
            file="a.py",
            rule_id="r" * 150,
            rule_name="n" * 300,
        )
        run.complete([finding], FindingAggregator().compute_stats([finding], 1), 1)

        assert await AnalysisRecordService(db).save(run) is True
        stored = db.add.call_args.args[0].findings[0]
        assert len(stored.rule_id) == 100
        assert len(stored.rule_name) == 255


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_with_invalid_id(self, db):
        assert await AnalysisRecordService(db).get("not-a-uuid") is None
        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_summary_stats_handles_empty_table(self, db):
        result = MagicMock()
        result.one.return_value = (0, None, None, None, None, None, None, None, None, None)
        db.execute.return_value = result

        stats = await AnalysisRecordService(db).summary_stats()

        assert stats["total_analyses"] == 0
        assert stats["critical"] == 0
        assert stats["avg_duration_ms"] == 0


class TestCustomRules:
    """Test custom rule storage."""

    @pytest.mark.asyncio
    async def test_invalid_definitions_skipped(self, db):
        records = [
            CustomRuleRecord(
                id="no-todo", name="No TODO", description="", kind="pattern",
                pattern=r"TODO", severity="low", category="custom", enabled=True,
            ),
            CustomRuleRecord(
                id="broken", name="Broken", description="", kind="pattern",
                pattern=None, severity="low", category="custom", enabled=True,
            ),
        ]
        service = AnalysisRecordService(db)

        with patch.object(service, "list_custom_rule_records", AsyncMock(return_value=records)):
            rules = await service.list_custom_rules()

        assert [rule.id for rule in rules] == ["no-todo"]

    @pytest.mark.asyncio
    async def test_save_inserts_new_rule(self, db):
        rule = PatternRule(
            id="no-todo",
            name="No TODO",
            description="TODO markers",
            severity=Severity.LOW,
            category=Category.CUSTOM,
            pattern=r"TODO",
        )

        record = await AnalysisRecordService(db).save_custom_rule(rule)

        db.add.assert_called_once_with(record)
        assert record.pattern == "TODO"
        assert record.severity == "low"
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_missing_rule(self, db):
        assert await AnalysisRecordService(db).delete_custom_rule("missing") is False
        db.delete.assert_not_awaited()
