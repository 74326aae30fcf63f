"""Persistence for analysis runs and custom rules."""

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from compliance_copilot.analyzers.parsing import MAX_FILE_PATH, MAX_RULE_ID, MAX_RULE_NAME, clip
from compliance_copilot.analyzers.rules import Rule, rule_from_dict
from compliance_copilot.models.analysis_record import AnalysisRecord
from compliance_copilot.models.custom_rule import CustomRuleRecord
from compliance_copilot.models.finding_record import FindingRecord
from compliance_copilot.services.analysis_service import AnalysisRun

logger = logging.getLogger(__name__)


class AnalysisRecordService:
    """Stores terminal analysis runs and serves them back to the API."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, run: AnalysisRun) -> bool:
        """Write the run and all its findings in one transaction.

        Args:
            run: Completed or failed analysis run

        Returns:
            True on success, False if the transaction was rolled back
        """
        if not run.is_terminal:
            raise ValueError(f"Analysis run {run.id} is still {run.status.value}")

        stats = run.stats
        record = AnalysisRecord(
            id=uuid.UUID(run.id),
            owner=run.target.owner,
            repo=run.target.repo,
            pr_number=run.target.pr_number,
            status=run.status.value,
            total_files=stats.total_files,
            total_findings=stats.total_findings,
            critical_count=stats.critical,
            high_count=stats.high,
            medium_count=stats.medium,
            low_count=stats.low,
            info_count=stats.info,
            stage_errors=dict(run.stage_errors),
            started_at=run.started_at,
            duration_ms=run.duration_ms,
        )
        record.findings = [
            FindingRecord(
                id=uuid.UUID(finding.id),
                position=position,
                type=finding.type.value,
                severity=finding.severity.value,
                rule_id=clip(finding.rule_id, MAX_RULE_ID),
                rule_name=clip(finding.rule_name, MAX_RULE_NAME),
                message=finding.message,
                file=clip(finding.file, MAX_FILE_PATH),
                line=finding.line,
                column=finding.column,
                code=finding.code,
                fix_suggestion=finding.fix_suggestion,
            )
            for position, finding in enumerate(run.findings)
        ]

        try:
            self.db.add(record)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to save analysis {run.id}: {e}")
            return False

        logger.info(f"Saved analysis {run.id} with {len(run.findings)} findings")
        return True

    async def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        try:
            key = uuid.UUID(analysis_id)
        except ValueError:
            return None
        result = await self.db.execute(
            select(AnalysisRecord)
            .options(selectinload(AnalysisRecord.findings))
            .where(AnalysisRecord.id == key)
        )
        return result.scalar_one_or_none()

    async def list_recent(self, limit: int = 20, repo: Optional[str] = None) -> list[AnalysisRecord]:
        """Most recent runs first, optionally filtered by ``owner/repo``."""
        query = select(AnalysisRecord).order_by(AnalysisRecord.started_at.desc()).limit(limit)
        if repo:
            owner, _, name = repo.partition("/")
            query = query.where(AnalysisRecord.owner == owner)
            if name:
                query = query.where(AnalysisRecord.repo == name)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def summary_stats(self) -> dict[str, Any]:
        result = await self.db.execute(
            select(
                func.count(AnalysisRecord.id),
                func.sum(case((AnalysisRecord.status == "completed", 1), else_=0)),
                func.sum(case((AnalysisRecord.status == "failed", 1), else_=0)),
                func.sum(AnalysisRecord.total_findings),
                func.sum(AnalysisRecord.critical_count),
                func.sum(AnalysisRecord.high_count),
                func.sum(AnalysisRecord.medium_count),
                func.sum(AnalysisRecord.low_count),
                func.sum(AnalysisRecord.info_count),
                func.avg(AnalysisRecord.duration_ms),
            )
        )
        row = result.one()
        total, completed, failed, findings, critical, high, medium, low, info, avg_ms = row
        return {
            "total_analyses": total or 0,
            "completed": completed or 0,
            "failed": failed or 0,
            "total_findings": findings or 0,
            "critical": critical or 0,
            "high": high or 0,
            "medium": medium or 0,
            "low": low or 0,
            "info": info or 0,
            "avg_duration_ms": round(float(avg_ms or 0)),
        }

    # =========================================================================
    # Custom Rules
    # =========================================================================

    async def list_custom_rule_records(self) -> list[CustomRuleRecord]:
        result = await self.db.execute(select(CustomRuleRecord).order_by(CustomRuleRecord.created_at))
        return list(result.scalars().all())

    async def list_custom_rules(self) -> list[Rule]:
        """Stored custom rules as Rule objects. Invalid definitions are skipped."""
        rules = []
        for record in await self.list_custom_rule_records():
            try:
                rules.append(rule_from_dict(record.to_rule_dict()))
            except ValueError as e:
                logger.warning(f"Skipping invalid custom rule {record.id}: {e}")
        return rules

    async def save_custom_rule(self, rule: Rule) -> CustomRuleRecord:
        """Insert or replace a custom rule."""
        data = rule.to_dict()
        record = await self.db.get(CustomRuleRecord, rule.id)
        if record is None:
            record = CustomRuleRecord(id=rule.id)
            self.db.add(record)
        for key in ("name", "description", "kind", "pattern", "severity", "category", "enabled", "fix_template"):
            setattr(record, key, data[key])
        await self.db.commit()
        await self.db.refresh(record)
        logger.info(f"Saved custom rule {rule.id}")
        return record

    async def delete_custom_rule(self, rule_id: str) -> bool:
        record = await self.db.get(CustomRuleRecord, rule_id)
        if record is None:
            return False
        await self.db.delete(record)
        await self.db.commit()
        logger.info(f"Deleted custom rule {rule_id}")
        return True
