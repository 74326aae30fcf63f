"""Deduplication and severity statistics over the merged finding streams."""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from compliance_copilot.analyzers.base import Finding, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stats:
    """Per-severity finding counts for one analysis run."""

    total_files: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0

    @property
    def total_findings(self) -> int:
        return self.critical + self.high + self.medium + self.low + self.info

    def count(self, severity: Severity) -> int:
        return getattr(self, severity.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_files": self.total_files,
            "total_findings": self.total_findings,
            "critical": self.critical,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
            "info": self.info,
        }


@dataclass(frozen=True)
class AggregationResult:
    findings: tuple[Finding, ...]
    stats: Stats
    duplicates_dropped: int = 0


class FindingAggregator:
    """Merges finding streams, keeping the first occurrence of each dedup key."""

    def deduplicate(self, *streams: Iterable[Finding]) -> list[Finding]:
        """Union ``streams`` in arrival order, dropping later duplicates.

        Duplicates share (file, line, type, message); column is not part of
        the key, so two matches on one line collapse into one finding.
        """
        seen: set[tuple] = set()
        unique: list[Finding] = []
        for stream in streams:
            for finding in stream:
                key = finding.dedup_key
                if key in seen:
                    continue
                seen.add(key)
                unique.append(finding)
        return unique

    def compute_stats(self, findings: Sequence[Finding], total_files: int = 0) -> Stats:
        counts = {severity.value: 0 for severity in Severity}
        for finding in findings:
            counts[finding.severity.value] += 1
        return Stats(total_files=total_files, **counts)

    def aggregate(self, *streams: Iterable[Finding], total_files: int = 0) -> AggregationResult:
        merged = [finding for stream in streams for finding in stream]
        unique = self.deduplicate(merged)
        dropped = len(merged) - len(unique)
        if dropped:
            logger.info(f"Dropped {dropped} duplicate findings")
        return AggregationResult(
            findings=tuple(unique),
            stats=self.compute_stats(unique, total_files),
            duplicates_dropped=dropped,
        )

    @staticmethod
    def rank(findings: Iterable[Finding]) -> list[Finding]:
        """Most severe first; arrival order kept within a severity."""
        return sorted(findings, key=lambda f: f.severity.rank)
