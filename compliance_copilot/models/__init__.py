"""SQLAlchemy models."""

from compliance_copilot.models.analysis_record import AnalysisRecord
from compliance_copilot.models.custom_rule import CustomRuleRecord
from compliance_copilot.models.finding_record import FindingRecord

__all__ = [
    "AnalysisRecord",
    "FindingRecord",
    "CustomRuleRecord",
]
