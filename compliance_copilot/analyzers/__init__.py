"""Rule evaluation and analysis capabilities."""

from compliance_copilot.analyzers.base import (
    AnalysisCapability,
    AnalysisContext,
    Category,
    ChangedFile,
    FileStatus,
    Finding,
    Severity,
)
from compliance_copilot.analyzers.builtin_rules import BUILTIN_RULES
from compliance_copilot.analyzers.pattern_matcher import PatternMatcher
from compliance_copilot.analyzers.rule_catalog import RuleCatalog
from compliance_copilot.analyzers.rules import DependencyRule, LicenseRule, PatternRule, Rule

__all__ = [
    "AnalysisCapability",
    "AnalysisContext",
    "Category",
    "ChangedFile",
    "FileStatus",
    "Finding",
    "Severity",
    "BUILTIN_RULES",
    "PatternMatcher",
    "RuleCatalog",
    "Rule",
    "PatternRule",
    "DependencyRule",
    "LicenseRule",
]
