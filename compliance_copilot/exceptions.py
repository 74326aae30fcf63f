"""Compliance Copilot exception hierarchy.

Every failure raised by the analysis pipeline derives from ComplianceError so
callers can handle pipeline problems without swallowing unrelated errors.
"""


class ComplianceError(Exception):
    """Base exception for all Compliance Copilot errors."""


class RuleEvaluationError(ComplianceError):
    """Raised when a single rule cannot be compiled or applied.

    Contained to that rule: the pattern matcher logs it and moves on to the
    next rule.
    """

    def __init__(self, rule_id: str, message: str):
        super().__init__(f"Rule {rule_id}: {message}")
        self.rule_id = rule_id


class StageFailure(ComplianceError):
    """Raised when an analysis stage errors, times out or returns garbage.

    Contained to that stage, which then contributes zero findings.
    """

    def __init__(self, stage: str, message: str):
        super().__init__(f"Stage {stage} failed: {message}")
        self.stage = stage


class FatalRunError(ComplianceError):
    """Raised when the review request cannot be resolved before any stage runs."""


class RunFinalizedError(ComplianceError):
    """Raised when a completed or failed analysis run is mutated."""


class InvalidTransitionError(ComplianceError):
    """Raised when the pipeline state machine is asked to take an illegal edge."""
