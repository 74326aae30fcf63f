"""Active rule catalog (built-in + custom rules)."""

import logging
import threading
from typing import Iterable, Optional

from compliance_copilot.analyzers.builtin_rules import BUILTIN_RULES
from compliance_copilot.analyzers.rules import Rule

logger = logging.getLogger(__name__)


class RuleCatalog:
    """Holds the enabled rules in built-in-then-custom order.

    The rule list is an immutable tuple that is replaced on every mutation,
    so a snapshot taken at run start never changes underneath a run.
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        self._lock = threading.Lock()
        self._rules: tuple[Rule, ...] = ()
        for rule in rules:
            self._append(rule)

    @classmethod
    def load(
        cls,
        builtins: Iterable[Rule] = BUILTIN_RULES,
        custom_rules: Iterable[Rule] = (),
    ) -> "RuleCatalog":
        """Build a catalog keeping only enabled rules."""
        catalog = cls(rule for rule in [*builtins, *custom_rules] if rule.enabled)
        logger.info(f"Rule catalog initialized with {len(catalog)} rules")
        return catalog

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return any(rule.id == rule_id for rule in self._rules)

    def snapshot(self) -> tuple[Rule, ...]:
        """Stable view of the active rules for one analysis run."""
        return self._rules

    def get(self, rule_id: str) -> Optional[Rule]:
        return next((rule for rule in self._rules if rule.id == rule_id), None)

    def add_rule(self, rule: Rule) -> None:
        """Append a rule. Disabled rules are ignored.

        Raises:
            ValueError: if a rule with the same id is already active
        """
        if not rule.enabled:
            logger.info(f"Skipping disabled rule: {rule.id}")
            return
        with self._lock:
            self._append(rule)
        logger.info(f"Added rule: {rule.id}")

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule by id. Returns False when no such rule is active."""
        with self._lock:
            remaining = tuple(rule for rule in self._rules if rule.id != rule_id)
            removed = len(remaining) != len(self._rules)
            self._rules = remaining
        if removed:
            logger.info(f"Removed rule: {rule_id}")
        return removed

    def with_rules(self, extra: Iterable[Rule]) -> tuple[Rule, ...]:
        """Snapshot plus enabled ``extra`` rules whose ids are not already taken."""
        rules = list(self._rules)
        seen = {rule.id for rule in rules}
        for rule in extra:
            if rule.enabled and rule.id not in seen:
                rules.append(rule)
                seen.add(rule.id)
        return tuple(rules)

    def _append(self, rule: Rule) -> None:
        if rule.id in self:
            raise ValueError(f"Duplicate rule id: {rule.id}")
        self._rules = (*self._rules, rule)
