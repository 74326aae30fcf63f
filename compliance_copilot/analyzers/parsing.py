"""Helpers for turning backend JSON output into findings."""

import json
import logging
import re
from typing import Any, Optional

from compliance_copilot.analyzers.base import Category, Finding, Severity

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

# Column widths of the findings table
MAX_RULE_ID = 100
MAX_RULE_NAME = 255
MAX_FILE_PATH = 1000


def clip(value: Any, limit: int) -> str:
    text = str(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """Parse ``text`` as a JSON object, tolerating surrounding prose or fences.

    Returns None when no JSON object can be recovered.
    """
    if not text or not text.strip():
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(text)
        if not match:
            return None
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def _as_int(value: Any, minimum: int) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= minimum else None


def finding_from_payload(
    entry: Any,
    rule_prefix: str,
    default_type: Category,
    default_rule_name: str,
) -> Optional[Finding]:
    """Map one reported issue onto a Finding. Entries without a file are dropped."""
    if not isinstance(entry, dict) or not entry.get("file"):
        return None

    finding_type = Category.parse(entry.get("type"), default_type)
    return Finding(
        type=finding_type,
        severity=Severity.parse(entry.get("severity"), Severity.MEDIUM),
        message=str(entry.get("message") or "Issue detected"),
        file=clip(entry["file"], MAX_FILE_PATH),
        line=_as_int(entry.get("line"), 1),
        column=_as_int(entry.get("column"), 0),
        code=entry.get("code"),
        fix_suggestion=entry.get("fixSuggestion") or entry.get("fix_suggestion"),
        rule_id=clip(f"{rule_prefix}-{finding_type.value}", MAX_RULE_ID),
        rule_name=clip(
            entry.get("ruleName") or entry.get("rule_name") or default_rule_name, MAX_RULE_NAME
        ),
    )


def findings_from_document(
    text: str,
    rule_prefix: str,
    default_type: Category,
    default_rule_name: str,
) -> list[Finding]:
    """Parse a ``{"findings": [...]}`` document. Malformed output yields []."""
    parsed = extract_json_object(text)
    if parsed is None or not isinstance(parsed.get("findings"), list):
        logger.warning(f"Unparsable {rule_prefix} output: {text[:200]!r}")
        return []

    findings = []
    for entry in parsed["findings"]:
        finding = finding_from_payload(entry, rule_prefix, default_type, default_rule_name)
        if finding is None:
            logger.debug(f"Dropping {rule_prefix} entry without file: {entry!r}")
            continue
        findings.append(finding)
    return findings
