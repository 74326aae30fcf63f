"""Compliance rule types.

Each rule kind knows how to evaluate itself against a changed file:

- PatternRule: case-insensitive, multi-line regex applied line by line
- DependencyRule: flags known-vulnerable pins in dependency manifests
- LicenseRule: flags source files without a copyright/license header
"""

import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Any, ClassVar, Optional

from compliance_copilot.analyzers.base import Category, ChangedFile, Finding, Severity
from compliance_copilot.exceptions import RuleEvaluationError

logger = logging.getLogger(__name__)


class RuleKind(str, Enum):
    PATTERN = "pattern"
    DEPENDENCY_CHECK = "dependency-check"
    LICENSE_CHECK = "license-check"

    @classmethod
    def parse(cls, value: str) -> "RuleKind":
        aliases = {
            "regex": cls.PATTERN,
            "dependency": cls.DEPENDENCY_CHECK,
            "license": cls.LICENSE_CHECK,
        }
        value = str(value).strip().lower()
        if value in aliases:
            return aliases[value]
        return cls(value)


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE | re.MULTILINE)


@dataclass(frozen=True)
class Rule:
    """Base rule. Immutable once loaded into a catalog."""

    id: str
    name: str
    description: str
    severity: Severity
    category: Category
    enabled: bool = True
    fix_template: Optional[str] = None

    kind: ClassVar[RuleKind]

    def evaluate(self, file: ChangedFile) -> list[Finding]:
        raise NotImplementedError

    def _finding(self, file: ChangedFile, message: str, **kwargs: Any) -> Finding:
        return Finding(
            type=self.category,
            severity=self.severity,
            message=message,
            file=file.filename,
            rule_id=self.id,
            rule_name=self.name,
            fix_suggestion=kwargs.pop("fix_suggestion", self.fix_template),
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "kind": self.kind.value,
            "pattern": getattr(self, "pattern", None),
            "severity": self.severity.value,
            "category": self.category.value,
            "fix_template": self.fix_template,
        }


@dataclass(frozen=True)
class PatternRule(Rule):
    pattern: str = ""

    kind: ClassVar[RuleKind] = RuleKind.PATTERN

    def compile(self) -> re.Pattern:
        try:
            return compile_pattern(self.pattern)
        except re.error as e:
            raise RuleEvaluationError(self.id, f"invalid pattern {self.pattern!r}: {e}") from e

    def evaluate(self, file: ChangedFile) -> list[Finding]:
        content = file.analyzable_text
        if not content:
            return []

        regex = self.compile()
        message = f"{self.name}: {self.description}"
        findings: list[Finding] = []
        for index, line in enumerate(content.split("\n")):
            for match in regex.finditer(line):
                findings.append(
                    self._finding(
                        file,
                        message,
                        line=index + 1,
                        column=match.start(),
                        code=line.strip(),
                    )
                )
        return findings


# Known vulnerable (name, exact version) pins.
# TODO: replace with a lookup against the OSV database.
KNOWN_VULNERABLE: dict[str, frozenset[str]] = {
    "express": frozenset({"4.0.0", "4.1.0", "4.2.0"}),
    "lodash": frozenset({"4.17.0", "4.17.1"}),
    "axios": frozenset({"0.18.0", "0.19.0"}),
    "crypto-js": frozenset({"3.1.2", "3.1.3"}),
    "pyyaml": frozenset({"5.3"}),
    "requests": frozenset({"2.19.1"}),
}

_REQUIREMENT_PIN = re.compile(r"^\s*([A-Za-z0-9_.\-\[\]]+)\s*==\s*([^\s;#]+)")
_GEM_PIN = re.compile(r"""^\s*gem\s+["']([^"']+)["']\s*,\s*["']([^"']+)["']""")


def _parse_package_json(content: str) -> dict[str, str]:
    pkg = json.loads(content)
    if not isinstance(pkg, dict):
        raise ValueError("package.json is not an object")
    deps: dict[str, str] = {}
    for section in ("dependencies", "devDependencies"):
        declared = pkg.get(section) or {}
        if not isinstance(declared, dict):
            raise ValueError(f"{section} is not an object")
        deps.update({k: str(v) for k, v in declared.items()})
    return deps


def _parse_requirements(content: str) -> dict[str, str]:
    deps: dict[str, str] = {}
    for line in content.splitlines():
        match = _REQUIREMENT_PIN.match(line)
        if match:
            name = re.sub(r"\[.*\]$", "", match.group(1))
            deps[name] = match.group(2)
    return deps


def _parse_gemfile(content: str) -> dict[str, str]:
    deps: dict[str, str] = {}
    for line in content.splitlines():
        match = _GEM_PIN.match(line)
        if match:
            deps[match.group(1)] = match.group(2)
    return deps


def _parse_pom(content: str) -> dict[str, str]:
    root = ET.fromstring(content)
    deps: dict[str, str] = {}
    for element in root.iter():
        if not element.tag.endswith("dependency"):
            continue
        artifact = version = None
        for child in element:
            if child.tag.endswith("artifactId"):
                artifact = (child.text or "").strip()
            elif child.tag.endswith("version"):
                version = (child.text or "").strip()
        if artifact and version:
            deps[artifact] = version
    return deps


MANIFEST_PARSERS = {
    "package.json": _parse_package_json,
    "requirements.txt": _parse_requirements,
    "Gemfile": _parse_gemfile,
    "pom.xml": _parse_pom,
}


@dataclass(frozen=True)
class DependencyRule(Rule):
    kind: ClassVar[RuleKind] = RuleKind.DEPENDENCY_CHECK

    def evaluate(self, file: ChangedFile) -> list[Finding]:
        parser = MANIFEST_PARSERS.get(PurePosixPath(file.filename).name)
        content = file.analyzable_text
        if parser is None or not content:
            return []

        try:
            deps = parser(content)
        except (ValueError, ET.ParseError) as e:
            raise RuleEvaluationError(self.id, f"cannot parse {file.filename}: {e}") from e

        findings = []
        for name, version in deps.items():
            pinned = version.lstrip("^~=v ").strip()
            if pinned in KNOWN_VULNERABLE.get(name.lower(), ()):
                findings.append(
                    self._finding(
                        file,
                        f"Vulnerable dependency: {name}@{version}",
                        fix_suggestion=f"Update {name} to latest secure version",
                    )
                )
        return findings


SOURCE_EXTENSIONS = (".js", ".ts", ".py", ".java", ".go", ".rs", ".cpp", ".c", ".h")
LICENSE_FILENAMES = {"license", "license.md"}
HEADER_SCAN_CHARS = 500


@dataclass(frozen=True)
class LicenseRule(Rule):
    kind: ClassVar[RuleKind] = RuleKind.LICENSE_CHECK

    def evaluate(self, file: ChangedFile) -> list[Finding]:
        name = PurePosixPath(file.filename).name.lower()
        if name in LICENSE_FILENAMES or not name.endswith(SOURCE_EXTENSIONS):
            return []

        content = file.analyzable_text
        if content is None:
            return []

        header = content[:HEADER_SCAN_CHARS].lower()
        if "copyright" in header or "license" in header:
            return []
        return [self._finding(file, "Missing license header in source file", line=1)]


RULE_TYPES: dict[RuleKind, type[Rule]] = {
    RuleKind.PATTERN: PatternRule,
    RuleKind.DEPENDENCY_CHECK: DependencyRule,
    RuleKind.LICENSE_CHECK: LicenseRule,
}


def rule_from_dict(data: dict[str, Any]) -> Rule:
    """Build a rule from a stored or user-supplied definition.

    Raises:
        ValueError: if required fields are missing or invalid
    """
    missing = [k for k in ("id", "name", "severity", "category") if not data.get(k)]
    if missing:
        raise ValueError(f"Rule is missing required fields: {', '.join(missing)}")

    kind = RuleKind.parse(data.get("kind") or data.get("type") or "pattern")
    common = dict(
        id=str(data["id"]),
        name=str(data["name"]),
        description=str(data.get("description") or ""),
        severity=Severity.parse(data["severity"]),
        category=Category.parse(data["category"]),
        enabled=bool(data.get("enabled", True)),
        fix_template=data.get("fix_template") or data.get("fixTemplate"),
    )
    if kind == RuleKind.PATTERN:
        pattern = data.get("pattern")
        if not pattern:
            raise ValueError(f"Pattern rule {common['id']} requires a pattern")
        return PatternRule(pattern=str(pattern), **common)
    return RULE_TYPES[kind](**common)
