"""Workspace secret scanner executed inside the disposable sandbox process.

Usage: python -I sandbox_scanner.py <workspace>

Prints a single JSON document {"findings": [...]} on stdout. Runs as a plain
script in isolated mode, so it must only import the standard library.
"""

import json
import os
import re
import sys

SECRET_PATTERNS = {
    "api_key": r"""(api[_-]?key|apikey)\s*[=:]\s*["']([A-Za-z0-9_\-]{20,})["']""",
    "aws_key": r"(AKIA[0-9A-Z]{16})",
    "private_key": r"-----BEGIN (RSA |EC |OPENSSH )?PRIVATE KEY-----",
    "password": r"""(password|passwd|pwd)\s*[=:]\s*["'][^"']{8,}["']""",
}

MAX_FILE_BYTES = 1024 * 1024


def scan_content(path: str, content: str) -> list[dict]:
    issues = []
    for name, pattern in SECRET_PATTERNS.items():
        for match in re.finditer(pattern, content, re.IGNORECASE):
            line_start = content.rfind("\n", 0, match.start()) + 1
            issues.append(
                {
                    "type": "security",
                    "severity": "critical",
                    "message": f"Hardcoded secret detected: {name}",
                    "file": path,
                    "line": content.count("\n", 0, match.start()) + 1,
                    "column": match.start() - line_start,
                    "code": match.group(0),
                    "ruleName": "Secret Detection",
                }
            )
    return issues


def scan_workspace(root: str) -> list[dict]:
    findings = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            full_path = os.path.join(dirpath, filename)
            relative_path = os.path.relpath(full_path, root).replace(os.sep, "/")
            try:
                if os.path.getsize(full_path) > MAX_FILE_BYTES:
                    continue
                with open(full_path, "r", encoding="utf-8", errors="replace") as handle:
                    content = handle.read()
            except OSError as e:
                print(f"Error reading {relative_path}: {e}", file=sys.stderr)
                continue
            findings.extend(scan_content(relative_path, content))
    return findings


def main(argv: list[str]) -> int:
    if len(argv) != 2:
        print("usage: sandbox_scanner <workspace>", file=sys.stderr)
        return 2
    print(json.dumps({"findings": scan_workspace(argv[1])}))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
