"""Built-in compliance rules for security, license, and code quality."""

from compliance_copilot.analyzers.base import Category, Severity
from compliance_copilot.analyzers.rules import DependencyRule, LicenseRule, PatternRule, Rule

BUILTIN_RULES: tuple[Rule, ...] = (
    # Security - hardcoded secrets
    PatternRule(
        id="secret-api-key",
        name="Hardcoded API Key",
        description="Detects hardcoded API keys in source code",
        pattern=r"""(api[_-]?key|apikey)\s*[=:]\s*["']([A-Za-z0-9_\-]{20,})["']""",
        severity=Severity.CRITICAL,
        category=Category.SECURITY,
        fix_template="Move API key to environment variables",
    ),
    PatternRule(
        id="secret-aws-key",
        name="AWS Access Key",
        description="Detects AWS access keys",
        pattern=r"(AKIA[0-9A-Z]{16})",
        severity=Severity.CRITICAL,
        category=Category.SECURITY,
        fix_template="Use AWS Secrets Manager or IAM roles",
    ),
    PatternRule(
        id="secret-private-key",
        name="Private Key",
        description="Detects private keys in source code",
        pattern=r"-----BEGIN (RSA |EC |OPENSSH )?PRIVATE KEY-----",
        severity=Severity.CRITICAL,
        category=Category.SECURITY,
        fix_template="Remove private key and use secure key management",
    ),
    PatternRule(
        id="secret-password",
        name="Hardcoded Password",
        description="Detects hardcoded passwords",
        pattern=r"""(password|passwd|pwd)\s*[=:]\s*["'](?!\$\{)[^"']{8,}["']""",
        severity=Severity.HIGH,
        category=Category.SECURITY,
        fix_template="Use environment variables or secure vaults",
    ),
    PatternRule(
        id="secret-token",
        name="Authentication Token",
        description="Detects hardcoded auth tokens",
        pattern=r"""(token|bearer|auth)\s*[=:]\s*["']([A-Za-z0-9_\-]{32,})["']""",
        severity=Severity.HIGH,
        category=Category.SECURITY,
        fix_template="Store tokens in secure configuration",
    ),
    # Security - vulnerable code patterns
    PatternRule(
        id="security-sql-injection",
        name="Potential SQL Injection",
        description="Detects string concatenation in SQL queries",
        pattern=r"(execute|query|exec)\s*\([^)]*\+[^)]*\)",
        severity=Severity.HIGH,
        category=Category.SECURITY,
        fix_template="Use parameterized queries or prepared statements",
    ),
    PatternRule(
        id="security-eval",
        name="Dangerous eval() Usage",
        description="Detects use of eval() which can execute arbitrary code",
        pattern=r"\beval\s*\(",
        severity=Severity.HIGH,
        category=Category.SECURITY,
        fix_template="Avoid eval() and use safer alternatives",
    ),
    PatternRule(
        id="security-exec",
        name="Command Injection Risk",
        description="Detects shell command execution with user input",
        pattern=r"(exec|system|spawn|execSync)\s*\([^)]*\$",
        severity=Severity.HIGH,
        category=Category.SECURITY,
        fix_template="Validate and sanitize all inputs, use safe APIs",
    ),
    PatternRule(
        id="security-weak-crypto",
        name="Weak Cryptography",
        description="Detects use of weak cryptographic algorithms",
        pattern=r"(MD5|SHA1|DES)\s*\(",
        severity=Severity.MEDIUM,
        category=Category.SECURITY,
        fix_template="Use strong algorithms like SHA-256 or bcrypt",
    ),
    DependencyRule(
        id="dependency-vulnerability",
        name="Vulnerable Dependency",
        description="Detects dependencies pinned to versions with known vulnerabilities",
        severity=Severity.HIGH,
        category=Category.SECURITY,
        fix_template="Update the dependency to its latest secure version",
    ),
    # License
    LicenseRule(
        id="license-missing-header",
        name="Missing License Header",
        description="Source files should contain license headers",
        severity=Severity.LOW,
        category=Category.LICENSE,
        fix_template="Add appropriate license header to file",
    ),
    PatternRule(
        id="license-gpl-violation",
        name="GPL License Violation",
        description="Detects GPL library usage in proprietary code",
        pattern=r"(gpl|gnu general public license)",
        severity=Severity.HIGH,
        category=Category.LICENSE,
        fix_template="Replace with MIT/Apache licensed alternative or open source your code",
    ),
    # Code quality
    PatternRule(
        id="quality-long-function",
        name="Long Function",
        description="Functions should be concise and focused",
        pattern=r"function\s+\w+\s*\([^)]*\)\s*\{[\s\S]{1000,}\}",
        severity=Severity.LOW,
        category=Category.QUALITY,
        fix_template="Break down into smaller, focused functions",
    ),
    PatternRule(
        id="quality-console-log",
        name="Console Log Statement",
        description="Remove debug console.log statements",
        pattern=r"console\.(log|debug|info)\s*\(",
        severity=Severity.INFO,
        category=Category.QUALITY,
        fix_template="Use proper logging framework",
    ),
    PatternRule(
        id="quality-todo-comment",
        name="TODO Comment",
        description="Unresolved TODO comments",
        pattern=r"(TODO|FIXME|HACK|XXX):",
        severity=Severity.INFO,
        category=Category.QUALITY,
        fix_template="Create issue or resolve TODO",
    ),
)
