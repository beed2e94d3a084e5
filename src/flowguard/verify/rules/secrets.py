"""Detection of credentials committed in source."""

import re

from flowguard.verify.models import IssueCategory, Severity, VerificationIssue
from flowguard.verify.rules.base import PatternRule, RulePattern, ValidationContext

REDACTED = "<redacted>"

_QUOTED_VALUE = re.compile(r"""(['"])([^'"]+)\1""")


class HardcodedSecretsRule(PatternRule):
    """Flags API keys, cloud credentials, private keys and passwords in code."""

    id = "hardcoded-secrets"
    name = "Hardcoded Secrets Detection"
    category = IssueCategory.SECURITY
    severity = Severity.CRITICAL
    message_template = "Hardcoded {name} detected"

    patterns = (
        RulePattern(
            "API Key",
            re.compile(r"""api[_-]?key[_-]?['"]?\s*[=:]\s*['"]([a-zA-Z0-9_\-]{20,})['"]""", re.I),
            "Use environment variables or a secret management service for API keys",
        ),
        RulePattern(
            "AWS Access Key",
            re.compile(r"AKIA[0-9A-Z]{16}"),
            "Use AWS IAM roles or environment variables for AWS credentials",
        ),
        RulePattern(
            "Private Key",
            re.compile(r"-----BEGIN (?:RSA |EC |OPENSSH )?PRIVATE KEY-----"),
            "Store private keys in secure storage, never commit them to version control",
        ),
        RulePattern(
            "Password",
            re.compile(r"""password['"]?\s*[=:]\s*['"](?![^'"]*\$\{)([^'"]+)['"]""", re.I),
            "Use environment variables or a secret management service for passwords",
        ),
        RulePattern(
            "Auth Token",
            re.compile(r"""token[_-]?['"]?\s*[=:]\s*['"]([a-zA-Z0-9_\-]{20,})['"]""", re.I),
            "Use environment variables or a secret management service for tokens",
        ),
        RulePattern(
            "Database URL with credentials",
            re.compile(
                r"(?:mongodb|mysql|postgresql|postgres|redis)://[a-zA-Z0-9._-]+:[^@\s'\"]+@",
                re.I,
            ),
            "Use environment variables for database connection strings with credentials",
        ),
    )

    def auto_fix(
        self, issue: VerificationIssue, context: ValidationContext
    ) -> str | None:
        """Redact quoted literals on the flagged line."""
        if issue.line is None:
            return None
        lines = context.file_content.splitlines(keepends=True)
        if not 1 <= issue.line <= len(lines):
            return None

        original = lines[issue.line - 1]
        fixed = _QUOTED_VALUE.sub(lambda m: f"{m.group(1)}{REDACTED}{m.group(1)}", original)
        if fixed == original:
            return None
        lines[issue.line - 1] = fixed
        return "".join(lines)
