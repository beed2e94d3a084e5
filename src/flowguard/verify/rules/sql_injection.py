"""Detection of SQL built from interpolated strings."""

import re

from flowguard.verify.models import IssueCategory, Severity
from flowguard.verify.rules.base import PatternRule, RulePattern

_SUGGESTION = (
    "Use parameterized queries or prepared statements to prevent SQL injection"
)


class SqlInjectionRule(PatternRule):
    id = "sql-injection"
    name = "SQL Injection Detection"
    category = IssueCategory.SECURITY
    severity = Severity.HIGH
    message_template = "Potential {name}"

    patterns = (
        RulePattern(
            "string concatenation in SQL query",
            re.compile(r"""(?:execute|query|exec)\s*\(\s*["'].*["']\s*\+""", re.I),
            _SUGGESTION,
        ),
        RulePattern(
            "template literal in SQL query",
            re.compile(r"""(?:execute|query|exec)\s*\(\s*[`"'].*\$\{""", re.I),
            _SUGGESTION,
        ),
        RulePattern(
            "f-string in SQL query",
            re.compile(r"""(?:execute|query|exec)\s*\(\s*f["'].*\{""", re.I),
            _SUGGESTION,
        ),
        RulePattern(
            "%-formatting in SQL query",
            re.compile(r"""(?:execute|query|exec)\s*\(\s*["'][^"']*%s?[^"']*["']\s*%""", re.I),
            _SUGGESTION,
        ),
        RulePattern(
            "direct SQL concatenation",
            re.compile(r"SELECT.*\+.*FROM|INSERT.*\+.*INTO|UPDATE.*\+.*SET", re.I),
            _SUGGESTION,
        ),
        RulePattern(
            "raw SQL with string interpolation",
            re.compile(r"""sql\s*[=:]\s*[`"'].*\$\{""", re.I),
            _SUGGESTION,
        ),
    )
