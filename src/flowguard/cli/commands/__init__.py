"""CLI command handlers."""

from .list_cmd import cmd_list
from .metrics import cmd_metrics
from .rules import cmd_rules
from .show import cmd_show
from .verify import cmd_verify

__all__ = [
    "cmd_list",
    "cmd_metrics",
    "cmd_rules",
    "cmd_show",
    "cmd_verify",
]
