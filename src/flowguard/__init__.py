"""FlowGuard - verify code changes against their specifications."""

__version__ = "0.1.0"
