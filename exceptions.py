"""Exception hierarchy for the character rules engine.

Only programmer and rule-data faults are raised. Player input problems are
reported through ``validation.ValidationResult`` and import problems through
``character_io.ImportResult``.
"""

from typing import Optional


class RulesEngineError(Exception):
    """Base exception for all rules engine errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- Rule Data Errors ----

class RuleDataError(RulesEngineError):
    """Reference data is missing, malformed, or incomplete. Always fatal."""


class UnknownRuleKeyError(RuleDataError):
    """A lookup asked for a key that the rule tables do not contain."""

    def __init__(self, table: str, key: str):
        super().__init__(f"Unknown {table}: {key}", {"table": table, "key": key})
        self.table = table
        self.key = key


class TemplateRenderError(RuleDataError):
    """A feature description template could not be rendered."""


# ---- Session Errors ----

class SessionStateError(RulesEngineError):
    """A builder or level-up session was driven out of order."""
