"""
Scanner exceptions.

Only these errors stop a run. Transport failures and rule mismatches are
handled inside the probes and never surface here.
"""


class ScannerError(Exception):
    """Base class. ``hint`` tells the operator how to fix the problem."""

    exit_code = 2

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\n{self.hint}"
        return self.message


class ConfigError(ScannerError):
    """Invalid or missing configuration."""
    exit_code = 2


class AuthStateError(ScannerError):
    """Authentication snapshot is missing or expired."""
    exit_code = 1


class ToolUnavailableError(ScannerError):
    """An external tool or the target application cannot be reached."""
    exit_code = 3
