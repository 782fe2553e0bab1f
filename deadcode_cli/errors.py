"""Exit codes and exceptions for deadcode.

Exit code scheme:

    0  SUCCESS   -- analysis completed (an empty report is still a success)
    1  ERROR     -- the program could not be analysed (load errors, no entry points)
    2  USAGE     -- invalid flags or configuration values
    3  INTERNAL  -- an invariant of the program model was violated
"""

from __future__ import annotations

EXIT_SUCCESS: int = 0
EXIT_ERROR: int = 1
EXIT_USAGE: int = 2
EXIT_INTERNAL: int = 3


class DeadcodeError(Exception):
    """Base class for deadcode errors; the CLI prints the message and exits with ``exit_code``."""

    def __init__(self, message: str, exit_code: int = EXIT_ERROR):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


class ProgramLoadError(DeadcodeError):
    """Raised when sources cannot be loaded or contain errors."""

    def __init__(self, message: str = "modules contain errors", errors=None):
        super().__init__(message, EXIT_ERROR)
        self.errors = list(errors or [])


class NoEntryPointsError(DeadcodeError):
    """Raised when the loaded program has no entry points to start from."""

    def __init__(self, message: str = "no main modules"):
        super().__init__(message, EXIT_ERROR)


class UsageError(DeadcodeError):
    """Raised for conflicting flags, bad templates and bad configuration values."""

    def __init__(self, message: str):
        super().__init__(message, EXIT_USAGE)


class FilterError(UsageError):
    """Raised for an invalid unit filter pattern."""


class InternalError(DeadcodeError):
    """Raised when the program model breaks an invariant the analysis relies on."""

    def __init__(self, message: str):
        super().__init__(f"internal error: {message}", EXIT_INTERNAL)
