"""Error taxonomy for the memory and orchestration layer.

Degraded parsing is not an error: it is reported through
``SummaryResult.parse_degraded``.
"""

# PostgreSQL undefined_table
UNDEFINED_TABLE_CODE = "42P01"
# PostgreSQL unique_violation
UNIQUE_VIOLATION_CODE = "23505"


class OpsAssistantError(Exception):
    """Base class for errors raised by the core."""


class ValidationError(OpsAssistantError, ValueError):
    """Bad caller input (e.g. missing summary id)."""


class ModelUnavailableError(OpsAssistantError):
    """The model endpoint could not be reached after all retry attempts."""

    def __init__(self, message: str, attempts: int = 0, last_error: Exception | None = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class StorageError(OpsAssistantError):
    """A durable-store call failed."""

    def __init__(self, message: str, table: str | None = None, code: str | None = None):
        super().__init__(message)
        self.table = table
        self.code = code

    @property
    def missing_relation(self) -> bool:
        """True when the target table does not exist (optional analytics tables)."""
        return self.code == UNDEFINED_TABLE_CODE

    @property
    def unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION_CODE
