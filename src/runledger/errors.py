"""
Exception hierarchy for runledger.

All runledger exceptions inherit from RunLedgerError, allowing callers to
catch every runledger-specific exception with a single except clause.

Exception Categories:
    - ValidationError: Malformed message/run input, rejected before any write
    - NotFoundError: Run or message id does not exist
    - ToolError: Tool name could not be resolved
    - StorageError: Transaction or connection failure

Errors raised by tools and by the agent itself are never wrapped; they
propagate to the caller exactly as raised.

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (run, message, tool where applicable)
    - Errors are both human-readable and machine-parseable (to_dict)
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Validation errors: 1xxx
ERROR_VALIDATION = 1001
ERROR_MESSAGE_INVALID = 1002
ERROR_RUN_TRANSITION = 1003
ERROR_TEMPLATE_PARAMETER = 1004
ERROR_NO_TOOL_CALLS = 1005

# Not-found errors: 2xxx
ERROR_NOT_FOUND = 2001
ERROR_RUN_NOT_FOUND = 2002
ERROR_MESSAGE_NOT_FOUND = 2003

# Tool errors: 3xxx
ERROR_TOOL_NOT_FOUND = 3001

# Storage errors: 4xxx
ERROR_STORAGE_CONNECTION = 4001
ERROR_STORAGE_WRITE = 4002
ERROR_STORAGE_READ = 4003


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class RunLedgerError(Exception):
    """
    Base exception for all runledger errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Validation Errors
# =============================================================================


@dataclass
class ValidationError(RunLedgerError):
    """
    Raised when input is rejected before anything is written.

    Front ends surface these as client errors.
    """

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Invalid input"
        if self.code == 0:
            self.code = ERROR_VALIDATION


@dataclass
class MessageValidationError(ValidationError):
    """
    Raised when a message in a batch does not match the Message schema.

    Attributes:
        index: Position of the offending message within its batch
        details: Validation failure reported by the schema
    """

    index: int = 0
    details: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid message at index {self.index}: {self.details}"
        if self.code == 0:
            self.code = ERROR_MESSAGE_INVALID
        super().__post_init__()
        self.context.update({
            "index": self.index,
            "details": self.details,
        })


@dataclass
class InvalidRunTransitionError(ValidationError):
    """Raised when a run status change breaks the run lifecycle."""

    run_id: str = ""
    current: str = ""
    requested: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Run {self.run_id} cannot move from {self.current} to {self.requested}"
            )
        if self.code == 0:
            self.code = ERROR_RUN_TRANSITION
        super().__post_init__()
        self.context.update({
            "run_id": self.run_id,
            "current": self.current,
            "requested": self.requested,
        })


@dataclass
class TemplateParameterError(ValidationError):
    """Raised when a message template cannot be rendered with the given parameters."""

    template_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Template rendering failed: {self.template_error}"
        if self.code == 0:
            self.code = ERROR_TEMPLATE_PARAMETER
        if not self.suggestion:
            self.suggestion = "Pass every placeholder used by the config messages in parameters"
        super().__post_init__()
        self.context["template_error"] = self.template_error


@dataclass
class NoToolCallsError(ValidationError):
    """Raised when a replay targets a message that carries no tool calls."""

    run_id: str = ""
    message_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "No tools to execute"
        if self.code == 0:
            self.code = ERROR_NO_TOOL_CALLS
        super().__post_init__()
        self.context.update({
            "run_id": self.run_id,
            "message_id": self.message_id,
        })


# =============================================================================
# Not-Found Errors
# =============================================================================


@dataclass
class NotFoundError(RunLedgerError):
    """Base class for lookups of ids that do not exist."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Not found"
        if self.code == 0:
            self.code = ERROR_NOT_FOUND


@dataclass
class RunNotFoundError(NotFoundError):
    """Raised when a run id does not exist."""

    run_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Run not found: {self.run_id}"
        if self.code == 0:
            self.code = ERROR_RUN_NOT_FOUND
        super().__post_init__()
        self.context["run_id"] = self.run_id


@dataclass
class MessageNotFoundError(NotFoundError):
    """Raised when a message id does not exist within a run."""

    run_id: str = ""
    message_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Message not found: {self.message_id} (run {self.run_id})"
        if self.code == 0:
            self.code = ERROR_MESSAGE_NOT_FOUND
        super().__post_init__()
        self.context.update({
            "run_id": self.run_id,
            "message_id": self.message_id,
        })


# =============================================================================
# Tool Errors
# =============================================================================


@dataclass
class ToolError(RunLedgerError):
    """
    Base class for tool resolution errors.

    Attributes:
        tool: Name of the tool involved
    """

    tool: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["tool"] = self.tool


@dataclass
class ToolNotFoundError(ToolError):
    """
    Raised when a tool call names a tool the registry cannot resolve.

    Attributes:
        available_tools: Every name known to the registry, for diagnostics
    """

    available_tools: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Tool {self.tool} does not exist in the list of tools: "
                f"{', '.join(self.available_tools)}"
            )
        if self.code == 0:
            self.code = ERROR_TOOL_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Check tool name spelling or register the tool"
        super().__post_init__()
        self.context["available_tools"] = list(self.available_tools)


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(RunLedgerError):
    """
    Base class for storage/database errors.

    Neither the store nor the processor retries these.

    Attributes:
        operation: The operation that failed (e.g., "insert_messages")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails. Writes inside a batch are rolled back."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error
