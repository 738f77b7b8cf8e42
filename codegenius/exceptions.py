"""Custom exceptions for CodeGenius."""


class CodeGeniusError(Exception):
    """Base exception for CodeGenius."""

    pass


class ConfigurationError(CodeGeniusError):
    """Configuration-related errors."""

    pass


class LLMError(CodeGeniusError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class FileOperationError(CodeGeniusError):
    """File operation failed inside the sandbox."""

    error_type = "io_failure"

    def __init__(self, operation: str, message: str):
        super().__init__(message)
        self.operation = operation
        self.message = message


class PathEscapeError(FileOperationError):
    """Path resolves outside the sandbox root."""

    error_type = "path_escape"

    def __init__(self, operation: str, path: str):
        super().__init__(operation, f"Path escapes workspace root: {path}")
        self.path = path


class OperationNotFoundError(FileOperationError):
    """Target file or directory does not exist."""

    error_type = "not_found"


class OperationIOError(FileOperationError):
    """Underlying read/write failure."""

    error_type = "io_failure"


class InvalidCommandError(FileOperationError):
    """Command is missing attributes or names an unsupported operation."""

    error_type = "invalid_command"


class RunCancelledError(CodeGeniusError):
    """Agent run was cancelled through its cancellation token."""

    pass
