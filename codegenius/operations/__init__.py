"""File-operation command language: parser and sandboxed executor."""

from codegenius.operations.executor import (
    FileOperationExecutor,
    OperationResult,
    serialize_results,
)
from codegenius.operations.parser import (
    COMMAND_NAMES,
    Command,
    has_commands,
    parse_attributes,
    parse_commands,
)

__all__ = [
    "COMMAND_NAMES",
    "Command",
    "FileOperationExecutor",
    "OperationResult",
    "has_commands",
    "parse_attributes",
    "parse_commands",
    "serialize_results",
]
