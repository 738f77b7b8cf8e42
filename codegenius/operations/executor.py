"""Sandboxed file executor for parsed commands."""

import asyncio
import fnmatch
import json
import os
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel, model_validator

from codegenius.exceptions import (
    FileOperationError,
    InvalidCommandError,
    OperationIOError,
    OperationNotFoundError,
    PathEscapeError,
)
from codegenius.logging import get_logger
from codegenius.operations.parser import Command

log = get_logger(__name__)


class OperationResult(BaseModel):
    """Result of one command, fed back to the model as JSON."""

    success: bool = True
    operation: str
    error: str | None = None
    error_type: str | None = None
    path: str | None = None
    content: str | None = None
    size: int | None = None
    files: list[str] | None = None
    directory: str | None = None
    filter: str | None = None
    recursive: bool | None = None
    reason: str | None = None
    requires_follow_up: bool | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "OperationResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            self.error = f"{self.operation} failed"
        return self

    @classmethod
    def failure(cls, error: FileOperationError, **fields: Any) -> "OperationResult":
        return cls(
            success=False,
            operation=error.operation,
            error=error.message,
            error_type=error.error_type,
            **fields,
        )


def serialize_results(results: Sequence[OperationResult]) -> str:
    """Serialize results into the JSON array submitted as the next user turn."""
    payload = [result.model_dump(exclude_none=True) for result in results]
    return json.dumps(payload, indent=2, ensure_ascii=False)


class FileOperationExecutor:
    """Execute commands against a single workspace root.

    Every path is resolved against the root and normalized; anything that
    lands outside the root is rejected before any I/O happens.
    """

    def __init__(self, root: Path | str):
        self.root = Path(os.path.abspath(Path(root).expanduser()))
        self.root.mkdir(parents=True, exist_ok=True)
        self._root_str = str(self.root)
        self._handlers = {
            "CREATE_FILE": self._run_create,
            "READ_FILE": self._run_read,
            "UPDATE_FILE": self._run_update,
            "DELETE_FILE": self._run_delete,
            "LIST_FILES": self._run_list_files,
            "LIST_DIR": self._run_list_dir,
            "AGAIN": self._run_again,
        }

    # Path safety

    def resolve_path(self, operation: str, path: str) -> Path:
        """Resolve `path` inside the root or raise PathEscapeError."""
        normalized = os.path.normpath(os.path.join(self._root_str, path))
        if normalized != self._root_str and not normalized.startswith(self._root_str + os.sep):
            raise PathEscapeError(operation, path)
        return Path(normalized)

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    @staticmethod
    def _require(command: Command, attribute: str) -> str:
        value = command.attributes.get(attribute)
        if value is None:
            raise InvalidCommandError(command.name, f"Missing required attribute: {attribute}")
        return value

    # Dispatch

    async def execute(self, command: Command) -> OperationResult:
        """Execute one command; failures come back as unsuccessful results."""
        handler = self._handlers.get(command.name)
        if handler is None:
            log.warning("Unsupported operation", operation=command.name)
            return OperationResult.failure(
                InvalidCommandError(command.name, f"Unsupported operation: {command.name}")
            )
        try:
            return await handler(command)
        except FileOperationError as e:
            log.warning("File operation failed", operation=e.operation, error=e.message)
            return OperationResult.failure(e)

    async def _run_create(self, command: Command) -> OperationResult:
        return await self.create_file(self._require(command, "path"), command.body or "")

    async def _run_read(self, command: Command) -> OperationResult:
        return await self.read_file(self._require(command, "path"))

    async def _run_update(self, command: Command) -> OperationResult:
        return await self.update_file(self._require(command, "path"), command.body or "")

    async def _run_delete(self, command: Command) -> OperationResult:
        return await self.delete_file(self._require(command, "path"))

    async def _run_list_files(self, command: Command) -> OperationResult:
        return await self.list_files(command.attributes.get("filter"))

    async def _run_list_dir(self, command: Command) -> OperationResult:
        return await self.list_dir(self._require(command, "path"), command.attributes.get("filter"))

    async def _run_again(self, command: Command) -> OperationResult:
        return await self.again(command.attributes.get("reason"))

    # Operations

    async def create_file(self, path: str, content: str) -> OperationResult:
        """Write `content` to `path`, creating parent directories."""
        return await self._write("CREATE_FILE", path, content)

    async def update_file(self, path: str, content: str) -> OperationResult:
        """Overwrite `path` with `content`; same write semantics as create."""
        return await self._write("UPDATE_FILE", path, content)

    async def _write(self, operation: str, path: str, content: str) -> OperationResult:
        log.info("Writing file", operation=operation, path=path)
        try:
            target = self.resolve_path(operation, path)
            try:
                data = content.encode("utf-8")
            except UnicodeEncodeError as e:
                raise OperationIOError(operation, f"Content is not encodable as UTF-8: {e}") from e
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                with open(target, "wb") as f:
                    f.write(data)
            except (OSError, ValueError) as e:
                raise OperationIOError(operation, f"Write failed: {e}") from e
        except FileOperationError as e:
            log.warning("Write rejected", operation=operation, path=path, error=e.message)
            return OperationResult.failure(e, path=path)

        log.info("File written", operation=operation, path=self._relative(target), size=len(content))
        return OperationResult(
            operation=operation,
            path=self._relative(target),
            size=len(content),
        )

    async def read_file(self, path: str) -> OperationResult:
        """Return the full content of `path`."""
        operation = "READ_FILE"
        log.info("Reading file", path=path)
        try:
            target = self.resolve_path(operation, path)
            if not target.exists():
                raise OperationNotFoundError(operation, f"File not found: {path}")
            if not target.is_file():
                raise OperationNotFoundError(operation, f"Not a file: {path}")
            try:
                content = target.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise OperationIOError(operation, f"Read failed: {e}") from e
        except FileOperationError as e:
            log.warning("Read rejected", path=path, error=e.message)
            return OperationResult.failure(e, path=path)

        preview = content[:100] + "..." if len(content) > 100 else content
        log.info("File read", path=self._relative(target), chars=len(content), preview=preview)
        return OperationResult(
            operation=operation,
            path=self._relative(target),
            content=content,
            size=len(content),
        )

    async def delete_file(self, path: str) -> OperationResult:
        """Remove the file at `path`."""
        operation = "DELETE_FILE"
        log.info("Deleting file", path=path)
        try:
            target = self.resolve_path(operation, path)
            if not target.exists():
                raise OperationNotFoundError(operation, f"File not found: {path}")
            if not target.is_file():
                raise OperationNotFoundError(operation, f"Not a file: {path}")
            try:
                target.unlink()
            except FileNotFoundError as e:
                raise OperationNotFoundError(operation, f"File not found: {path}") from e
            except OSError as e:
                raise OperationIOError(operation, f"Delete failed: {e}") from e
        except FileOperationError as e:
            log.warning("Delete rejected", path=path, error=e.message)
            return OperationResult.failure(e, path=path)

        log.info("File deleted", path=self._relative(target))
        return OperationResult(operation=operation, path=self._relative(target))

    async def list_files(self, filter: str | None = None) -> OperationResult:
        """List root files; a filter switches to a recursive glob search."""
        operation = "LIST_FILES"
        try:
            files = await self._collect(operation, self.root, filter)
        except FileOperationError as e:
            log.warning("Listing failed", operation=operation, error=e.message)
            return OperationResult.failure(e, filter=filter)

        log.info("Files listed", operation=operation, filter=filter, count=len(files))
        return OperationResult(
            operation=operation,
            files=files,
            filter=filter,
            recursive=filter is not None,
        )

    async def list_dir(self, path: str, filter: str | None = None) -> OperationResult:
        """Same as list_files but rooted at `path` inside the workspace."""
        operation = "LIST_DIR"
        try:
            target = self.resolve_path(operation, path)
            if not target.exists():
                raise OperationNotFoundError(operation, f"Directory not found: {path}")
            if not target.is_dir():
                raise OperationNotFoundError(operation, f"Not a directory: {path}")
            files = await self._collect(operation, target, filter)
        except FileOperationError as e:
            log.warning("Listing failed", operation=operation, path=path, error=e.message)
            return OperationResult.failure(e, directory=path, filter=filter)

        log.info("Directory listed", path=path, filter=filter, count=len(files))
        return OperationResult(
            operation=operation,
            directory=path,
            files=files,
            filter=filter,
            recursive=filter is not None,
        )

    async def again(self, reason: str | None = None) -> OperationResult:
        """Signal that the model wants another turn; no I/O."""
        reason = reason or "No reason given"
        log.info("Follow-up requested", reason=reason)
        return OperationResult(
            operation="AGAIN",
            reason=reason,
            requires_follow_up=True,
        )

    # Listing helpers

    async def _collect(self, operation: str, base: Path, filter: str | None) -> list[str]:
        try:
            if filter is None:
                files = [self._relative(entry) for entry in base.iterdir() if entry.is_file()]
            else:
                loop = asyncio.get_running_loop()
                files = await loop.run_in_executor(None, lambda: self._walk_matching(base, filter))
        except OSError as e:
            raise OperationIOError(operation, f"Listing failed: {e}") from e
        return sorted(files)

    def _walk_matching(self, base: Path, pattern: str) -> list[str]:
        """Walk `base` recursively, matching root-relative paths against `pattern`."""
        matched: list[str] = []
        for dirpath, _dirnames, filenames in os.walk(base):
            for filename in filenames:
                relative = self._relative(Path(dirpath) / filename)
                if fnmatch.fnmatchcase(relative, pattern):
                    matched.append(relative)
        return matched
