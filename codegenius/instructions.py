"""Load LLM instruction templates from disk.

Supports a two-layer override system:
  1. Personal overrides in ``~/.codegenius/instructions/`` (highest priority)
  2. Package defaults in ``codegenius/templates/``
"""

from __future__ import annotations

import os
from pathlib import Path


_PERSONAL_DIR = Path("~/.codegenius/instructions").expanduser()

FILE_OPERATIONS_TEMPLATE = "file_operations.md"


class InstructionLoader:
    """Read instruction templates with personal-override support."""

    def __init__(
        self,
        base_dir: Path | str | None = None,
        personal_dir: Path | str | None = None,
    ):
        self.base_dir = self._resolve_base_dir(base_dir)
        self.personal_dir: Path = (
            Path(personal_dir).expanduser().resolve()
            if personal_dir is not None
            else _PERSONAL_DIR.resolve()
        )
        self._cache: dict[str, str] = {}

    @staticmethod
    def _resolve_base_dir(base_dir: Path | str | None) -> Path:
        if base_dir is not None:
            return Path(base_dir).expanduser().resolve()
        env_dir = os.getenv("CODEGENIUS_INSTRUCTIONS_DIR")
        if env_dir:
            return Path(env_dir).expanduser().resolve()
        return (Path(__file__).resolve().parent / "templates").resolve()

    def _path(self, name: str) -> Path:
        """Return the effective file path, preferring the personal override."""
        personal = self.personal_dir / name
        if personal.is_file():
            return personal
        return self.base_dir / name

    def is_overridden(self, name: str) -> bool:
        """Return ``True`` if a personal override exists for *name*."""
        return (self.personal_dir / name).is_file()

    def load(self, name: str) -> str:
        """Load instruction template content by filename."""
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self._path(name)
        if not path.is_file():
            raise FileNotFoundError(
                f"Instruction template not found: {path}. "
                "Add the file under the templates folder."
            )
        content = path.read_text(encoding="utf-8").strip()
        self._cache[name] = content
        return content


def file_operation_prompt(loader: InstructionLoader | None = None) -> str:
    """Protocol instructions appended to the agent's system prompt."""
    return (loader or InstructionLoader()).load(FILE_OPERATIONS_TEMPLATE)


def build_system_prompt(base_prompt: str, loader: InstructionLoader | None = None) -> str:
    """Combine a user-facing persona prompt with the file-operation protocol."""
    base = (base_prompt or "").strip()
    protocol = file_operation_prompt(loader)
    if not base:
        return protocol
    return f"{base}\n\n{protocol}"
