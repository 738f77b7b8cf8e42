from pathlib import Path

import pytest

from codegenius.instructions import (
    FILE_OPERATIONS_TEMPLATE,
    InstructionLoader,
    build_system_prompt,
    file_operation_prompt,
)


def test_packaged_protocol_prompt_lists_every_tag(tmp_path: Path):
    prompt = file_operation_prompt(InstructionLoader(personal_dir=tmp_path))

    for tag in ("create_file", "read_file", "update_file", "delete_file", "list_files", "list_dir", "again"):
        assert f"<{tag}" in prompt


def test_personal_override_wins(tmp_path: Path):
    personal = tmp_path / "personal"
    personal.mkdir()
    (personal / FILE_OPERATIONS_TEMPLATE).write_text("custom protocol\n", encoding="utf-8")
    loader = InstructionLoader(personal_dir=personal)

    assert loader.is_overridden(FILE_OPERATIONS_TEMPLATE) is True
    assert loader.load(FILE_OPERATIONS_TEMPLATE) == "custom protocol"


def test_missing_template_raises(tmp_path: Path):
    loader = InstructionLoader(base_dir=tmp_path / "empty", personal_dir=tmp_path / "none")

    with pytest.raises(FileNotFoundError):
        loader.load("nope.md")


def test_base_dir_from_environment(monkeypatch, tmp_path: Path):
    base = tmp_path / "templates"
    base.mkdir()
    (base / FILE_OPERATIONS_TEMPLATE).write_text("env protocol", encoding="utf-8")
    monkeypatch.setenv("CODEGENIUS_INSTRUCTIONS_DIR", str(base))

    loader = InstructionLoader(personal_dir=tmp_path / "none")

    assert loader.is_overridden(FILE_OPERATIONS_TEMPLATE) is False
    assert loader.load(FILE_OPERATIONS_TEMPLATE) == "env protocol"


def test_build_system_prompt(tmp_path: Path):
    personal = tmp_path / "personal"
    personal.mkdir()
    (personal / FILE_OPERATIONS_TEMPLATE).write_text("PROTOCOL", encoding="utf-8")
    loader = InstructionLoader(personal_dir=personal)

    assert build_system_prompt("  Be brief.  ", loader) == "Be brief.\n\nPROTOCOL"
    assert build_system_prompt("", loader) == "PROTOCOL"
