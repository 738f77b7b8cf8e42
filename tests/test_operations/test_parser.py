import dataclasses

import pytest

from codegenius.operations.parser import Command, has_commands, parse_attributes, parse_commands


def test_parse_create_file_command():
    commands = parse_commands('<create_file path="a.py">print(1)</create_file>')

    assert len(commands) == 1
    command = commands[0]
    assert command.name == "CREATE_FILE"
    assert dict(command.attributes) == {"path": "a.py"}
    assert command.body == "print(1)"
    assert command.self_closing is False


def test_tag_names_are_case_insensitive_and_normalized():
    commands = parse_commands('<Read_File path="x.txt" /> and <DELETE_FILE path="y.txt"/>')

    assert [c.name for c in commands] == ["READ_FILE", "DELETE_FILE"]
    assert all(c.self_closing for c in commands)
    assert all(c.body is None for c in commands)


def test_commands_are_returned_in_textual_order():
    text = (
        "First I look around.\n"
        '<list_files filter="*.py" />\n'
        '<create_file path="b.txt">two</create_file>\n'
        '<again reason="check output"/>'
    )

    commands = parse_commands(text)

    assert [c.name for c in commands] == ["LIST_FILES", "CREATE_FILE", "AGAIN"]
    assert commands[0].attributes["filter"] == "*.py"
    assert commands[2].attributes["reason"] == "check output"


def test_body_is_kept_verbatim():
    body = '\n# title: "quoted" \n\tindented: yes\n'
    commands = parse_commands(f'<update_file path="notes.md">{body}</update_file>')

    assert commands[0].body == body


def test_single_quoted_attributes_and_lowercased_names():
    assert parse_attributes("PATH='src/app.py' Filter=\"*.py\"") == {
        "path": "src/app.py",
        "filter": "*.py",
    }


def test_omitted_filter_differs_from_empty_filter():
    omitted, empty = parse_commands('<list_files /><list_files filter="" />')

    assert "filter" not in omitted.attributes
    assert empty.attributes["filter"] == ""


def test_unterminated_tag_yields_no_command():
    text = '<create_file path="a.py">print(1)'

    assert parse_commands(text) == []
    assert has_commands(text) is True


def test_unterminated_tag_does_not_hide_later_self_closing_tag():
    commands = parse_commands('<create_file path="a.py">half <read_file path="b.py" />')

    assert [c.name for c in commands] == ["READ_FILE"]


def test_tags_inside_a_body_are_not_separate_commands():
    text = '<create_file path="doc.md">use <read_file path="x" /> first</create_file>'

    commands = parse_commands(text)

    assert len(commands) == 1
    assert commands[0].body == 'use <read_file path="x" /> first'


def test_unknown_tags_are_ignored():
    assert parse_commands('<rename_file from="a" to="b" /><div>hi</div>') == []
    assert has_commands("<div>plain html</div>") is False


def test_empty_and_non_string_input():
    assert parse_commands("") == []
    assert parse_commands(None) == []
    assert has_commands("") is False


def test_closing_tag_may_contain_whitespace():
    commands = parse_commands('<create_file path="a">x</create_file >')

    assert commands[0].body == "x"


def test_command_is_immutable():
    command = parse_commands('<read_file path="a.txt" />')[0]

    with pytest.raises(dataclasses.FrozenInstanceError):
        command.name = "DELETE_FILE"
    with pytest.raises(TypeError):
        command.attributes["path"] = "b.txt"


def test_command_key_uses_name_and_path():
    assert Command(name="create_file", attributes={"path": "a"}).key() == ("CREATE_FILE", "a")
    assert Command(name="again").key() == ("AGAIN", None)


def test_partial_scan_stops_at_unterminated_tag():
    text = '<list_files /><create_file path="a">use <read_file path="x"/>'

    assert [c.name for c in parse_commands(text, partial=True)] == ["LIST_FILES"]
    assert [c.name for c in parse_commands(text)] == ["LIST_FILES", "READ_FILE"]
