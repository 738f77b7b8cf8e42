import io

from rich.console import Console

from codegenius.cli import SPECIAL_COMMANDS, TerminalUI


def _ui(show_system_messages: bool = True) -> tuple[TerminalUI, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=False, width=120)
    return TerminalUI(console=console, show_system_messages=show_system_messages), buffer


def test_streamed_fragments_share_one_line():
    ui, buffer = _ui()

    ui.print_streaming("Hel")
    ui.print_streaming("lo [bold]")
    ui.end_stream()

    assert buffer.getvalue() == "Hello [bold]\n"


def test_system_notice_closes_open_stream_line():
    ui, buffer = _ui()

    ui.print_streaming("partial")
    ui.print_system("Found 1 file operation(s)")

    assert buffer.getvalue().splitlines() == ["partial", "· Found 1 file operation(s)"]


def test_system_notices_can_be_hidden():
    ui, buffer = _ui(show_system_messages=False)

    ui.print_system("Queued READ_FILE -> a.txt")

    assert buffer.getvalue() == ""


def test_help_lists_special_commands():
    ui, buffer = _ui()

    ui.print_help()

    out = buffer.getvalue()
    for command in SPECIAL_COMMANDS:
        assert command in out


def test_error_output():
    ui, buffer = _ui()

    ui.print_error("OpenAI API error 401")

    assert "Error: OpenAI API error 401" in buffer.getvalue()


def test_notices_are_not_parsed_as_markup():
    ui, buffer = _ui()

    ui.print_system("Queued CREATE_FILE -> data[bold].txt")

    assert "data[bold].txt" in buffer.getvalue()
