import pytest

from codegenius.agent import FileOperationTurnHandler
from codegenius.cancellation import CancellationToken
from codegenius.exceptions import RunCancelledError
from codegenius.operations import FileOperationExecutor


def _handler(tmp_path) -> FileOperationTurnHandler:
    return FileOperationTurnHandler(FileOperationExecutor(tmp_path / "ws"))


def test_incremental_scan_queues_each_operation_once(tmp_path):
    handler = _handler(tmp_path)
    notices: list[str] = []

    for fragment in ['<create_file path="a.txt">', "x", "</create_file>", " then ", '<read_file path="a.txt"/>', "."]:
        handler.on_token(fragment, notices.append)

    assert [(c.name, c.path) for c in handler.pending] == [("CREATE_FILE", "a.txt"), ("READ_FILE", "a.txt")]
    assert notices == ["Queued CREATE_FILE -> a.txt", "Queued READ_FILE -> a.txt"]


def test_reset_clears_pending(tmp_path):
    handler = _handler(tmp_path)
    handler.on_token('<delete_file path="a"/>', lambda _: None)

    handler.reset()

    assert handler.pending == []
    handler.on_token('<delete_file path="a"/>', lambda _: None)
    assert len(handler.pending) == 1


@pytest.mark.asyncio
async def test_turn_without_commands_has_no_follow_up(tmp_path):
    handler = _handler(tmp_path)

    decision = await handler.on_turn_complete("Just an answer.", CancellationToken(), lambda _: None)

    assert decision.should_continue is False
    assert decision.results == []


@pytest.mark.asyncio
async def test_duplicate_commands_in_one_reply_are_all_executed(tmp_path):
    handler = _handler(tmp_path)
    text = '<create_file path="a.txt">1</create_file><create_file path="a.txt">2</create_file>'

    decision = await handler.on_turn_complete(text, CancellationToken(), lambda _: None)

    assert len(decision.results) == 2
    assert (tmp_path / "ws" / "a.txt").read_text(encoding="utf-8") == "2"


@pytest.mark.asyncio
async def test_failed_operation_still_produces_follow_up(tmp_path):
    handler = _handler(tmp_path)

    decision = await handler.on_turn_complete('<read_file path="nope.txt"/>', CancellationToken(), lambda _: None)

    assert decision.should_continue is True
    assert decision.results[0].success is False
    assert '"error_type": "not_found"' in decision.follow_up


@pytest.mark.asyncio
async def test_cancelled_run_executes_nothing(tmp_path):
    handler = _handler(tmp_path)
    token = CancellationToken()
    token.cancel("stop")

    with pytest.raises(RunCancelledError):
        await handler.on_turn_complete('<create_file path="a.txt">x</create_file>', token, lambda _: None)

    assert not (tmp_path / "ws" / "a.txt").exists()


def test_tag_inside_unfinished_body_is_not_queued(tmp_path):
    handler = _handler(tmp_path)
    notices: list[str] = []

    for fragment in ['<create_file path="a.md">use ', '<read_file path="x"/>', " first"]:
        handler.on_token(fragment, notices.append)
    assert handler.pending == []

    handler.on_token("</create_file>", notices.append)

    assert [(c.name, c.path) for c in handler.pending] == [("CREATE_FILE", "a.md")]
    assert notices == ["Queued CREATE_FILE -> a.md"]
