import pytest

from codegenius.llm import Message
from codegenius.session import Session, SessionManager


@pytest.mark.asyncio
async def test_session_manager_uses_db_path_override(tmp_path):
    db_path = tmp_path / "nested" / "custom-sessions.db"
    manager = SessionManager(db_path=db_path)
    try:
        await manager.create_session(name="alpha")
        assert db_path.exists()
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_context_round_trip(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        created = await manager.create_session(name="alpha", metadata={"workspace": "/tmp/ws"})
        created.set_context([
            Message(role="system", content="not stored"),
            Message(role="user", content="hello"),
            Message(role="assistant", content="hi"),
        ])
        await manager.save_session(created)

        loaded = await manager.load_session(created.id)
        assert loaded is not None
        assert loaded.name == "alpha"
        assert loaded.metadata["workspace"] == "/tmp/ws"
        assert [(m.role, m.content) for m in loaded.context_messages()] == [
            ("user", "hello"),
            ("assistant", "hi"),
        ]
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_get_or_create_reuses_named_session(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        first = await manager.get_or_create_session("project")
        second = await manager.get_or_create_session("project")
        other = await manager.get_or_create_session("other")

        assert first.id == second.id
        assert other.id != first.id
    finally:
        await manager.close()


@pytest.mark.asyncio
async def test_list_and_delete_sessions(tmp_path):
    manager = SessionManager(db_path=tmp_path / "sessions.db")
    try:
        first = await manager.create_session(name="one")
        second = await manager.create_session(name="two")
        await manager.save_session(first)

        listed = await manager.list_sessions()
        assert [s.id for s in listed] == [first.id, second.id]

        assert await manager.delete_session(second.id) is True
        assert await manager.delete_session(second.id) is False
        assert await manager.load_session(second.id) is None
    finally:
        await manager.close()


def test_session_dict_round_trip():
    session = Session(id="s1", name="demo", messages=[{"role": "user", "content": "x"}])

    restored = Session.from_dict(session.to_dict())

    assert restored == session
