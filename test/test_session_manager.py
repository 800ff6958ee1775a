import pytest

from backend.session_manager import SessionManager
from conftest import FakePage
from replay_use import config
from replay_use.exceptions import SessionNotFoundError


async def test_register_and_get_touches_session():
    manager = SessionManager()
    session = manager.register(FakePage(), session_id="s1")
    session.last_activity = 0

    assert manager.get("s1") is session
    assert session.last_activity > 0
    assert manager.get_stats()["sessions"][0]["url"] == "https://x.test/"


async def test_get_unknown_session_raises():
    with pytest.raises(SessionNotFoundError) as exc_info:
        SessionManager().get("missing")
    assert str(exc_info.value) == "Session not found: missing"


async def test_close_session_runs_listeners_and_closer():
    manager = SessionManager()
    events = []

    async def listener(session_id):
        events.append(("listener", session_id))

    async def closer():
        events.append(("closer", None))

    manager.add_close_listener(listener)
    manager.register(FakePage(), session_id="s1", closer=closer)

    assert await manager.close_session("s1") is True
    assert events == [("listener", "s1"), ("closer", None)]
    assert await manager.close_session("s1") is False


async def test_cleanup_expires_idle_sessions():
    manager = SessionManager(timeout_minutes=1)
    idle = manager.register(FakePage(), session_id="idle")
    fresh = manager.register(FakePage(), session_id="fresh")
    idle.last_activity = 1000
    fresh.last_activity = 1100

    assert await manager.cleanup_expired(now=1100) == ["idle"]
    assert list(manager.sessions) == ["fresh"]


async def test_create_session_requires_an_endpoint(monkeypatch):
    monkeypatch.setattr(config, "BROWSER_WS_ENDPOINT", None)
    with pytest.raises(ValueError):
        await SessionManager().create_session()


def test_validate_environment_reports_problems(monkeypatch):
    monkeypatch.delenv("BROWSER_WS_ENDPOINT", raising=False)
    monkeypatch.setenv("REPLAY_USE_PORT", "eighty")
    with pytest.raises(ValueError) as exc_info:
        config.validate_environment(require_browser_endpoint=True)
    assert "BROWSER_WS_ENDPOINT" in str(exc_info.value)
    assert "REPLAY_USE_PORT" in str(exc_info.value)

    monkeypatch.setenv("REPLAY_USE_PORT", "8000")
    monkeypatch.setenv("HEADLESS", "true")
    config.validate_environment()
