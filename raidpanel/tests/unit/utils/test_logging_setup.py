from __future__ import annotations

import logging

import pytest

from raidpanel.utils.logging import (
    apply_gui_preferences,
    configure_root,
    env_level,
    env_requests_debug,
)


@pytest.fixture(autouse=True)
def _restore_levels(monkeypatch):
    monkeypatch.delenv("RAIDPANEL_LOG_LEVEL", raising=False)
    monkeypatch.delenv("RAIDPANEL_DEBUG", raising=False)
    root = logging.getLogger()
    saved = root.level
    saved_chatty = logging.getLogger("urllib3").level
    yield
    root.setLevel(saved)
    logging.getLogger("urllib3").setLevel(saved_chatty)


def test_env_level_prefers_explicit_level(monkeypatch) -> None:
    assert env_level() is None

    monkeypatch.setenv("RAIDPANEL_DEBUG", "1")
    assert env_level() == logging.DEBUG

    monkeypatch.setenv("RAIDPANEL_LOG_LEVEL", "warning")
    assert env_level() == logging.WARNING

    monkeypatch.setenv("RAIDPANEL_LOG_LEVEL", "15")
    assert env_level() == 15


def test_unknown_level_name_is_ignored(monkeypatch) -> None:
    monkeypatch.setenv("RAIDPANEL_LOG_LEVEL", "chatty")

    assert env_level() is None
    assert not env_requests_debug()


def test_configure_root_uses_default_or_environment(monkeypatch) -> None:
    assert configure_root("WARNING") == logging.WARNING
    assert logging.getLogger().level == logging.WARNING

    monkeypatch.setenv("RAIDPANEL_DEBUG", "true")
    assert configure_root() == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.INFO


def test_gui_toggle_is_overridden_by_environment(monkeypatch) -> None:
    assert apply_gui_preferences(True) == logging.DEBUG
    assert apply_gui_preferences(False) == logging.INFO

    monkeypatch.setenv("RAIDPANEL_LOG_LEVEL", "ERROR")
    assert apply_gui_preferences(True) == logging.ERROR
    assert logging.getLogger().level == logging.ERROR
