from __future__ import annotations

import pytest

from zenfocus.cli import main


@pytest.fixture(autouse=True)
def guest_env(tmp_path, monkeypatch):
    monkeypatch.setenv("ZENFOCUS_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("ZENFOCUS_BASE_URL", "")


def test_tasks_persist_between_runs(capsys):
    assert main(["tasks", "add", "Read", "chapter", "3"]) == 0
    capsys.readouterr()

    assert main(["tasks"]) == 0
    out = capsys.readouterr().out
    assert "[ ]" in out
    assert "Read chapter 3" in out


def test_settings_update_and_validation(capsys):
    assert main(["settings", "--focus", "50"]) == 0
    assert "focusDuration: 50" in capsys.readouterr().out

    assert main(["settings", "--short", "0"]) == 2
    assert "Invalid settings" in capsys.readouterr().out


def test_theme_and_status(capsys):
    assert main(["theme", "vintage"]) == 0
    assert main(["status"]) == 0
    out = capsys.readouterr().out
    assert "guest" in out
    assert "Theme:    vintage" in out


def test_login_without_server_fails_cleanly(capsys):
    assert main(["login", "--email", "alice@example.com", "--password", "secret-pass"]) == 1
    assert "No server configured" in capsys.readouterr().out


def test_unknown_task(capsys):
    assert main(["tasks", "done", "missing"]) == 1
