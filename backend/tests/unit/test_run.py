"""uvicorn launcher"""
import pytest

import run
from ticketdesk.config.settings import settings


@pytest.fixture
def launched(monkeypatch):
    calls = {}

    def fake_run(app, **kwargs):
        calls["app"] = app
        calls.update(kwargs)

    monkeypatch.setattr(run.uvicorn, "run", fake_run)
    return calls


def test_defaults_come_from_settings(launched, monkeypatch):
    monkeypatch.setattr(run.settings, "api_port", 8123)
    monkeypatch.setattr("sys.argv", ["run.py"])

    run.main()

    assert launched["app"] == "ticketdesk.main:app"
    assert launched["host"] == settings.api_host
    assert launched["port"] == 8123
    assert launched["log_level"] == settings.log_level.lower()


def test_reload_forces_single_worker(launched, monkeypatch):
    monkeypatch.setattr("sys.argv", ["run.py", "--reload", "--workers", "4", "--port", "9000"])

    run.main()

    assert launched["reload"] is True
    assert launched["workers"] == 1
    assert launched["port"] == 9000
