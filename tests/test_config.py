"""Tests for environment-driven configuration."""

from pathlib import Path

from prestudio.config import Config


def test_gemini_key_takes_precedence(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "gemini")
    monkeypatch.setenv("GOOGLE_API_KEY", "google")
    assert Config().gemini_api_key == "gemini"


def test_google_key_fallback(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "google")
    assert Config().gemini_api_key == "google"


def test_defaults(monkeypatch):
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "PRESTUDIO_VOICE", "PRESTUDIO_NOTIFY_SECONDS", "PRESTUDIO_WORKSPACE"):
        monkeypatch.delenv(name, raising=False)
    cfg = Config()
    assert cfg.gemini_api_key == ""
    assert cfg.default_voice == "Sadachbia"
    assert cfg.notification_seconds == 5.0
    assert cfg.workspace == Path(".")


def test_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("PRESTUDIO_VOICE", "Kore")
    monkeypatch.setenv("PRESTUDIO_NOTIFY_SECONDS", "1.5")
    monkeypatch.setenv("PRESTUDIO_WORKSPACE", str(tmp_path))
    cfg = Config()
    assert cfg.default_voice == "Kore"
    assert cfg.notification_seconds == 1.5
    assert cfg.workspace == tmp_path
