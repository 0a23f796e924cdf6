import logging

from sheetpulse.config import Settings, setup_logging


def test_defaults():
    settings = Settings()
    assert settings.SAMPLE_SIZE == 20
    assert settings.NUMERIC_RATIO == 0.7
    assert settings.ANOMALY_Z_THRESHOLD == 2.0
    assert settings.MAX_UPLOAD_BYTES == 50 * 1024 * 1024


def test_environment_override(monkeypatch):
    monkeypatch.setenv("SHEETPULSE_SAMPLE_SIZE", "5")
    monkeypatch.setenv("SHEETPULSE_CORRELATION_THRESHOLD", "0.8")
    settings = Settings()
    assert settings.SAMPLE_SIZE == 5
    assert settings.CORRELATION_THRESHOLD == 0.8


def test_setup_logging_quiets_http_stack():
    setup_logging("debug")
    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger("requests").level == logging.WARNING
