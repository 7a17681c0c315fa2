import logging

from memogen.core.logging import APP_LOGGERS
from memogen.core.logging import build_logging_config
from memogen.core.logging import setup_logging


def test_config_applies_level_to_app_loggers_only():
    config = build_logging_config("warning")
    for name in APP_LOGGERS:
        assert config["loggers"][name]["level"] == "WARNING"
        assert config["loggers"][name]["handlers"] == ["memogen"]
    assert config["handlers"]["memogen"]["level"] == "WARNING"
    assert config["loggers"]["uvicorn.access"]["level"] == "INFO"


def test_config_defaults_to_settings(monkeypatch):
    monkeypatch.setattr("memogen.core.logging.settings.log_level", "info")
    assert build_logging_config()["loggers"]["memogen.jobs"]["level"] == "INFO"


def test_setup_logging_configures_app_loggers():
    setup_logging("ERROR")
    try:
        assert logging.getLogger("memogen.jobs").level == logging.ERROR
        assert logging.getLogger("memogen.jobs").propagate is False
    finally:
        setup_logging()
