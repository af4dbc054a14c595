import logging

import pytest

import cp_scoreboard.logging_setup as app_logging


@pytest.fixture(autouse=True)
def _restore_logging_state():
    root = logging.getLogger()
    original_root_level = root.level
    original_handlers = list(root.handlers)
    original_library_levels = {name: logging.getLogger(name).level for name in app_logging.NOISY_LIBRARY_LOGGERS}
    yield
    for handler in list(root.handlers):
        if handler not in original_handlers:
            root.removeHandler(handler)
            handler.close()
    root.handlers.clear()
    for handler in original_handlers:
        root.addHandler(handler)
    root.setLevel(original_root_level)
    for name, level in original_library_levels.items():
        logging.getLogger(name).setLevel(level)


def test_configure_logging_uses_log_level_env(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    logging.getLogger("aiohttp.access").setLevel(logging.DEBUG)

    logger = app_logging.configure_logging()

    assert logger is logging.getLogger()
    assert logger.level == logging.DEBUG
    assert logging.getLogger("aiohttp.access").level == logging.WARNING


def test_configure_logging_defaults_to_info(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    logger = app_logging.configure_logging()

    assert logger.level == logging.INFO


def test_unknown_log_level_falls_back_to_info(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "LOUD")

    assert app_logging.configure_logging().level == logging.INFO


def test_configure_logging_does_not_stack_handlers(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    root = logging.getLogger()

    app_logging.configure_logging()
    count = len(root.handlers)
    app_logging.configure_logging()

    assert count >= 1
    assert len(root.handlers) == count
