"""
Unit Tests for Logging Setup

These tests verify that:
- Importing the package leaves the application's root handlers alone
- The "unifex" logger carries a NullHandler and module loggers hang below it
- setup_logging() is the only place that configures output

Run with:
    pytest tests/unit/test_logging.py -v
"""

import importlib
import logging

import core.logging as unifex_logging
from core.config import settings


class TestImport:
    """Tests for what happens when the package is imported"""

    def test_root_handlers_are_untouched(self):
        root = logging.getLogger()
        app_handler = logging.StreamHandler()
        root.addHandler(app_handler)
        try:
            before = list(root.handlers)
            importlib.reload(unifex_logging)
            assert root.handlers == before
        finally:
            root.removeHandler(app_handler)

    def test_library_logger_has_null_handler(self):
        library = logging.getLogger("unifex")
        assert any(isinstance(h, logging.NullHandler) for h in library.handlers)

    def test_module_loggers_are_children(self):
        assert unifex_logging.get_logger("core.http").name == "unifex.core.http"
        assert unifex_logging.get_logger("core.http").parent.name == "unifex"


class TestSetupLogging:
    """Tests for setup_logging() and set_log_level()"""

    def test_level_defaults_to_setting(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
        monkeypatch.setattr(settings, "log_level", "DEBUG")
        library = logging.getLogger("unifex")
        previous = library.level
        try:
            returned = unifex_logging.setup_logging(include_timestamp=False)

            assert returned is library
            assert library.level == logging.DEBUG
            assert calls[0]["level"] == logging.DEBUG
            assert calls[0]["format"] == "[%(levelname)s] %(name)s: %(message)s"
        finally:
            library.setLevel(previous)

    def test_set_log_level_leaves_root_alone(self):
        root = logging.getLogger()
        library = logging.getLogger("unifex")
        root_level, previous = root.level, library.level
        try:
            unifex_logging.set_log_level("error")

            assert library.level == logging.ERROR
            assert root.level == root_level
        finally:
            library.setLevel(previous)
