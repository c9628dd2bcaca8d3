import io
import logging
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from luabridge.logging import LOG_LEVEL_ENV, configure_logging, default_level, get_logger


def test_default_level_reads_environment(monkeypatch):
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    assert default_level() == "warning"
    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    assert default_level() == "debug"


def test_get_logger_defaults_to_package_logger():
    assert get_logger().name == "luabridge"
    assert get_logger("luabridge.state").name == "luabridge.state"


def test_configure_logging_attaches_a_single_handler(monkeypatch):
    root = logging.getLogger()
    previous = root.level
    monkeypatch.setattr(root, "handlers", [])
    stream = io.StringIO()
    try:
        configure_logging(level="debug", stream=stream)
        configure_logging(level="debug", stream=io.StringIO())
        assert len(root.handlers) == 1
        get_logger("luabridge.test").debug("hello %s", "there")
    finally:
        root.setLevel(previous)
    assert stream.getvalue() == "DEBUG luabridge.test hello there\n"


def test_unknown_level_name_falls_back_to_info(monkeypatch):
    root = logging.getLogger()
    previous = root.level
    monkeypatch.setattr(root, "handlers", [])
    try:
        configure_logging(level="chatty", stream=io.StringIO())
        assert root.level == logging.INFO
    finally:
        root.setLevel(previous)
