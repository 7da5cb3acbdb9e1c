"""Tests for structured logging configuration."""
import io
import json
import logging

import pytest
import structlog

from tcgprice.core import logging as app_logging
from tcgprice.core.logging import resolve_log_level, setup_logging


@pytest.fixture
def log_settings(monkeypatch):
    """Production-like logging settings; tests override single fields."""
    monkeypatch.setattr(app_logging.settings, "api_debug", False)
    monkeypatch.setattr(app_logging.settings, "log_level", "")
    monkeypatch.setattr(app_logging.settings, "log_format", "")
    return app_logging.settings


def test_json_lines_on_given_stream(log_settings):
    stream = io.StringIO()
    setup_logging(stream=stream, cache_loggers=False)

    structlog.get_logger().info("Pricing resolved", best_source="tcgdex")

    line = json.loads(stream.getvalue().strip())
    assert line["event"] == "Pricing resolved"
    assert line["level"] == "info"
    assert line["best_source"] == "tcgdex"
    assert "timestamp" in line


@pytest.mark.parametrize(
    "debug,level,expected",
    [
        (False, "", logging.INFO),
        (True, "", logging.DEBUG),
        (True, "warning", logging.WARNING),
        (False, "ERROR", logging.ERROR),
        (False, "loud", logging.INFO),
    ],
)
def test_resolve_log_level(log_settings, debug, level, expected):
    log_settings.api_debug = debug
    log_settings.log_level = level

    assert resolve_log_level() == expected


def test_level_filters_lines(log_settings):
    log_settings.log_level = "WARNING"
    stream = io.StringIO()
    setup_logging(stream=stream, cache_loggers=False)

    logger = structlog.get_logger()
    logger.info("Catalog search completed")
    logger.warning("Source rate limited, cooling down", source="justtcg")

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert [line["event"] for line in lines] == ["Source rate limited, cooling down"]


def test_console_format_without_colors_off_terminal(log_settings):
    log_settings.log_format = "console"
    stream = io.StringIO()
    setup_logging(stream=stream, cache_loggers=False)

    structlog.get_logger().info("Starting TCG Price Aggregator API")

    output = stream.getvalue()
    assert "Starting TCG Price Aggregator API" in output
    assert "\x1b[" not in output


def test_uncached_loggers_follow_a_new_stream(log_settings):
    logger = structlog.get_logger()
    first, second = io.StringIO(), io.StringIO()

    setup_logging(stream=first, cache_loggers=False)
    logger.info("first")
    first.close()
    setup_logging(stream=second, cache_loggers=False)
    logger.info("second")

    assert json.loads(second.getvalue())["event"] == "second"
