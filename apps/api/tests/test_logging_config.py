import logging

import pytest

from loglens.logging_config import configure_logging


@pytest.fixture
def httpx_logger():
    logger = logging.getLogger("httpx")
    previous = logger.level
    yield logger
    logger.setLevel(previous)


def test_httpx_request_logs_stay_quiet_at_debug(httpx_logger: logging.Logger) -> None:
    configure_logging("debug")

    assert httpx_logger.level == logging.WARNING


def test_httpx_follows_stricter_levels(httpx_logger: logging.Logger) -> None:
    configure_logging("ERROR")

    assert httpx_logger.level == logging.ERROR


def test_unknown_level_falls_back_to_info(httpx_logger: logging.Logger) -> None:
    configure_logging("chatty")

    assert httpx_logger.level == logging.WARNING
