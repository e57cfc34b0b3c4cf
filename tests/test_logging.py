import logging

import pytest

from ordbetareg.data import normalize
from ordbetareg.logging import add_file_handler, reset_logger, setup_logger


@pytest.fixture
def fresh_logger():
    reset_logger()
    yield logging.getLogger("ordbetareg")
    reset_logger()
    setup_logger()


def test_setup_logger(fresh_logger):
    setup_logger()

    assert fresh_logger.level == logging.INFO
    assert not fresh_logger.propagate
    assert len(fresh_logger.handlers) == 1


def test_setup_logger_twice(fresh_logger):
    setup_logger()
    setup_logger()
    assert len(fresh_logger.handlers) == 1


def test_reset_logger(fresh_logger):
    setup_logger()
    reset_logger()

    assert fresh_logger.level == logging.NOTSET
    assert fresh_logger.propagate
    assert not fresh_logger.handlers


def test_add_file_handler(fresh_logger, tmp_path):
    path = tmp_path / "logs" / "data.log"

    setup_logger()
    add_file_handler(path, level="info", logger="ordbetareg.data")

    normalize([1.0, 2.0, 3.0])

    for handler in logging.getLogger("ordbetareg.data").handlers:
        handler.close()

    assert path.exists()
    assert "INFO - ordbetareg.data" in path.read_text()

    logger = logging.getLogger("ordbetareg.data")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def test_add_file_handler_relative_path(fresh_logger):
    with pytest.raises(ValueError, match="absolute"):
        add_file_handler("data.log", level="info")


def test_setup_logger_level(fresh_logger):
    setup_logger()
    setup_logger("warning")

    assert fresh_logger.level == logging.WARNING
    assert len(fresh_logger.handlers) == 1


def test_unknown_level(fresh_logger, tmp_path):
    with pytest.raises(ValueError, match="Unknown log level"):
        setup_logger("verbose")

    with pytest.raises(ValueError, match="Unknown log level"):
        add_file_handler(tmp_path / "data.log", level="loud")

    assert not (tmp_path / "data.log").exists()
