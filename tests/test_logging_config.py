"""Tests for logging configuration."""
import logging

import pytest
from vat_invoice.logging_config import (
    LOG_FILENAME,
    PACKAGE_LOGGER,
    TqdmConsoleHandler,
    get_logging_config,
    setup_logging,
)


@pytest.fixture
def package_logger():
    logger = logging.getLogger(PACKAGE_LOGGER)
    yield logger
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)


def test_config_creates_log_folder(tmp_path):
    logs = tmp_path / "logs"
    config = get_logging_config(logs)

    assert logs.is_dir()
    assert config["handlers"]["file"]["filename"] == str(logs / LOG_FILENAME)
    assert config["loggers"][PACKAGE_LOGGER]["propagate"] is False
    assert "root" not in config


@pytest.mark.parametrize("verbose, level", [(False, "WARNING"), (True, "DEBUG")])
def test_console_level_follows_verbose(tmp_path, verbose, level):
    config = get_logging_config(tmp_path, verbose=verbose)
    assert config["handlers"]["console"]["level"] == level
    assert config["handlers"]["file"]["level"] == "DEBUG"


def test_setup_logging_writes_package_logs_to_file(tmp_path, package_logger):
    log_path = setup_logging(tmp_path, log_filename="test.log")
    logging.getLogger("vat_invoice.core.batch").debug("[BATCH] debug line")
    for handler in package_logger.handlers:
        handler.flush()

    assert log_path == tmp_path / "test.log"
    assert "[BATCH] debug line" in log_path.read_text(encoding="utf-8")


def test_setup_logging_is_repeatable(tmp_path, package_logger):
    setup_logging(tmp_path)
    setup_logging(tmp_path)
    assert len(package_logger.handlers) == 2


def test_setup_logging_leaves_root_alone(tmp_path, package_logger):
    before = list(logging.getLogger().handlers)
    setup_logging(tmp_path)
    assert logging.getLogger().handlers == before


def test_console_handler_prints_through_tqdm(tmp_path, package_logger, capsys):
    setup_logging(tmp_path)
    logging.getLogger("vat_invoice.cli").warning("[INGEST] a.txt rejected")

    assert "WARNING [INGEST] a.txt rejected" in capsys.readouterr().err
    assert any(isinstance(h, TqdmConsoleHandler) for h in package_logger.handlers)
