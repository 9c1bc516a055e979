"""Logging setup tests."""

from __future__ import annotations

import logging

import pytest

from mpm_engine import setup_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("mpm_engine")
    yield logger
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def test_setup_is_idempotent(package_logger):
    setup_logging()
    setup_logging(logging.DEBUG)
    assert len(package_logger.handlers) == 1
    assert package_logger.level == logging.DEBUG


def test_log_file(package_logger, tmp_path):
    log_file = tmp_path / "run.log"
    setup_logging(logging.INFO, str(log_file))
    assert len(package_logger.handlers) == 2
    logging.getLogger("mpm_engine.physics_world").info("child message")
    text = log_file.read_text()
    assert f"Simulation logging at INFO, run log {log_file}" in text
    assert "mpm_engine.physics_world - INFO - child message" in text
