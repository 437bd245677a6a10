"""Shared fixtures for the post-setup tests."""
import logging

import pytest

from postsetup.utils import LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers added by setup_logging so tests do not leak into each other."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def write_config(tmp_path):
    """Write configuration text to a file and return its path."""
    def _write(text, name="post-setup.cfg"):
        path = tmp_path / name
        path.write_text(text)
        return path
    return _write
