"""
Tests for logging setup driven by Settings.
"""

import logging

import pytest

from conftest import make_settings
from vetnet.core.logging import get_logger, setup_logging


@pytest.fixture
def root_level():
    root = logging.getLogger()
    previous = root.level
    yield root
    root.setLevel(previous)


class TestSetupLogging:
    def test_level_from_settings(self, root_level):
        setup_logging(make_settings(LOG_LEVEL="debug"))
        assert root_level.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, root_level):
        setup_logging(make_settings(LOG_LEVEL="chatty"))
        assert root_level.level == logging.INFO

    def test_get_logger_is_named(self):
        assert get_logger("vetnet.services.roles").name == "vetnet.services.roles"
